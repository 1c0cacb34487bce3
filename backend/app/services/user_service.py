"""
User service - login
"""
from typing import Optional

from sqlalchemy.orm import Session

from app.models.tenant import User
from app.security.auth import create_access_token, verify_password


class UserService:

    def __init__(self, db: Session):
        self.db = db

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(
            User.email == email.strip().lower(), User.deleted_at.is_(None)
        ).first()

    def authenticate(self, email: str, password: str) -> Optional[dict]:
        """Token and user for valid credentials, None otherwise"""
        user = self.get_user_by_email(email)
        if not user:
            return None

        if not user.is_active:
            raise ValueError("Account is disabled")

        if not verify_password(password, user.password_hash):
            return None

        token = create_access_token(user.id, user.role, user.organization_id)
        return {
            'access_token': token,
            'token_type': 'bearer',
            'user': user,
        }
