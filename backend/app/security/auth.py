"""
Authentication and authorization

JWT bearer authentication plus FastAPI guards:
- require_roles: legacy enum role check
- require_permission: resource.action.scope evaluation through PermissionService
- permission_scope: automatic tenant filter for a scope
- require_tenant_access: organization / property / department id validation
"""
import bcrypt
import json
import logging
from datetime import datetime, timedelta, UTC
from typing import Dict, Iterable, Optional, Union

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.models.tenant import User
from app.services.permission_service import PermissionService
from app.services.tenant_service import TenantService
from core.security.context import EvaluationContext, Principal
from core.security.legacy_roles import LegacyRole
from core.security.scope_filters import automatic_scope_filter

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    """Hash a password with bcrypt"""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))
    except ValueError:
        return False


def create_access_token(user_id: int, role: Union[LegacyRole, str],
                        organization_id: Optional[int] = None,
                        expires_minutes: Optional[int] = None) -> str:
    """Create a JWT with sub, role, org and exp claims"""
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(UTC) + timedelta(minutes=minutes)
    to_encode = {
        "sub": str(user_id),
        "role": role.value if isinstance(role, LegacyRole) else str(role),
        "org": organization_id,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """The authenticated, active, non-deleted user"""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    payload = decode_token(credentials.credentials)

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )

    user = db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is disabled",
        )
    return user


def get_principal(current_user: User = Depends(get_current_user)) -> Principal:
    return Principal.from_user(current_user)


def require_roles(*roles: LegacyRole):
    """Legacy enum role guard"""
    async def role_checker(current_user: User = Depends(get_current_user)):
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role",
            )
        return current_user
    return role_checker


async def _request_context(request: Request) -> EvaluationContext:
    """Target ids from path params, JSON body and query string, in that order"""
    body = None
    if request.method in ("POST", "PUT", "PATCH") and \
            request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None
    if not isinstance(body, dict):
        body = None
    return EvaluationContext.from_request_data(
        request.path_params, body, dict(request.query_params)
    )


def require_permission(*permissions: Union[str, Dict], roles: Iterable[LegacyRole] = ()):
    """Permission guard - OR logic across `permissions`

    Users whose legacy role is in `roles` pass without evaluation. On success
    the granted scope filters are attached to request.state.permission_filters.
    """
    allowed_roles = tuple(roles)

    async def permission_checker(
        request: Request,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ):
        if current_user.role in allowed_roles:
            request.state.permission_filters = {}
            return current_user

        principal = Principal.from_user(current_user)
        context = await _request_context(request)
        service = PermissionService(db)
        result = service.evaluate_any(principal, permissions, context)
        # persist evaluation cache rows written by the service
        db.commit()

        if not result.allowed:
            logger.info(
                f"Permission denied for user {current_user.id}: "
                f"{', '.join(str(p) for p in permissions)} ({result.reason})"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied: {result.reason or 'insufficient permissions'}",
            )
        request.state.permission_filters = result.scope_filters or {}
        request.state.permission_result = result
        return current_user
    return permission_checker


def permission_scope(scope: str):
    """Automatic single-column tenant filter for `scope`; platform admins get none"""
    async def scope_filter(request: Request, current_user: User = Depends(get_current_user)) -> Dict:
        if current_user.role == LegacyRole.PLATFORM_ADMIN:
            filters = {}
        else:
            filters = automatic_scope_filter(Principal.from_user(current_user), scope)
            if filters is None:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Access denied: no {scope} assigned to user",
                )
        request.state.scope_filter = filters
        return filters
    return scope_filter


def require_tenant_access(level: str, param: str):
    """Validate the `param` path/query id against the user's tenant

    level: "organization", "property" or "department"
    """
    validators = {
        "organization": TenantService.validate_organization_access,
        "property": TenantService.validate_property_access,
        "department": TenantService.validate_department_access,
    }
    if level not in validators:
        raise ValueError(f"Unknown tenant level: {level}")
    validate = validators[level]

    async def tenant_checker(
        request: Request,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ):
        raw = request.path_params.get(param, request.query_params.get(param))
        if raw in (None, ""):
            return current_user
        try:
            target_id = int(raw)
        except (TypeError, ValueError):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {param}")

        if not validate(TenantService(db), current_user, target_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied to {level} {target_id}",
            )
        return current_user
    return tenant_checker
