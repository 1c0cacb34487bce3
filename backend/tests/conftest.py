"""
Pytest configuration and shared fixtures
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.database import Base, get_db
from app.models import tenant, rbac, audit  # noqa: F401
from app.models.tenant import Organization, Property, Department, User
from app.security.auth import get_password_hash, create_access_token
from app.services.permission_service import PermissionService, get_memory_cache
from app.main import app
from core.security.legacy_roles import LegacyRole
from core.security.permission import permission_provider_registry


@pytest.fixture(scope="function")
def db_engine():
    """In-memory database engine"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """Test client bound to the in-memory session (startup hooks are not run)"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_permission_caches():
    """User ids repeat across tests, so the process-wide caches must not leak"""
    get_memory_cache().clear()
    yield
    get_memory_cache().clear()
    permission_provider_registry.clear()


# ============== Tenant Fixtures ==============

@pytest.fixture
def organization(db_session):
    org = Organization(name="Seaside Hotels", slug="seaside")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture
def other_organization(db_session):
    org = Organization(name="Mountain Lodges", slug="mountain")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture
def hotel(db_session, organization):
    prop = Property(organization_id=organization.id, name="Seaside Downtown", slug="downtown")
    db_session.add(prop)
    db_session.commit()
    return prop


@pytest.fixture
def department(db_session, hotel):
    dept = Department(property_id=hotel.id, name="Front Office")
    db_session.add(dept)
    db_session.commit()
    return dept


@pytest.fixture
def make_user(db_session, organization, hotel, department):
    """Factory: create a user in the default tenant unless told otherwise"""
    counter = {"n": 0}

    def _make(role=LegacyRole.STAFF, email=None, password="secret123", **kwargs):
        counter["n"] += 1
        values = {
            "organization_id": organization.id,
            "property_id": hotel.id,
            "department_id": department.id,
            "is_active": True,
        }
        values.update(kwargs)
        user = User(
            email=email or f"user{counter['n']}@seaside.test",
            password_hash=get_password_hash(password),
            first_name="Test",
            last_name=f"User{counter['n']}",
            role=role,
            **values,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def seeded_catalog(db_session):
    """Built-in permissions and system roles"""
    service = PermissionService(db_session)
    service.ensure_system_permissions()
    service.ensure_system_roles()
    db_session.commit()
    return service


# ============== Auth Fixtures ==============

def auth_header(user) -> dict:
    token = create_access_token(user.id, user.role, user.organization_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def platform_admin(make_user):
    return make_user(LegacyRole.PLATFORM_ADMIN, email="admin@platform.test",
                     organization_id=None, property_id=None, department_id=None)


@pytest.fixture
def org_owner(make_user):
    return make_user(LegacyRole.ORGANIZATION_OWNER, email="owner@seaside.test",
                     property_id=None, department_id=None)


@pytest.fixture
def staff_user(make_user):
    return make_user(LegacyRole.STAFF, email="staff@seaside.test")


@pytest.fixture
def admin_headers(platform_admin):
    return auth_header(platform_admin)


@pytest.fixture
def owner_headers(org_owner):
    return auth_header(org_owner)


@pytest.fixture
def staff_headers(staff_user):
    return auth_header(staff_user)


@pytest.fixture
def headers_for():
    return auth_header
