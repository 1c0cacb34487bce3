"""
Hotel operations access control service - application entry point
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings, setup_logging
from app.database import SessionLocal, init_db
from app.routers import auth, permissions, roles, system_roles
from app.services.exceptions import AccessDenied
from app.services.permission_provider import RBACPermissionProvider
from app.services.permission_service import PermissionService
from core.security.permission import permission_provider_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: logging, schema, permission catalog seed, provider registration"""
    setup_logging(settings.LOG_LEVEL)
    init_db()

    db = SessionLocal()
    try:
        if PermissionService(db).initialize():
            logger.info("✓ Permission system ready")
        else:
            logger.warning("Permission system running in legacy mode")
    finally:
        db.close()

    permission_provider_registry.set_provider(RBACPermissionProvider(SessionLocal))
    logger.info("✓ RBAC PermissionProvider registered")

    yield

    permission_provider_registry.clear()


app = FastAPI(
    title=settings.APP_NAME,
    description="Permission evaluation and role administration for multi-tenant hotel operations",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AccessDenied)
async def access_denied_handler(request: Request, exc: AccessDenied):
    logger.info(f"Access denied on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=403,
        content={"detail": str(exc), "type": "access_denied"}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unexpected errors: full details in the log, a generic envelope to the client"""
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {type(exc).__name__}: {exc}",
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc) if settings.DEBUG else "Internal server error",
            "type": "internal_error",
        }
    )


app.include_router(auth.router)
app.include_router(permissions.router)
app.include_router(roles.router)
app.include_router(system_roles.router)


@app.get("/")
def root():
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
    }


@app.get("/health")
def health_check():
    """Health check"""
    return {"status": "healthy"}
