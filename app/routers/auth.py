from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import secrets

from ..db import get_db
from ..core.settings import settings
from .. import models, schemas
from ..driver_service import verify_password
from ..order_service import Actor


router = APIRouter()
security = HTTPBearer()
logger = logging.getLogger("delivery.auth")


@dataclass(frozen=True)
class Principal:
    """Authenticated caller: (role, principal_id)"""
    role: models.UserRole
    principal_id: str

    @property
    def actor(self) -> Actor:
        if self.role == models.UserRole.ADMIN:
            return Actor.admin(self.principal_id)
        return Actor.driver(self.principal_id)


def create_access_token(db: Session, role: models.UserRole, principal_id: str) -> models.AuthSession:
    """Persist a new session so every process instance can validate it"""
    session = models.AuthSession(
        token=secrets.token_urlsafe(32),
        role=role,
        principal_id=principal_id,
        expires_at=datetime.utcnow() + timedelta(hours=settings.TOKEN_TTL_HOURS),
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> Principal:
    """Dependency to resolve the bearer token into a principal"""
    session = db.query(models.AuthSession).filter(
        models.AuthSession.token == credentials.credentials
    ).first()

    if not session:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token"
        )

    if datetime.utcnow() > session.expires_at:
        db.delete(session)
        db.commit()
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired"
        )

    if session.role == models.UserRole.DRIVER:
        account = db.query(models.Driver).filter(models.Driver.id == session.principal_id).first()
    else:
        account = db.query(models.AdminUser).filter(models.AdminUser.id == session.principal_id).first()
    if not account or not account.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found or inactive"
        )

    return Principal(role=session.role, principal_id=session.principal_id)


def require_role(*allowed_roles: models.UserRole):
    """Dependency factory to require specific roles"""
    def role_checker(principal: Principal = Depends(get_current_principal)):
        if principal.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join(r.value for r in allowed_roles)}"
            )
        return principal
    return role_checker


def _token_response(session: models.AuthSession) -> schemas.TokenResponse:
    return schemas.TokenResponse(
        access_token=session.token,
        token_type="bearer",
        principal_id=session.principal_id,
        role=session.role,
        expires_at=session.expires_at,
    )


# ============================================================================
# Login Endpoints
# ============================================================================

@router.post("/admin/login", response_model=schemas.TokenResponse)
def admin_login(payload: schemas.AdminLogin, db: Session = Depends(get_db)):
    """Login with email/password (admins)"""
    admin = db.query(models.AdminUser).filter(models.AdminUser.email == payload.email).first()

    if not admin or not verify_password(payload.password, admin.password_hash):
        logger.warning("Failed admin login for %s", payload.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )
    if not admin.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is inactive"
        )

    return _token_response(create_access_token(db, models.UserRole.ADMIN, admin.id))


@router.post("/driver/login", response_model=schemas.TokenResponse)
def driver_login(payload: schemas.DriverLogin, db: Session = Depends(get_db)):
    """Login with phone/password (drivers)"""
    driver = db.query(models.Driver).filter(models.Driver.phone == payload.phone).first()

    if not driver or not verify_password(payload.password, driver.password_hash):
        logger.warning("Failed driver login for %s", payload.phone)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid phone or password"
        )
    if not driver.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is inactive"
        )

    return _token_response(create_access_token(db, models.UserRole.DRIVER, driver.id))


# ============================================================================
# Session Endpoints
# ============================================================================

@router.get("/me", response_model=schemas.PrincipalOut)
def get_current_user_info(principal: Principal = Depends(get_current_principal)):
    return schemas.PrincipalOut(role=principal.role, principal_id=principal.principal_id)


@router.post("/logout")
def logout(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
):
    """Logout and invalidate token"""
    db.query(models.AuthSession).filter(
        models.AuthSession.token == credentials.credentials
    ).delete(synchronize_session=False)
    db.commit()
    return {"message": "Logged out successfully"}
