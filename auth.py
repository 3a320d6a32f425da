# auth.py

import os
import logging
import secrets
import string
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from passlib.context import CryptContext
from datetime import datetime, timedelta
from jose import JWTError, jwt

import models      # absolute import
import schemas     # absolute import
import policy
from db import commit_or_fail, get_db  # absolute import
from errors import InvalidCode, NotFound, PersistenceFailure, ValidationError

logger = logging.getLogger(__name__)

# ─── Load .env ─────────────────────────────────────────────────────────────────
from dotenv import load_dotenv
load_dotenv()
JWT_SECRET = os.getenv("JWT_SECRET", "change_this_to_a_random_string")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))  # 24 hours

# Accounts registered with these emails also get the admin role
ADMIN_EMAILS = set(
    e.strip().lower()
    for e in os.getenv("ADMIN_EMAILS", "").split(",")
    if e.strip()
)

MIN_PASSWORD_LENGTH = 6
LOGIN_CODE_LENGTH = 8
LOGIN_CODE_ALPHABET = string.ascii_uppercase + string.digits

# ─── Password hashing ───────────────────────────────────────────────────────────
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    token = jwt.encode(to_encode, JWT_SECRET, algorithm=ALGORITHM)
    return token

def generate_login_code() -> str:
    return "".join(secrets.choice(LOGIN_CODE_ALPHABET) for _ in range(LOGIN_CODE_LENGTH))

# ─── Signup endpoint ───────────────────────────────────────────────────────────
@router.post("/signup", response_model=schemas.UserOut)
def signup(user: schemas.UserCreate, db: Session = Depends(get_db)):
    email = user.email.lower()
    existing = db.query(models.User).filter(models.User.email == email).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    new_user = models.User(id=models.new_id(), email=email, hashed_password=get_password_hash(user.password))
    # Every new identity starts pending with the plain user role
    new_user.profile = models.Profile(
        email=email,
        display_name=user.display_name,
        status=models.STATUS_PENDING,
    )
    new_user.roles.append(models.UserRole(role=models.ROLE_USER))
    if email in ADMIN_EMAILS:
        new_user.roles.append(models.UserRole(role=models.ROLE_ADMIN))

    db.add(new_user)
    commit_or_fail(db, "register user")
    db.refresh(new_user)
    logger.info("Registered user %s (pending approval)", new_user.id)
    return new_user

# ─── Login endpoint ────────────────────────────────────────────────────────────
@router.post("/login", response_model=schemas.Token)
def login(form_data: schemas.LoginRequest, db: Session = Depends(get_db)):
    user = db.query(models.User).filter(models.User.email == form_data.email.lower()).first()
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # A successful login leaves behind a one-time code an admin can hand out later
    login_code = generate_login_code()
    db.add(models.ResetCode(user_id=user.id, code=login_code, used=False))
    commit_or_fail(db, "record login code")

    access_token = create_access_token(data={"user_id": user.id})
    logger.info("User %s logged in", user.id)
    return {"access_token": access_token, "token_type": "bearer", "login_code": login_code}

# ─── OAuth2PasswordBearer for extracting token ─────────────────────────────────
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

def _user_from_token(token: str, db: Session):
    """Resolve a bearer token to its user, or None when it does not resolve."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError:
        return None
    user_id: str = payload.get("user_id")
    if user_id is None:
        return None
    return db.query(models.User).filter(models.User.id == user_id).first()

# ─── Dependency: get_current_user ───────────────────────────────────────────────
def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
):
    user = _user_from_token(token, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user

# ─── Dependency: get_optional_user (anonymous callers get None) ────────────────
# A stale or garbage token on a public route is treated as no token at all
def get_optional_user(
    token: str = Depends(optional_oauth2_scheme),
    db: Session = Depends(get_db)
):
    if not token:
        return None
    return _user_from_token(token, db)

# ─── Dependency: require_admin ──────────────────────────────────────────────────
def require_admin(current_user: models.User = Depends(get_current_user)):
    policy.ensure_admin(current_user)
    return current_user

# ─── Current identity ──────────────────────────────────────────────────────────
@router.get("/me", response_model=schemas.MeOut)
def read_me(current_user: models.User = Depends(get_current_user)):
    profile = current_user.profile
    if profile is not None and not policy.can_read_profile(current_user, profile):
        profile = None
    roles = sorted(current_user.role_names) if policy.can_read_roles(current_user, current_user.id) else []
    return {
        "id": current_user.id,
        "email": current_user.email,
        "profile": profile,
        "roles": roles,
    }

@router.post("/change-password")
def change_password(
    body: schemas.PasswordChange,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    current_user.hashed_password = get_password_hash(body.new_password)
    commit_or_fail(db, "update password")
    return {"success": True, "message": "Password changed successfully"}

# ─── Credential reset ──────────────────────────────────────────────────────────
def consume_reset_code(db: Session, user_id: str, code: str) -> bool:
    """Flip ``code`` to used if it is still unused; True when this call won it.

    Nothing is committed here. Callers commit once the rest of their work is done.
    """
    result = db.execute(
        update(models.ResetCode)
        .where(
            models.ResetCode.user_id == user_id,
            models.ResetCode.code == code,
            models.ResetCode.used == False,  # noqa: E712
        )
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0

def reset_password(db: Session, email: str, code: str, new_password: str):
    """Swap the password of ``email`` for ``new_password``, spending ``code``.

    The code is consumed with a single conditional UPDATE, so of two
    concurrent resets with the same code only one can match ``used = false``.
    The password write shares that transaction; if it fails the code stays
    unused.
    """
    if not email or not code or not new_password:
        raise ValidationError("Email, reset code, and new password are required")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    profile = (
        db.query(models.Profile)
          .filter(models.Profile.email == email.strip().lower())
          .first()
    )
    if not profile:
        logger.info("Password reset requested for unknown email")
        raise NotFound("Email not found")

    try:
        consumed = consume_reset_code(db, profile.user_id, code)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Reset code lookup failed for user %s", profile.user_id)
        raise PersistenceFailure("Failed to update password")

    if not consumed:
        db.rollback()
        logger.info("Invalid reset code submitted for user %s", profile.user_id)
        raise InvalidCode("Invalid or already used reset code")

    try:
        user = db.query(models.User).filter(models.User.id == profile.user_id).one()
        user.hashed_password = get_password_hash(new_password)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Password update failed for user %s", profile.user_id)
        raise PersistenceFailure("Failed to update password")

    logger.info("Password reset successful for user %s", profile.user_id)

@router.post("/reset-password")
def reset_password_endpoint(body: schemas.ResetPasswordRequest, db: Session = Depends(get_db)):
    reset_password(db, body.email, body.reset_code, body.new_password)
    return {"success": True, "message": "Password reset successfully"}
