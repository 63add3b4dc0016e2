"""
Authentication for the admin console.

Admins log in with a username and password and receive a signed JWT.
Each admin has one live session: its id is stored in admin_settings, so
logging in again or logging out invalidates older tokens.
"""

import logging
import time
import uuid

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from models import get_db, AdminUser, AdminSetting
from services import SESSION_KEY_PREFIX
from utils import get_config

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Malformed hash in the database
        return False


def _session_key(admin_id: int) -> str:
    return f"{SESSION_KEY_PREFIX}{admin_id}"


def _store_session(db: Session, admin_id: int, session_id: str | None):
    key = _session_key(admin_id)
    setting = db.query(AdminSetting).filter(AdminSetting.key == key).first()
    if session_id is None:
        if setting:
            db.delete(setting)
    elif setting:
        setting.value = session_id
    else:
        db.add(AdminSetting(key=key, value=session_id))
    db.commit()


def create_token(admin: AdminUser, session_id: str) -> str:
    """Create a JWT token for the admin."""
    config = get_config()
    now = int(time.time())
    payload = {
        "sub": str(admin.id),
        "username": admin.username,
        "jti": session_id,
        "iat": now,
        "exp": now + config["token_expiry_seconds"],
    }
    return jwt.encode(payload, config["secret_key"], algorithm=ALGORITHM)


def decode_token(token: str) -> dict | None:
    """Decode and validate a JWT token (signature and expiry)."""
    try:
        return jwt.decode(token, get_config()["secret_key"], algorithms=[ALGORITHM])
    except jwt.InvalidTokenError:
        return None


def login(db: Session, username: str, password: str) -> str | None:
    """Check credentials and open a new session.

    Returns:
        A token, or None for bad credentials.
    """
    admin = db.query(AdminUser).filter(AdminUser.username == username).first()
    if not admin or not check_password(password, admin.password_hash):
        logger.warning("Rejected admin login for %r", username)
        return None

    session_id = uuid.uuid4().hex
    _store_session(db, admin.id, session_id)
    logger.info("Admin %s logged in", admin.username)
    return create_token(admin, session_id)


def verify_token(db: Session, token: str) -> AdminUser | None:
    payload = decode_token(token)
    if not payload:
        return None
    try:
        admin_id = int(payload["sub"])
    except (KeyError, ValueError):
        return None

    stored = db.query(AdminSetting).filter(AdminSetting.key == _session_key(admin_id)).first()
    if not stored or stored.value != payload.get("jti"):
        return None
    return db.query(AdminUser).filter(AdminUser.id == admin_id).first()


def logout(db: Session, admin: AdminUser):
    _store_session(db, admin.id, None)
    logger.info("Admin %s logged out", admin.username)


def change_password(db: Session, admin: AdminUser, current_password: str, new_password: str):
    """Replace the admin's password.

    Raises:
        ValueError: Wrong current password or new password too short.
    """
    if not check_password(current_password, admin.password_hash):
        raise ValueError("Current password is incorrect")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    admin.password_hash = hash_password(new_password)
    db.commit()
    logger.info("Admin %s changed password", admin.username)


def ensure_admin(db: Session, username: str, password: str) -> AdminUser:
    """Create the admin account if it does not exist yet."""
    admin = db.query(AdminUser).filter(AdminUser.username == username).first()
    if admin is None:
        admin = AdminUser(username=username, password_hash=hash_password(password))
        db.add(admin)
        db.commit()
        db.refresh(admin)
        logger.info("Created admin user %s", username)
    return admin


def bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    scheme, _, token = auth_header.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Invalid token format")
    return token


def require_admin(request: Request, db: Session = Depends(get_db)) -> AdminUser:
    """FastAPI dependency: the admin behind the request's bearer token."""
    admin = verify_token(db, bearer_token(request))
    if admin is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return admin
