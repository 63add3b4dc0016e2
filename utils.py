"""
Utility functions for the Baytzaki storefront.
"""

import logging
import os
import re

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_email(email: str) -> bool:
    """Validate an e-mail address (shape only, no delivery check)."""
    if not email:
        return False
    return bool(EMAIL_RE.match(email.strip()))


def normalize_email(email: str) -> str:
    return email.strip().lower()


def slugify(text: str) -> str:
    """Turn a product or category name into a URL slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower())
    return slug.strip("-")


def get_config():
    """Load configuration from environment.

    Raises:
        RuntimeError: If SECRET_KEY is missing while DEBUG is off.
    """
    debug = os.environ.get("DEBUG", "false").lower() == "true"
    secret_key = os.environ.get("SECRET_KEY")
    if not secret_key:
        if not debug:
            raise RuntimeError("SECRET_KEY must be set when DEBUG is off")
        secret_key = "dev-only-secret-key"

    origins = os.environ.get("CORS_ORIGINS", "http://localhost:5173")
    return {
        "debug": debug,
        "database_url": os.environ.get("DATABASE_URL", "sqlite:///./baytzaki.db"),
        "secret_key": secret_key,
        "token_expiry_seconds": int(os.environ.get("TOKEN_EXPIRY_SECONDS", 60 * 60 * 8)),
        "log_level": os.environ.get("LOG_LEVEL", "INFO").upper(),
        "cors_origins": [o.strip() for o in origins.split(",") if o.strip()],
        "admin_username": os.environ.get("ADMIN_USERNAME", "admin"),
        "admin_password": os.environ.get("ADMIN_PASSWORD"),
    }


def configure_logging(level: str = "INFO"):
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.debug("Logging configured at %s", level)
