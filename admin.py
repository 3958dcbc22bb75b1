"""
Study.AI - Admin Configuration
Credential check and validation of the site-owner metadata
"""

import base64
import binascii
import hmac
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict

import settings

MAX_NAME_LENGTH = 80
MAX_BIO_LENGTH = 600

_DATA_URI_RE = re.compile(r"data:(image/[a-z0-9.+-]+);base64,(.+)", re.IGNORECASE | re.DOTALL)


class AdminConfigError(Exception):
    """Raised when submitted admin metadata is invalid."""


@dataclass
class AdminConfig:
    ownerName: str
    ownerBio: str
    profileImage: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def default_admin_config() -> AdminConfig:
    return AdminConfig(
        ownerName=settings.OWNER_NAME,
        ownerBio=settings.OWNER_BIO,
        profileImage=settings.OWNER_IMAGE,
    )


def check_credentials(user_id: str, password: str) -> bool:
    """Constant-time comparison against the configured admin credentials."""
    user_ok = hmac.compare_digest((user_id or "").encode(), settings.ADMIN_USER.encode())
    pass_ok = hmac.compare_digest((password or "").encode(), settings.ADMIN_PASS.encode())
    return user_ok and pass_ok


def _validate_image(value: str) -> str:
    if value.startswith(("http://", "https://")):
        return value

    match = _DATA_URI_RE.fullmatch(value)
    if not match:
        raise AdminConfigError("Profile image must be an http(s) URL or an uploaded image.")
    try:
        raw = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError):
        raise AdminConfigError("Uploaded profile image is not valid base64.") from None
    if len(raw) > settings.MAX_AVATAR_KB * 1024:
        raise AdminConfigError(f"Profile image must be under {settings.MAX_AVATAR_KB} KB.")
    return value


def validate_admin_config(data: Any) -> AdminConfig:
    """
    Normalize a submitted admin form.

    The browser persists the returned config in localStorage; nothing is
    stored server-side.
    """
    if not isinstance(data, dict):
        raise AdminConfigError("Admin configuration must be an object.")

    name = str(data.get("ownerName") or "").strip()
    bio = str(data.get("ownerBio") or "").strip()
    image = str(data.get("profileImage") or "").strip()

    if not name:
        raise AdminConfigError("Owner name is required.")
    if len(name) > MAX_NAME_LENGTH:
        raise AdminConfigError(f"Owner name must be at most {MAX_NAME_LENGTH} characters.")
    if len(bio) > MAX_BIO_LENGTH:
        raise AdminConfigError(f"Bio must be at most {MAX_BIO_LENGTH} characters.")

    image = _validate_image(image) if image else settings.OWNER_IMAGE
    return AdminConfig(ownerName=name, ownerBio=bio, profileImage=image)
