"""FastAPI dependencies for admin authentication and service wiring."""
import hmac
import logging
from typing import Callable, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from license_server.config import Settings, settings as app_settings
from license_server.database import get_db
from license_server.errors import Unauthorized
from license_server.services.license_service import LicenseService
from license_server.services.license_store import SqlLicenseStore
from license_server.services.notifier import OwnerNotifier

logger = logging.getLogger(__name__)

ADMIN_SECRET_HEADER = "x-admin-secret"


def secrets_match(presented: Optional[str], expected: str) -> bool:
    """Constant-time credential comparison; an empty expected secret never matches."""
    if not expected or presented is None:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def get_settings() -> Settings:
    """Dependency returning the settings loaded at process start."""
    return app_settings


def make_admin_check(admin_secret: str) -> Callable[[Optional[str]], bool]:
    """Build the ``is_admin`` capability for the shared-secret credential."""
    def is_admin(presented: Optional[str]) -> bool:
        return secrets_match(presented, admin_secret)
    return is_admin


async def require_admin_secret(
    x_admin_secret: Optional[str] = Header(None, alias=ADMIN_SECRET_HEADER),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    FastAPI dependency enforcing the admin credential.
    Raises Unauthorized if the header is missing or does not match.
    """
    if not make_admin_check(settings.ADMIN_SECRET)(x_admin_secret):
        logger.warning("Rejected admin request with missing or invalid credential")
        raise Unauthorized()


async def require_validate_access(
    x_admin_secret: Optional[str] = Header(None, alias=ADMIN_SECRET_HEADER),
    settings: Settings = Depends(get_settings),
) -> None:
    """Gate /api/validate only when the deployment asks for it."""
    if settings.VALIDATE_REQUIRES_ADMIN_SECRET:
        await require_admin_secret(x_admin_secret, settings)


def get_notifier(settings: Settings = Depends(get_settings)) -> OwnerNotifier:
    return OwnerNotifier.from_settings(settings)


async def get_license_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: OwnerNotifier = Depends(get_notifier),
) -> LicenseService:
    """Per-request LicenseService bound to the request's database session."""
    return LicenseService.from_settings(SqlLicenseStore(db), settings, notifier=notifier)
