"""License business rules: issue, revoke, validate, list and look up keys."""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from license_server.config import Settings
from license_server.errors import DuplicateKey, NotFound, ValidationInputError
from license_server.models.license import SERVER_IP_LENGTH, License
from license_server.services.key_codec import KeyCodec, KeyCodecConfig, abbreviate
from license_server.services.license_store import LicenseStore, new_license
from license_server.services.notifier import OwnerNotifier

logger = logging.getLogger(__name__)

GENERATED_NOTES = "generated manually"


class KeyRegime(str, Enum):
    STATEFUL = "stateful"
    STATELESS = "stateless"


class RevokeResult(str, Enum):
    REVOKED = "revoked"
    ALREADY_REVOKED = "already_revoked"
    NOT_FOUND_BUT_BLACKLISTED = "blacklisted"


class InvalidReason(str, Enum):
    INVALID_KEY = "invalid key"
    REVOKED = "revoked"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ValidationOutcome:
    valid: bool
    reason: Optional[InvalidReason] = None
    owner: Optional[str] = None

    @classmethod
    def denied(cls, reason: InvalidReason) -> "ValidationOutcome":
        return cls(valid=False, reason=reason)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Store timestamps as naive UTC, like datetime.utcnow()."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class LicenseService:
    """Composes a KeyCodec and a LicenseStore under one key regime."""

    def __init__(
        self,
        store: LicenseStore,
        codec: KeyCodec,
        regime: KeyRegime = KeyRegime.STATEFUL,
        notifier: Optional[OwnerNotifier] = None,
        max_create_attempts: int = 5,
        default_list_limit: int = 20,
    ):
        """Initialize service.

        Args:
            store: License repository
            codec: Key codec; must sign keys when the regime is stateless
            regime: Deployment-wide key regime
            notifier: Optional best-effort owner notifier
            max_create_attempts: Retry budget for key collisions on create
            default_list_limit: Cap applied by list() when no limit is given
        """
        if regime is KeyRegime.STATELESS and not codec.config.signed:
            raise ValueError("The stateless regime requires a signing codec")
        self.store = store
        self.codec = codec
        self.regime = regime
        self.notifier = notifier
        self.max_create_attempts = max_create_attempts
        self.default_list_limit = default_list_limit

    @classmethod
    def from_settings(
        cls,
        store: LicenseStore,
        settings: Settings,
        notifier: Optional[OwnerNotifier] = None,
    ) -> "LicenseService":
        return cls(
            store=store,
            codec=KeyCodec(KeyCodecConfig.from_settings(settings)),
            regime=KeyRegime(settings.LICENSE_REGIME),
            notifier=notifier,
            max_create_attempts=settings.CREATE_MAX_ATTEMPTS,
            default_list_limit=settings.LIST_DEFAULT_LIMIT,
        )

    async def create(
        self,
        owner: str,
        expires_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> License:
        """
        Issue a new license.

        The returned record is the only place the plaintext key is handed
        out by this service.

        Raises:
            ValidationInputError: owner is blank
            DuplicateKey: every attempt collided with an existing key
        """
        owner = (owner or "").strip()
        if not owner:
            raise ValidationInputError("owner is required")

        expires_at = to_naive_utc(expires_at)
        record = None
        for attempt in range(1, self.max_create_attempts + 1):
            candidate = new_license(
                key=self.codec.generate(),
                owner=owner,
                notes=notes or "",
                expires_at=expires_at,
            )
            try:
                record = await self.store.insert(candidate)
                break
            except DuplicateKey:
                logger.warning(
                    f"Key collision on create (attempt {attempt}/{self.max_create_attempts})"
                )

        if record is None:
            raise DuplicateKey(
                f"Could not generate a unique license key after {self.max_create_attempts} attempts"
            )

        logger.info(f"Issued license {abbreviate(record.key)} to owner {owner}")
        await self._notify_owner(record)
        return record

    async def generate_for(self, caller_id: str) -> License:
        """Issue a key to the caller themselves."""
        return await self.create(caller_id, notes=GENERATED_NOTES)

    async def revoke(self, key: str) -> RevokeResult:
        """
        Revoke a key. Revocation is permanent and idempotent.

        In the stateless regime an unknown key is deny-listed so that a key
        issued elsewhere with the same secret stops validating here.

        Raises:
            ValidationInputError: key is blank
            NotFound: unknown key in the stateful regime
        """
        if not key or not key.strip():
            raise ValidationInputError("key is required")
        key = self.codec.normalize(key)

        outcome = await self.store.mark_revoked(key)
        if outcome is None:
            if self.regime is KeyRegime.STATEFUL:
                raise NotFound("Not found")
            try:
                await self.store.insert_revoked_stub(key)
                logger.info(f"Deny-listed unknown key {abbreviate(key)}")
                return RevokeResult.NOT_FOUND_BUT_BLACKLISTED
            except DuplicateKey:
                # Inserted concurrently; fall back to flipping the row
                outcome = await self.store.mark_revoked(key)

        if outcome.changed:
            logger.info(f"Revoked license {abbreviate(key)}")
            return RevokeResult.REVOKED
        return RevokeResult.ALREADY_REVOKED

    async def validate(self, key: str, address: Optional[str] = None) -> ValidationOutcome:
        """
        Decide whether a key grants access.

        Checks run in order and the first failure wins: signature or
        existence, revocation, expiry. Only a successful validation records
        the caller's address.
        """
        if not key or not isinstance(key, str) or not key.strip():
            return ValidationOutcome.denied(InvalidReason.INVALID_KEY)
        key = self.codec.normalize(key)

        if self.regime is KeyRegime.STATELESS:
            if not self.codec.verify(key):
                return ValidationOutcome.denied(InvalidReason.INVALID_KEY)
            # Deny-list lookup: absence means never revoked
            record = await self.store.find_by_key(key)
        else:
            record = await self.store.find_by_key(key)
            if record is None:
                return ValidationOutcome.denied(InvalidReason.INVALID_KEY)

        if record is not None:
            if not record.active:
                return ValidationOutcome.denied(InvalidReason.REVOKED)
            if record.is_expired():
                return ValidationOutcome.denied(InvalidReason.EXPIRED)
            if address:
                await self._record_address(key, address)

        return ValidationOutcome(valid=True, owner=record.owner if record else None)

    async def list_licenses(self, limit: Optional[int] = None) -> list[License]:
        """Most recent licenses first; ``limit=0`` means unlimited."""
        if limit is None:
            limit = self.default_list_limit
        if limit < 0:
            raise ValidationInputError("limit must not be negative")
        return await self.store.list_all(limit or None)

    async def lookup(self, owner: str) -> list[License]:
        owner = (owner or "").strip()
        if not owner:
            raise ValidationInputError("owner is required")
        return await self.store.find_by_owner(owner)

    async def _record_address(self, key: str, address: str) -> None:
        # Advisory only; clip to the column instead of refusing the caller
        if len(address) > SERVER_IP_LENGTH:
            logger.debug(f"Truncating oversized address for {abbreviate(key)}")
            address = address[:SERVER_IP_LENGTH]
        try:
            await self.store.record_address(key, address)
        except Exception as e:
            logger.warning(f"Address recording failed for {abbreviate(key)}: {e}")

    async def _notify_owner(self, record: License) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify_issued(record)
        except Exception as e:
            logger.warning(f"Owner notification for {abbreviate(record.key)} failed: {e}")
