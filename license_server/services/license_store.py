"""License repositories.

Two key regimes are supported, one per deployment (``LICENSE_REGIME``):

* **stateful** - every issued key has a row and a key is valid only while
  its row exists and is active. The table is a full audit trail, but a
  consumer cannot validate a key without calling back to this service.
* **stateless** - keys carry an HMAC tag and verify on their own. The table
  is consulted as a deny-list: a missing row means "never revoked", not
  "never issued". Issued keys are still recorded so listings and owner
  resolution keep working, but validity never depends on their presence.

Stores never decide validity; that is ``LicenseService``'s job.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from license_server.errors import DuplicateKey, StoreUnavailable
from license_server.models.license import License
from license_server.services.key_codec import abbreviate

logger = logging.getLogger(__name__)

UNKNOWN_OWNER = "unknown"
STUB_NOTES = "manually revoked"


@dataclass
class RevokeOutcome:
    """Result of a compare-and-set revocation."""
    record: License
    changed: bool  # False when the key was already revoked


def new_license(
    key: str,
    owner: str,
    notes: str = "",
    expires_at: Optional[datetime] = None,
    active: bool = True,
) -> License:
    """Build a transient License with every column populated."""
    return License(
        key=key,
        owner=owner,
        notes=notes or "",
        active=active,
        server_ip=None,
        created_at=datetime.utcnow(),
        expires_at=expires_at,
    )


def revoked_stub(key: str) -> License:
    """Deny-list entry for a key this store never recorded."""
    return new_license(key=key, owner=UNKNOWN_OWNER, notes=STUB_NOTES, active=False)


class LicenseStore(ABC):
    """Narrow repository interface over license records."""

    @abstractmethod
    async def insert(self, record: License) -> License:
        """Persist a new record; raises DuplicateKey if the key exists."""

    @abstractmethod
    async def find_by_key(self, key: str) -> Optional[License]:
        ...

    @abstractmethod
    async def find_by_owner(self, owner: str) -> list[License]:
        """Records for one owner, most recent first."""

    @abstractmethod
    async def list_all(self, limit: Optional[int] = None) -> list[License]:
        """All records, most recent first, capped at ``limit`` when given."""

    @abstractmethod
    async def mark_revoked(self, key: str) -> Optional[RevokeOutcome]:
        """Atomically set active=false; None when the key is unknown."""

    @abstractmethod
    async def record_address(self, key: str, address: str) -> None:
        """Bind the first validating address. Best-effort, never raises."""

    @abstractmethod
    async def count(self) -> int:
        ...

    async def insert_revoked_stub(self, key: str) -> License:
        return await self.insert(revoked_stub(key))


class SqlLicenseStore(LicenseStore):
    """License store backed by an async SQLAlchemy session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @contextmanager
    def _guard(self, operation: str):
        """Translate driver failures into StoreUnavailable."""
        try:
            yield
        except IntegrityError:
            raise
        except DBAPIError as e:
            logger.error(f"License store {operation} failed: {e}")
            raise StoreUnavailable() from e

    async def insert(self, record: License) -> License:
        self.db.add(record)
        try:
            with self._guard("insert"):
                await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateKey(f"License key already exists: {abbreviate(record.key)}") from e
        except StoreUnavailable:
            await self.db.rollback()
            raise
        return record

    async def find_by_key(self, key: str) -> Optional[License]:
        with self._guard("lookup"):
            result = await self.db.execute(
                select(License)
                .where(License.key == key)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def find_by_owner(self, owner: str) -> list[License]:
        with self._guard("owner query"):
            result = await self.db.execute(
                select(License)
                .where(License.owner == owner)
                .order_by(License.created_at.desc())
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())

    async def list_all(self, limit: Optional[int] = None) -> list[License]:
        query = (
            select(License)
            .order_by(License.created_at.desc())
            .execution_options(populate_existing=True)
        )
        if limit:
            query = query.limit(limit)
        with self._guard("list"):
            result = await self.db.execute(query)
            return list(result.scalars().all())

    async def mark_revoked(self, key: str) -> Optional[RevokeOutcome]:
        # Conditional UPDATE is the compare-and-set: only one caller can
        # observe the row as active and flip it.
        try:
            with self._guard("revoke"):
                result = await self.db.execute(
                    update(License)
                    .where(License.key == key, License.active.is_(True))
                    .values(active=False)
                    .execution_options(synchronize_session=False)
                )
                await self.db.commit()
        except StoreUnavailable:
            await self.db.rollback()
            raise

        changed = result.rowcount == 1
        record = await self.find_by_key(key)
        if record is None:
            return None
        return RevokeOutcome(record=record, changed=changed)

    async def record_address(self, key: str, address: str) -> None:
        try:
            await self.db.execute(
                update(License)
                .where(License.key == key, License.server_ip.is_(None))
                .values(server_ip=address)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Could not record address for {abbreviate(key)}: {e}")
            try:
                await self.db.rollback()
            except SQLAlchemyError:
                logger.warning("Rollback after address recording failure also failed")

    async def count(self) -> int:
        with self._guard("count"):
            result = await self.db.execute(select(func.count()).select_from(License))
            return int(result.scalar_one())


class InMemoryLicenseStore(LicenseStore):
    """Process-local store; mutations are serialised by an asyncio.Lock."""

    def __init__(self):
        self._records: dict[str, License] = {}
        self._lock = asyncio.Lock()

    async def insert(self, record: License) -> License:
        async with self._lock:
            if record.key in self._records:
                raise DuplicateKey(f"License key already exists: {abbreviate(record.key)}")
            self._records[record.key] = record
        return record

    async def find_by_key(self, key: str) -> Optional[License]:
        return self._records.get(key)

    async def find_by_owner(self, owner: str) -> list[License]:
        rows = [r for r in self._records.values() if r.owner == owner]
        return _most_recent_first(rows)

    async def list_all(self, limit: Optional[int] = None) -> list[License]:
        rows = _most_recent_first(list(self._records.values()))
        return rows[:limit] if limit else rows

    async def mark_revoked(self, key: str) -> Optional[RevokeOutcome]:
        async with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            changed = bool(record.active)
            record.active = False
        return RevokeOutcome(record=record, changed=changed)

    async def record_address(self, key: str, address: str) -> None:
        async with self._lock:
            record = self._records.get(key)
            if record is not None and record.server_ip is None:
                record.server_ip = address

    async def count(self) -> int:
        return len(self._records)


def _most_recent_first(rows: list[License]) -> list[License]:
    return sorted(rows, key=lambda r: r.created_at, reverse=True)
