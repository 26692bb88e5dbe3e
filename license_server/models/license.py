"""License model for the license key server."""
from datetime import datetime
from sqlalchemy import String, Text, Boolean, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from license_server.database import Base

# Wide enough for any textual IPv4 or IPv6 address
SERVER_IP_LENGTH = 45


class License(Base):
    """An issued (or deny-listed) license key."""

    __tablename__ = "licenses"

    # Primary key; the unique constraint is what prevents duplicate issuance
    key: Mapped[str] = mapped_column(String(128), primary_key=True)

    # Owner is an opaque external identity (e.g. a chat user id)
    owner: Mapped[str] = mapped_column(String(255), nullable=False)

    # First address seen on a successful validation (advisory only)
    server_ip: Mapped[str | None] = mapped_column(String(SERVER_IP_LENGTH), nullable=True)

    # Flips true -> false exactly once on revocation
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Timestamps (naive UTC)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_license_owner", "owner"),
        Index("idx_license_created_at", "created_at"),
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.utcnow())

    def __repr__(self) -> str:
        return f"<License(owner={self.owner}, active={self.active}, expires_at={self.expires_at})>"
