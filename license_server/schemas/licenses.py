"""Pydantic schemas for license endpoints."""
from typing import Optional
from datetime import date, datetime
from pydantic import BaseModel, Field, field_validator


class LicenseCreateRequest(BaseModel):
    """Schema for issuing a license."""
    owner: str = Field(..., min_length=1, max_length=255)
    expires_at: Optional[datetime] = None
    notes: str = Field("", max_length=2000)

    @field_validator("owner")
    @classmethod
    def owner_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("owner is required")
        return v

    @field_validator("expires_at", mode="before")
    @classmethod
    def parse_expiry(cls, v):
        """Accept ISO datetimes or plain dates (midnight UTC); empty means never."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        if isinstance(v, str) and len(v.strip()) == 10:
            d = date.fromisoformat(v.strip())
            return datetime(d.year, d.month, d.day)
        return v

    @field_validator("notes", mode="before")
    @classmethod
    def notes_default(cls, v):
        return v or ""


class LicenseCreateResponse(BaseModel):
    """Returned at issuance. Admins can read the key again via list and lookup."""
    key: str
    owner: str
    expires_at: Optional[datetime] = None


class LicenseRevokeRequest(BaseModel):
    key: str = Field(..., min_length=1, max_length=128)


class LicenseRevokeResponse(BaseModel):
    revoked: bool = True
    key: str
    status: str  # "revoked", "already_revoked" or "blacklisted"


class LicenseResponse(BaseModel):
    """Schema for license records in list and lookup responses."""
    key: str
    owner: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    notes: str = ""
    active: bool
    server_ip: Optional[str] = None

    class Config:
        from_attributes = True


class LicenseValidateRequest(BaseModel):
    """A missing or malformed key is reported as an invalid key, not a request error."""
    key: Optional[str] = ""
    ip: Optional[str] = None

    @field_validator("key", mode="before")
    @classmethod
    def lenient_key(cls, v):
        return v if isinstance(v, str) else ""

    @field_validator("ip", mode="before")
    @classmethod
    def lenient_ip(cls, v):
        """The address is advisory; anything unusable is dropped."""
        if not isinstance(v, str) or not v.strip():
            return None
        return v.strip()


class LicenseValidationResponse(BaseModel):
    """Validation result for a single presented key; never exposes other records."""
    valid: bool
    reason: Optional[str] = None
    owner: Optional[str] = None
