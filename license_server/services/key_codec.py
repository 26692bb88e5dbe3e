"""License key construction and verification.

Keys have the layout ``<PREFIX>-<B1>-<B2>-<B3>[-<TAG>]`` where each block is
random uppercase hex and ``TAG`` (stateless regime only) is a truncated
HMAC-SHA256 over ``<B1>-<B2>-<B3>``. Signed keys can be verified by anyone
holding the signing secret without a database lookup.
"""
import hashlib
import hmac
import secrets
import string
from dataclasses import dataclass
from typing import Optional

from license_server.config import Settings

BLOCK_COUNT = 3
TAG_LENGTH = 16

_HEX_DIGITS = set(string.hexdigits.upper())


@dataclass(frozen=True)
class KeyCodecConfig:
    """Immutable codec configuration, built once at process start."""
    prefix: str = "ECLIPSE"
    secret: str = ""
    block_bytes: int = 2
    signed: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "KeyCodecConfig":
        return cls(
            prefix=settings.KEY_PREFIX.upper(),
            secret=settings.LICENSE_SECRET,
            block_bytes=settings.KEY_BLOCK_BYTES,
            signed=settings.LICENSE_REGIME == "stateless",
        )


@dataclass(frozen=True)
class ParsedKey:
    """Structural pieces of a license key."""
    prefix: str
    blocks: tuple[str, ...]
    tag: Optional[str] = None

    @property
    def identifier(self) -> str:
        """The segment the tag is computed over."""
        return "-".join(self.blocks)


class KeyCodec:
    """Builds license keys and, for signed keys, checks their tag."""

    def __init__(self, config: KeyCodecConfig):
        if config.signed and not config.secret:
            raise ValueError("A signing secret is required for signed keys")
        self.config = config

    def generate(self) -> str:
        """Generate a new key from a cryptographically secure random source."""
        blocks = [
            secrets.token_bytes(self.config.block_bytes).hex().upper()
            for _ in range(BLOCK_COUNT)
        ]
        identifier = "-".join(blocks)
        key = f"{self.config.prefix}-{identifier}"
        if self.config.signed:
            key = f"{key}-{self._tag(identifier)}"
        return key

    def parse(self, key: str) -> Optional[ParsedKey]:
        """Split a key into its parts, or return None if it is malformed."""
        if not isinstance(key, str):
            return None

        parts = key.strip().upper().split("-")
        expected = BLOCK_COUNT + 2 if self.config.signed else BLOCK_COUNT + 1
        if len(parts) != expected or parts[0] != self.config.prefix:
            return None

        block_len = self.config.block_bytes * 2
        blocks = tuple(parts[1:BLOCK_COUNT + 1])
        for block in blocks:
            if len(block) != block_len or not _is_hex(block):
                return None

        tag = None
        if self.config.signed:
            tag = parts[-1]
            if len(tag) != TAG_LENGTH or not _is_hex(tag):
                return None

        return ParsedKey(prefix=parts[0], blocks=blocks, tag=tag)

    def matches_format(self, key: str) -> bool:
        return self.parse(key) is not None

    def verify(self, key: str) -> bool:
        """
        Check a signed key's tag in constant time.

        Never consults persistent state; revocation is a separate concern.

        Args:
            key: License key as presented by the caller

        Returns:
            True only for a well-formed key whose tag matches
        """
        if not self.config.signed:
            return False

        parsed = self.parse(key)
        if parsed is None:
            return False

        expected = self._tag(parsed.identifier)
        return hmac.compare_digest(expected.encode(), parsed.tag.encode())

    def normalize(self, key: str) -> str:
        """Canonical form used for store lookups."""
        return key.strip().upper()

    def _tag(self, identifier: str) -> str:
        digest = hmac.new(
            self.config.secret.encode("utf-8"),
            identifier.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return digest[:TAG_LENGTH].upper()


def _is_hex(value: str) -> bool:
    return bool(value) and all(ch in _HEX_DIGITS for ch in value)


def abbreviate(key: str) -> str:
    """Shorten a key for log output (prefix and first block only)."""
    parts = (key or "").split("-")
    if len(parts) < 2:
        return "<malformed>"
    return f"{parts[0]}-{parts[1]}-…"
