"""Best-effort owner notification over an outbound webhook."""
import logging
from typing import Optional

import httpx

from license_server.config import Settings
from license_server.models.license import License
from license_server.services.key_codec import abbreviate

logger = logging.getLogger(__name__)


def build_key_message(license: License) -> str:
    """Text delivered to the owner alongside their new key."""
    lines = [
        "🔑 **Your License Key**",
        f"```{license.key}```",
        "Add this to your `config.yml` under `license.key`.",
    ]
    if license.expires_at:
        lines.append(f"⏰ Expires: **{license.expires_at.date().isoformat()}**")
    else:
        lines.append("✅ Never expires")
    if license.notes:
        lines.append(f"📝 Notes: {license.notes}")
    return "\n".join(lines)


class OwnerNotifier:
    """Posts newly issued keys to a webhook that relays them to the owner."""

    def __init__(
        self,
        webhook_url: str = "",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize notifier.

        Args:
            webhook_url: Relay endpoint; notifications are skipped when empty
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "OwnerNotifier":
        return cls(settings.NOTIFY_WEBHOOK_URL, settings.NOTIFY_TIMEOUT_SECONDS)

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def notify_issued(self, license: License) -> bool:
        """
        Send the owner their key.

        Args:
            license: Freshly issued license

        Returns:
            True if the relay accepted the notification, False otherwise
        """
        if not self.enabled:
            logger.debug("NOTIFY_WEBHOOK_URL not configured, skipping owner notification")
            return False

        payload = {
            "owner": license.owner,
            "key": license.key,
            "expires_at": license.expires_at.isoformat() if license.expires_at else None,
            "notes": license.notes,
            "message": build_key_message(license),
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=payload)

            if response.is_success:
                logger.info(f"Owner {license.owner} notified of key {abbreviate(license.key)}")
                return True

            logger.warning(
                f"Owner notification rejected: {response.status_code} - {response.text}"
            )
            return False

        except httpx.HTTPError as e:
            logger.warning(f"Owner notification failed: {e}")
            return False
