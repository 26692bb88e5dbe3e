"""
Bot configuration management.

Loads configuration from .env file and environment variables.
"""

import os
from pathlib import Path
from typing import Optional


class BotConfig:
    """Bot configuration."""

    def __init__(self, env_path: Optional[Path] = None):
        """Initialize config from environment."""
        self._load_env(env_path or Path.cwd() / '.env')

    def _load_env(self, env_path: Path):
        """Load .env file if it exists (real environment variables win)."""
        if env_path.exists():
            with open(env_path) as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#') and '=' in line:
                        key, value = line.split('=', 1)
                        os.environ.setdefault(key.strip(), value.strip())

    @property
    def license_server(self) -> str:
        """Base URL of the license server, e.g. http://localhost:3000."""
        return os.getenv('LICENSE_SERVER', 'http://localhost:3000')

    @property
    def admin_secret(self) -> str:
        """Must match the server's ADMIN_SECRET."""
        return os.getenv('ADMIN_SECRET', '')

    @property
    def admin_role_id(self) -> Optional[str]:
        """Chat role allowed to manage licenses. Unset falls back to the manage-guild permission."""
        return os.getenv('ADMIN_ROLE_ID') or None

    @property
    def list_limit(self) -> int:
        """Rows shown by listlicenses."""
        return int(os.getenv('BOT_LIST_LIMIT', '20'))

    @property
    def timeout_seconds(self) -> float:
        return float(os.getenv('BOT_HTTP_TIMEOUT', '10'))

    @property
    def log_level(self) -> str:
        """Logging level."""
        return os.getenv('LOG_LEVEL', 'INFO')


# Global config instance
config = BotConfig()
