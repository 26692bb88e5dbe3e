"""Database models for the license key server."""
from license_server.models.license import License

__all__ = [
    "License",
]
