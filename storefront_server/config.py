"""Settings resolved from environment variables."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .models import AuthCredentials


def _get_env(*keys: str, default: Optional[str] = None) -> Optional[str]:
    for key in keys:
        value = os.environ.get(key)
        if value is not None and value.strip() != "":
            return value.strip()
    return default


class Settings(BaseModel):
    """Runtime configuration of the storefront."""

    api_url: str = Field(default="http://localhost:3000", description="Record store base URL")
    catalog_path: str = Field(default="/products", description="Catalog collection path")
    storage_file: str = Field(
        default_factory=lambda: str(Path.home() / ".storefront_storage.json"),
        description="JSON file backing local storage",
    )
    timeout: float = Field(default=30.0, description="Transport timeout in seconds")
    log_level: str = Field(default="INFO")
    email: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``STOREFRONT_*`` environment variables."""
        values: dict = {
            "api_url": _get_env("STOREFRONT_API_URL"),
            "catalog_path": _get_env("STOREFRONT_CATALOG_PATH"),
            "storage_file": _get_env("STOREFRONT_STORAGE_FILE"),
            "timeout": _get_env("STOREFRONT_TIMEOUT"),
            "log_level": _get_env("STOREFRONT_LOG_LEVEL"),
            "email": _get_env("STOREFRONT_EMAIL"),
            "password": _get_env("STOREFRONT_PASSWORD"),
        }
        return cls(**{k: v for k, v in values.items() if v is not None})

    @property
    def credentials(self) -> Optional[AuthCredentials]:
        if self.email and self.password:
            return AuthCredentials(email=self.email, password=self.password)
        return None
