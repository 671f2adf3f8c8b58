"""
Shelter Registry Module
=======================

Manages shelter configurations loaded from YAML files. Shelters define
which sites are scraped, with which adapter and options.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy.orm import Session

from dogpile_sync.core.schema import Shelter
from dogpile_sync.db.repositories import ShelterRepository
from dogpile_sync.ingestion.adapters.base import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)


@dataclass
class ShelterConfig:
    """Configuration for a single shelter source."""

    slug: str
    base_url: str
    adapter: str = "fixture"
    name: str = ""
    city: str = ""
    active: bool = True
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ShelterConfig:
        """Create from dictionary."""
        return cls(
            slug=data["slug"],
            base_url=data["base_url"],
            adapter=data.get("adapter", "fixture"),
            name=data.get("name", data["slug"]),
            city=data.get("city", ""),
            active=data.get("active", True),
            options=data.get("options", {}),
        )

    def to_shelter(self) -> Shelter:
        return Shelter(
            slug=self.slug,
            name=self.name,
            base_url=self.base_url,
            city=self.city,
            adapter=self.adapter,
            options=self.options,
            active=self.active,
        )


@dataclass
class GlobalConfig:
    """Global configuration settings."""

    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: int = 30
    sync_interval_minutes: int = 60

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GlobalConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            user_agent=data.get("user_agent", DEFAULT_USER_AGENT),
            request_timeout=int(data.get("request_timeout", 30)),
            sync_interval_minutes=int(data.get("sync_interval_minutes", 60)),
        )


class ShelterRegistry:
    """
    Registry for shelter source configurations.

    Loads shelter definitions from a YAML file and provides methods
    to query them.
    """

    def __init__(self) -> None:
        self._shelters: dict[str, ShelterConfig] = {}
        self._global_config: GlobalConfig = GlobalConfig()
        self._config_path: Path | None = None

    @property
    def global_config(self) -> GlobalConfig:
        """Get global configuration."""
        return self._global_config

    def load_config(self, config_path: Path | str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the shelters.yaml file
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        self._config_path = config_path
        self._global_config = GlobalConfig.from_dict(data.get("global"))

        self._shelters.clear()
        for shelter_data in data.get("shelters", []):
            shelter = ShelterConfig.from_dict(shelter_data)
            self._shelters[shelter.slug] = shelter

    def get_shelter(self, slug: str) -> ShelterConfig | None:
        """
        Get a shelter configuration by slug.

        Returns:
            ShelterConfig if found, None otherwise
        """
        return self._shelters.get(slug)

    def list_shelters(self) -> list[ShelterConfig]:
        """Get all registered shelters."""
        return list(self._shelters.values())

    def list_active_shelters(self) -> list[ShelterConfig]:
        """Get all active shelters."""
        return [s for s in self._shelters.values() if s.active]


# Global registry instance
_default_registry: ShelterRegistry | None = None


def get_default_registry() -> ShelterRegistry:
    """
    Get the default shelter registry instance.

    Loads configuration from the path specified in SHELTERS_CONFIG_PATH
    environment variable, or falls back to config/shelters.yaml.
    """
    global _default_registry

    if _default_registry is None:
        _default_registry = ShelterRegistry()

        config_path = os.environ.get("SHELTERS_CONFIG_PATH")
        if config_path:
            path = Path(config_path)
        else:
            module_dir = Path(__file__).parent
            project_root = module_dir.parent.parent
            path = project_root / "config" / "shelters.yaml"

        if path.exists():
            _default_registry.load_config(path)
        else:
            logger.warning(f"Shelter configuration not found at {path}")

    return _default_registry


def reset_default_registry() -> None:
    """Reset the default registry (useful for testing)."""
    global _default_registry
    _default_registry = None


def seed_shelters(session: Session, registry: ShelterRegistry | None = None) -> list[Shelter]:
    """
    Upsert every registry shelter into the store, matched by slug.

    Existing shelters keep their id, status and last_sync.

    Returns:
        The stored shelters.
    """
    registry = registry or get_default_registry()
    repo = ShelterRepository(session)
    stored = [repo.upsert(config.to_shelter()) for config in registry.list_shelters()]
    session.commit()
    logger.info(f"Seeded {len(stored)} shelter(s)")
    return stored
