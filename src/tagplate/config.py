"""Configuration parsing for tagplate.yaml"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class PathEntry(BaseModel):
    """A search root for a template group"""

    path: str
    priority: float = 0


class EngineConfig(BaseModel):
    """Full tagplate.yaml configuration"""

    cache_prefix: str = Field(default="tpl_", description="Prefix of every cache key")
    suffix: str = Field(default=".tpl", description="File suffix for name@group lookups")
    variants: list[str] = Field(
        default_factory=lambda: ["default"],
        description="Variant subdirectories tried inside each search root",
    )
    paths: dict[str, list[PathEntry]] = Field(
        default_factory=dict, description="Search roots per template group"
    )
    file_finder: bool = Field(
        default=True, description="Resolve identifiers that are literal file paths"
    )
    globals: dict[str, Any] = Field(
        default_factory=dict, description="Variables assigned to every render"
    )

    @field_validator("paths", mode="before")
    @classmethod
    def normalize_paths(cls, value: Any) -> Any:
        """Allow plain strings as shorthand for ``{path: ...}`` entries."""
        if not isinstance(value, dict):
            return value
        normalized = {}
        for group, entries in value.items():
            if isinstance(entries, (str, dict)):
                entries = [entries]
            normalized[group] = [
                {"path": entry} if isinstance(entry, str) else entry
                for entry in entries or []
            ]
        return normalized

    @classmethod
    def load(cls, path: Path) -> "EngineConfig":
        """Load config from yaml file.

        Relative search roots are resolved against the file's directory.
        """
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        config = cls.model_validate(data)
        for entries in config.paths.values():
            for entry in entries:
                root = Path(entry.path).expanduser()
                if not root.is_absolute():
                    entry.path = str(path.parent / root)
        return config
