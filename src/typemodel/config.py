"""Configuration for typemodel.

Settings come from an optional YAML file (the same keys as the command line
flags) and are then overridden by explicit command line values.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .parser.annotations import parse_arguments

DEFAULT_CONFIG_NAME = ".typemodel.yml"


class Settings(BaseModel):
    """typemodel settings."""

    sources: List[Path] = Field(default_factory=list, description="Files or directories to scan")
    exclude_sources: List[Path] = Field(default_factory=list, description="Paths to leave out")
    cache_path: Path = Field(
        default_factory=lambda: Path("~/.cache/typemodel").expanduser(),
        description="Directory holding parse cache entries",
    )
    disable_cache: bool = False
    serial_parse: bool = False
    parse_documentation: bool = False
    force_parse: List[str] = Field(
        default_factory=list,
        description="File extensions parsed even when they carry the generated-file header",
    )
    workers: Optional[int] = Field(default=None, ge=1)
    max_entries_per_path: int = Field(default=4, ge=1)
    args: List[str] = Field(default_factory=list, description="Extra key=value arguments for renderers")
    log_level: str = "WARNING"

    @field_validator("sources", "exclude_sources", mode="before")
    def _coerce_paths(cls, value: Any) -> List[Path]:
        if value is None:
            return []
        if isinstance(value, (str, Path)):
            value = [value]
        return [Path(item).expanduser() for item in value]

    @field_validator("cache_path", mode="before")
    def _coerce_path(cls, value: str | Path) -> Path:
        return Path(value).expanduser()

    @field_validator("force_parse", "args", mode="before")
    def _coerce_list(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return [str(item) for item in value]

    @property
    def arguments(self) -> Dict[str, Any]:
        return parse_arguments(self.args)

    def resolved_against(self, base: Path) -> "Settings":
        """Anchor relative source paths at `base` (the config file's directory)."""
        return self.model_copy(
            update={
                "sources": [_anchor(path, base) for path in self.sources],
                "exclude_sources": [_anchor(path, base) for path in self.exclude_sources],
                "cache_path": _anchor(self.cache_path, base),
            }
        )


def _anchor(path: Path, base: Path) -> Path:
    return path if path.is_absolute() else (base / path).resolve()


def load_settings(config_path: Optional[Path] = None, **overrides: Any) -> Settings:
    """Load configuration from YAML if present, then apply non-None overrides."""
    path = config_path or Path.cwd() / DEFAULT_CONFIG_NAME
    data: Dict[str, Any] = {}
    if path.exists():
        try:
            loaded = yaml.safe_load(path.read_text())
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError.invalid_config(path, str(exc)) from exc
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigurationError.invalid_config(path, "expected a mapping at the top level")
        data = loaded or {}
    elif config_path is not None:
        raise ConfigurationError.invalid_config(path, "file does not exist")

    try:
        settings = Settings(**data)
    except ValidationError as exc:
        raise ConfigurationError.invalid_config(path, str(exc)) from exc
    settings = settings.resolved_against(path.resolve().parent)

    updates = {key: value for key, value in overrides.items() if value is not None}
    if not updates:
        return settings
    try:
        merged = Settings(**{**settings.model_dump(), **updates})
    except ValidationError as exc:
        raise ConfigurationError.invalid_config("command line", str(exc)) from exc
    return merged.resolved_against(Path.cwd())
