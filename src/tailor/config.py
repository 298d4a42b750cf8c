"""Settings document shared by the precedence resolver and the engine."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import __version__
from .exceptions import ConfigurationError
from .models import SourceCategory
from .schema import DEFAULT_MAX_FALLBACK_DEPTH

DEFAULT_GENERATOR = "spring"


class TailorSettings(BaseModel):
    """Host-side settings for one customization run."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    generator_name: str = Field(
        default=DEFAULT_GENERATOR,
        alias="generatorName",
        description="Downstream generator whose templates are customized",
    )
    generator_version: str | None = Field(
        default=None,
        alias="generatorVersion",
        description="Detected generator version; None or 'unknown' when undetected",
    )
    tool_version: str = Field(default=__version__, alias="toolVersion")
    template_sources: tuple[str, ...] = Field(
        default_factory=lambda: tuple(c.value for c in SourceCategory.default_order()),
        alias="templateSources",
        description="Source categories, highest precedence first",
    )
    user_templates_dir: Path | None = Field(default=None, alias="userTemplatesDir")
    user_customizations_dir: Path | None = Field(default=None, alias="userCustomizationsDir")
    project_properties: dict[str, str] = Field(
        default_factory=dict,
        alias="projectProperties",
    )
    max_fallback_depth: int = Field(
        default=DEFAULT_MAX_FALLBACK_DEPTH,
        alias="maxFallbackDepth",
        ge=1,
    )
    debug: bool = False

    @field_validator("project_properties", mode="before")
    @classmethod
    def stringify_properties(cls, v: Any) -> Any:
        """Property values are compared as strings; YAML may hand us bools or numbers."""
        if isinstance(v, Mapping):
            return {str(key): _property_text(value) for key, value in v.items()}
        return v

    @field_validator("template_sources", mode="before")
    @classmethod
    def strip_sources(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return tuple(str(item).strip() for item in v)
        return v


def _property_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else str(value)


def load_settings(path: Path) -> TailorSettings:
    """Load settings from a YAML file.

    Relative directories are resolved against the file's parent.

    Raises:
        ConfigurationError: If the file cannot be read or holds invalid settings
    """
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        msg = f"Failed to parse settings YAML {path}: {e}"
        raise ConfigurationError(msg, details={"source": str(path)}) from e
    except OSError as e:
        msg = f"Failed to read settings file {path}: {e}"
        raise ConfigurationError(msg, details={"source": str(path)}) from e

    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        msg = f"Settings file {path} must contain a map"
        raise ConfigurationError(msg, details={"source": str(path)})

    try:
        settings = TailorSettings.model_validate(data)
    except ValidationError as e:
        msg = f"Settings validation failed for {path}: {e}"
        raise ConfigurationError(msg, details={"source": str(path)}) from e

    base = path.parent
    updates: dict[str, Path] = {}
    for name in ("user_templates_dir", "user_customizations_dir"):
        directory = getattr(settings, name)
        if directory is not None and not directory.is_absolute():
            updates[name] = base / directory
    return settings.model_copy(update=updates) if updates else settings
