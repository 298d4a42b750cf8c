"""Tailor: declarative, version-aware customization of code-generation templates."""

__version__ = "0.1.0"
__author__ = "Tailor Contributors"
__description__ = "Declarative, version-aware customization of code-generation templates"

from .cache import ResultCache
from .conditions import ConditionEvaluator
from .config import TailorSettings, load_settings
from .context import EvaluationContext
from .engine import CustomizationEngine
from .exceptions import (
    ConfigurationError,
    CustomizationError,
    ManifestError,
    PatternError,
    TailorError,
)
from .library import LibraryArtifact
from .models import CompatibilityManifest, RuleDocument, SourceCategory
from .sources import PrecedenceResolver, SourceAvailability, resolve_sources

__all__ = [
    "CompatibilityManifest",
    "ConditionEvaluator",
    "ConfigurationError",
    "CustomizationEngine",
    "CustomizationError",
    "EvaluationContext",
    "LibraryArtifact",
    "ManifestError",
    "PatternError",
    "PrecedenceResolver",
    "ResultCache",
    "RuleDocument",
    "SourceAvailability",
    "SourceCategory",
    "TailorError",
    "TailorSettings",
    "load_settings",
    "resolve_sources",
]
