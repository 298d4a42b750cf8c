"""Core data models for the Tailor customization engine."""

from __future__ import annotations

import json
from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class RuleModel(BaseModel):
    """Base for rule document types: closed key set, immutable once bound."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class ReplacementType(str, Enum):
    """How a replacement's ``find`` value is interpreted."""

    STRING = "string"
    REGEX = "regex"


class ConditionSet(RuleModel):
    """Predicate over an evaluation context.

    Every clause that is present must hold. ``allOf``, ``anyOf`` and ``not``
    nest further condition sets and take part in the same conjunction.
    """

    generator_version: str | None = Field(
        default=None,
        alias="generatorVersion",
        description="Version constraint such as '>=7.0.0' or '^7.1'",
    )
    template_contains: str | None = Field(default=None, alias="templateContains")
    template_not_contains: str | None = Field(default=None, alias="templateNotContains")
    template_contains_all: tuple[str, ...] | None = Field(
        default=None,
        alias="templateContainsAll",
    )
    template_contains_any: tuple[str, ...] | None = Field(
        default=None,
        alias="templateContainsAny",
    )
    has_feature: str | None = Field(default=None, alias="hasFeature")
    has_all_features: tuple[str, ...] | None = Field(default=None, alias="hasAllFeatures")
    has_any_features: tuple[str, ...] | None = Field(default=None, alias="hasAnyFeatures")
    project_property: str | None = Field(
        default=None,
        alias="projectProperty",
        description="'key' (present and not 'false') or 'key=value'",
    )
    environment_variable: str | None = Field(
        default=None,
        alias="environmentVariable",
        description="'KEY' (present, non-empty, not 'false') or 'KEY=value'",
    )
    build_type: str | None = Field(default=None, alias="buildType")
    all_of: tuple[ConditionSet, ...] | None = Field(default=None, alias="allOf")
    any_of: tuple[ConditionSet, ...] | None = Field(default=None, alias="anyOf")
    not_: ConditionSet | None = Field(default=None, alias="not")


class RuleMetadata(RuleModel):
    """Descriptive metadata carried by a rule document."""

    name: str | None = None
    description: str | None = None
    version: str | None = None
    author: str | None = None

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> Any:
        """YAML reads ``version: 1.0`` as a number."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class Insertion(RuleModel):
    """Insert content relative to a literal anchor or at the start/end."""

    after: str | None = None
    before: str | None = None
    at: str | None = Field(default=None, description="'start' or 'end'")
    content: str
    conditions: ConditionSet | None = None
    fallback: Insertion | None = None


class Replacement(RuleModel):
    """Replace every occurrence of a literal string or regular expression."""

    find: str
    replace: str
    kind: ReplacementType = Field(default=ReplacementType.STRING, alias="type")
    conditions: ConditionSet | None = None
    fallback: Replacement | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, v: Any) -> Any:
        """Accept 'REGEX', 'Regex' and friends."""
        if isinstance(v, str):
            return v.strip().lower()
        return v


class FindPattern(RuleModel):
    """Ordered literal variants of one logical pattern."""

    type: str
    variants: tuple[str, ...]


class SmartReplacement(RuleModel):
    """Replacement whose target is resolved from candidates or a concept name."""

    find_any: tuple[str, ...] | None = Field(default=None, alias="findAny")
    semantic: str | None = None
    find_pattern: FindPattern | None = Field(default=None, alias="findPattern")
    replace: str
    conditions: ConditionSet | None = None


class PatternLocation(RuleModel):
    """One candidate anchor of a ``findInsertionPoint`` list."""

    after: str | None = None
    before: str | None = None


class InsertionPoint(RuleModel):
    """Ordered anchor candidates; the first one present wins."""

    patterns: tuple[PatternLocation, ...]


class SmartInsertion(RuleModel):
    """Insertion whose location is resolved from candidates or a concept name."""

    semantic: str | None = None
    find_insertion_point: InsertionPoint | None = Field(
        default=None,
        alias="findInsertionPoint",
    )
    content: str
    conditions: ConditionSet | None = None
    fallback: Insertion | None = None


class RuleDocument(RuleModel):
    """A parsed customization document for one template."""

    metadata: RuleMetadata | None = None
    conditions: ConditionSet | None = None
    insertions: tuple[Insertion, ...] = ()
    replacements: tuple[Replacement, ...] = ()
    smart_replacements: tuple[SmartReplacement, ...] = Field(
        default=(),
        alias="smartReplacements",
    )
    smart_insertions: tuple[SmartInsertion, ...] = Field(
        default=(),
        alias="smartInsertions",
    )
    partials: Mapping[str, str] = Field(default_factory=dict, validate_default=True)

    @field_validator("partials", mode="after")
    @classmethod
    def freeze_partials(cls, v: Mapping[str, str]) -> Mapping[str, str]:
        """Store partials read-only, like the rule tuples."""
        return MappingProxyType(dict(v))

    @field_serializer("partials")
    def dump_partials(self, v: Mapping[str, str]) -> dict[str, str]:
        return dict(v)

    @property
    def rule_count(self) -> int:
        """Total number of rules across all categories."""
        return (
            len(self.insertions)
            + len(self.replacements)
            + len(self.smart_replacements)
            + len(self.smart_insertions)
        )

    def category_counts(self) -> dict[str, int]:
        """Rule counts keyed by their document key."""
        return {
            "insertions": len(self.insertions),
            "replacements": len(self.replacements),
            "smartReplacements": len(self.smart_replacements),
            "smartInsertions": len(self.smart_insertions),
        }

    def fingerprint_text(self) -> str:
        """Stable textual serialization used for result memoization."""
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        return json.dumps(data, sort_keys=True, separators=(",", ":"))


class SourceCategory(str, Enum):
    """Origins of template content, declared from highest to lowest precedence."""

    USER_TEMPLATES = "user-templates"
    USER_CUSTOMIZATIONS = "user-customizations"
    LIBRARY_TEMPLATES = "library-templates"
    LIBRARY_CUSTOMIZATIONS = "library-customizations"
    PLUGIN_CUSTOMIZATIONS = "plugin-customizations"
    OPENAPI_GENERATOR = "openapi-generator"

    @property
    def precedence(self) -> int:
        """1 is the highest precedence."""
        return list(SourceCategory).index(self) + 1

    @property
    def description(self) -> str:
        """Human-readable description of the category."""
        return _SOURCE_DESCRIPTIONS[self]

    def outranks(self, other: SourceCategory) -> bool:
        """Whether this category wins over ``other`` on overlapping edits."""
        return self.precedence < other.precedence

    @classmethod
    def default_order(cls) -> list[SourceCategory]:
        """All categories, highest precedence first."""
        return list(cls)


_SOURCE_DESCRIPTIONS = {
    SourceCategory.USER_TEMPLATES: "Explicit template files in the user template directory",
    SourceCategory.USER_CUSTOMIZATIONS: "Rule documents in the user customizations directory",
    SourceCategory.LIBRARY_TEMPLATES: "Templates shipped by library artifacts",
    SourceCategory.LIBRARY_CUSTOMIZATIONS: "Rule documents shipped by library artifacts",
    SourceCategory.PLUGIN_CUSTOMIZATIONS: "Built-in rule documents provided by the host",
    SourceCategory.OPENAPI_GENERATOR: "Base generator templates (always available)",
}


class CompatibilityManifest(BaseModel):
    """Per-library declaration of supported generators and minimum versions."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    name: str | None = None
    version: str | None = None
    description: str | None = None
    supported_generators: tuple[str, ...] = Field(
        default=(),
        alias="supportedGenerators",
        description="Empty means every generator is supported",
    )
    min_tool_version: str | None = Field(default=None, alias="minToolVersion")
    min_generator_version: str | None = Field(default=None, alias="minGeneratorVersion")
    max_generator_version: str | None = Field(default=None, alias="maxGeneratorVersion")
    features: dict[str, Any] = Field(default_factory=dict)
    dependencies: tuple[str, ...] = ()

    def supports_generator(self, generator_name: str) -> bool:
        """Check whether content from this library may target ``generator_name``."""
        return not self.supported_generators or generator_name in self.supported_generators
