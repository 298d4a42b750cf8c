"""Template feature detection.

Features are coarse capabilities of a template (validation annotations,
builder support, ...) detected by probing for literal markers. Names with a
``custom_`` prefix are turned into the conventional mustache tags for that
name instead of being looked up in the built-in table.
"""

from __future__ import annotations

from typing import Protocol

FEATURE_PATTERNS: dict[str, tuple[str, ...]] = {
    "validation_support": (
        "{{#hasValidation}}", "{{#isValid}}", "{{#validation}}",
        "@Valid", "@NotNull", "@Size", "@Pattern",
    ),
    "nullable_support": (
        "{{#isNullable}}", "{{#nullable}}", "{{#allowNull}}",
        "@Nullable", "Optional<",
    ),
    "discriminator_support": (
        "{{#hasDiscriminator}}", "{{#discriminator}}", "{{#inheritance}}",
        "@JsonSubTypes", "@JsonTypeInfo",
    ),
    "imports_section": (
        "{{#imports}}", "{{#import}}", "import ", "{{>imports}}",
    ),
    "package_declaration": (
        "{{#package}}", "{{packageName}}", "package ",
    ),
    "documentation_support": (
        "{{#description}}", "{{#notes}}", "{{#summary}}",
        "/**", "@ApiModel", "@Schema",
    ),
    "serialization_support": (
        "{{#jackson}}", "@JsonProperty", "@JsonInclude",
        "@JsonIgnore", "@JsonSerialize", "@JsonDeserialize",
    ),
    "builder_pattern": (
        "{{#generateBuilders}}", ".builder()", "@Builder",
        "@SuperBuilder", "{{#hasBuilder}}",
    ),
    "fluent_setters": (
        "{{#fluent}}", "{{#chainedAccessors}}",
        "@Accessors(fluent", "return this;",
    ),
}

CUSTOM_FEATURE_PREFIX = "custom_"


class FeatureProbe(Protocol):
    """Anything that can answer whether a template has a named feature."""

    def has_feature(self, template: str, feature_name: str) -> bool:
        """Check ``template`` for ``feature_name``."""
        ...


def is_known_feature(feature_name: str) -> bool:
    """Whether a feature name is built in or uses the custom prefix."""
    return feature_name in FEATURE_PATTERNS or feature_name.startswith(CUSTOM_FEATURE_PREFIX)


def _to_camel_case(snake_case: str) -> str:
    head, *rest = snake_case.split("_")
    return head.lower() + "".join(part[:1].upper() + part[1:].lower() for part in rest)


class FeatureDetector:
    """Default feature probe backed by :data:`FEATURE_PATTERNS`."""

    def has_feature(self, template: str, feature_name: str) -> bool:
        """Check whether ``template`` exhibits ``feature_name``.

        Unknown built-in names are reported as absent.
        """
        if template is None or not feature_name:
            return False

        if feature_name.startswith(CUSTOM_FEATURE_PREFIX):
            return any(probe in template for probe in self.custom_probes(feature_name))

        patterns = FEATURE_PATTERNS.get(feature_name)
        if patterns is None:
            return False
        return any(pattern in template for pattern in patterns)

    def custom_probes(self, feature_name: str) -> list[str]:
        """Mustache tags that indicate a ``custom_`` feature."""
        base = feature_name[len(CUSTOM_FEATURE_PREFIX):]
        camel = _to_camel_case(base)
        capitalized = camel[:1].upper() + camel[1:]
        return [
            f"{{{{#{camel}}}}}",
            f"{{{{{camel}}}}}",
            f"{{{{#has{capitalized}}}}}",
            f"{{{{#is{capitalized}}}}}",
            f"{{{{>{camel}}}}}",
            f"{{{{>{base}}}}}",
        ]

    def detect_all(self, template: str) -> dict[str, bool]:
        """Evaluate every built-in feature against ``template``."""
        return {name: self.has_feature(template, name) for name in FEATURE_PATTERNS}
