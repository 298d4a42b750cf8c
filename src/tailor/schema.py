"""Strict validation of rule documents.

Validation happens in three passes:

1. ``validate_structure`` walks the raw YAML tree and rejects unknown keys
   with targeted guidance, then checks value types against
   :data:`RULE_DOCUMENT_SCHEMA`.
2. ``check_completeness`` compares per-category element counts of the raw
   tree and the bound document, so that data silently dropped while binding
   is reported instead of producing a partial rule set.
3. ``validate_rules`` checks rule semantics on the bound document and reports
   every problem at once.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

import jsonschema

from .exceptions import ConfigurationError, PatternError
from .matcher import compile_replacement
from .features import FEATURE_PATTERNS, is_known_feature
from .models import (
    ConditionSet,
    FindPattern,
    Insertion,
    InsertionPoint,
    PatternLocation,
    Replacement,
    ReplacementType,
    RuleDocument,
    RuleMetadata,
    SmartInsertion,
    SmartReplacement,
)
from .semantic import SEMANTIC_PATTERNS, is_known_semantic
from .versions import CONSTRAINT_PATTERN

DEFAULT_MAX_FALLBACK_DEPTH = 8

ROOT_KEYS = frozenset({
    "metadata", "conditions", "insertions", "replacements",
    "smartReplacements", "smartInsertions", "partials",
})
METADATA_KEYS = frozenset({"name", "description", "version", "author"})
INSERTION_KEYS = frozenset({"after", "before", "at", "content", "conditions", "fallback"})
REPLACEMENT_KEYS = frozenset({"find", "replace", "type", "conditions", "fallback"})
SMART_REPLACEMENT_KEYS = frozenset({"findAny", "semantic", "findPattern", "replace", "conditions"})
SMART_INSERTION_KEYS = frozenset({
    "semantic", "findInsertionPoint", "content", "conditions", "fallback",
})
FIND_PATTERN_KEYS = frozenset({"type", "variants"})
INSERTION_POINT_KEYS = frozenset({"patterns"})
PATTERN_LOCATION_KEYS = frozenset({"after", "before"})
CONDITION_KEYS = frozenset({
    "generatorVersion", "templateContains", "templateNotContains",
    "templateContainsAll", "templateContainsAny", "hasFeature",
    "hasAllFeatures", "hasAnyFeatures", "projectProperty",
    "environmentVariable", "buildType", "allOf", "anyOf", "not",
})

RULE_LIST_KEYS = ("insertions", "replacements", "smartReplacements", "smartInsertions")

# Common mistakes, keyed by (section, lower-cased key).
KEY_GUIDANCE: dict[tuple[str, str], str] = {
    ("insertions", "pattern"): "Use 'after' or 'before' instead of 'pattern'",
    ("insertions", "position"): "Use 'after', 'before', or 'at' instead of 'position'",
    ("insertions", "find"): "Insertions locate anchors with 'after' or 'before', not 'find'",
    ("replacements", "pattern"): "Use 'find' instead of 'pattern'",
    ("replacements", "with"): "Use 'replace' instead of 'with'",
    ("replacements", "replacement"): "Use 'replace' instead of 'replacement'",
    ("replacements", "regex"): "Use 'type: regex' together with 'find'",
    ("smartReplacements", "find"): "Use 'findAny' (a list of candidates) instead of 'find'",
    ("smartInsertions", "after"): "Use 'findInsertionPoint' with a 'patterns' list of after/before anchors",
    ("smartInsertions", "before"): "Use 'findInsertionPoint' with a 'patterns' list of after/before anchors",
}

UNSAFE_CONTENT = (
    "<%", "%>", "${java:", "Runtime.getRuntime", "ProcessBuilder",
    "System.exit", "<script", "javascript:", "file://", "exec(",
)

PARTIAL_NAME = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

RULE_DOCUMENT_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Tailor Rule Document",
    "type": "object",
    "additionalProperties": False,
    "definitions": {
        "conditions": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "generatorVersion": {"type": "string"},
                "templateContains": {"type": "string"},
                "templateNotContains": {"type": "string"},
                "templateContainsAll": _STRING_LIST,
                "templateContainsAny": _STRING_LIST,
                "hasFeature": {"type": "string"},
                "hasAllFeatures": _STRING_LIST,
                "hasAnyFeatures": _STRING_LIST,
                "projectProperty": {"type": "string"},
                "environmentVariable": {"type": "string"},
                "buildType": {"type": "string"},
                "allOf": {"type": "array", "items": {"$ref": "#/definitions/conditions"}},
                "anyOf": {"type": "array", "items": {"$ref": "#/definitions/conditions"}},
                "not": {"$ref": "#/definitions/conditions"},
            },
        },
        "insertion": {
            "type": "object",
            "additionalProperties": False,
            "required": ["content"],
            "properties": {
                "after": {"type": "string"},
                "before": {"type": "string"},
                "at": {"type": "string"},
                "content": {"type": "string"},
                "conditions": {"$ref": "#/definitions/conditions"},
                "fallback": {"$ref": "#/definitions/insertion"},
            },
        },
        "replacement": {
            "type": "object",
            "additionalProperties": False,
            "required": ["find", "replace"],
            "properties": {
                "find": {"type": "string"},
                "replace": {"type": "string"},
                "type": {"type": "string", "pattern": "(?i)^\\s*(string|regex)\\s*$"},
                "conditions": {"$ref": "#/definitions/conditions"},
                "fallback": {"$ref": "#/definitions/replacement"},
            },
        },
        "smartReplacement": {
            "type": "object",
            "additionalProperties": False,
            "required": ["replace"],
            "properties": {
                "findAny": _STRING_LIST,
                "semantic": {"type": "string"},
                "findPattern": {
                    "type": "object",
                    "additionalProperties": False,
                    "required": ["type", "variants"],
                    "properties": {
                        "type": {"type": "string"},
                        "variants": _STRING_LIST,
                    },
                },
                "replace": {"type": "string"},
                "conditions": {"$ref": "#/definitions/conditions"},
            },
        },
        "smartInsertion": {
            "type": "object",
            "additionalProperties": False,
            "required": ["content"],
            "properties": {
                "semantic": {"type": "string"},
                "findInsertionPoint": {
                    "type": "object",
                    "additionalProperties": False,
                    "required": ["patterns"],
                    "properties": {
                        "patterns": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "additionalProperties": False,
                                "properties": {
                                    "after": {"type": "string"},
                                    "before": {"type": "string"},
                                },
                            },
                        },
                    },
                },
                "content": {"type": "string"},
                "conditions": {"$ref": "#/definitions/conditions"},
                "fallback": {"$ref": "#/definitions/insertion"},
            },
        },
    },
    "properties": {
        "metadata": {
            "type": ["object", "null"],
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string"},
                "description": {"type": "string"},
                "version": {"type": ["string", "number"]},
                "author": {"type": "string"},
            },
        },
        "conditions": {"$ref": "#/definitions/conditions"},
        "insertions": {"type": "array", "items": {"$ref": "#/definitions/insertion"}},
        "replacements": {"type": "array", "items": {"$ref": "#/definitions/replacement"}},
        "smartReplacements": {
            "type": "array",
            "items": {"$ref": "#/definitions/smartReplacement"},
        },
        "smartInsertions": {
            "type": "array",
            "items": {"$ref": "#/definitions/smartInsertion"},
        },
        "partials": {"type": "object", "additionalProperties": {"type": "string"}},
    },
}


# -- pass 1: raw structure ---------------------------------------------------


def _check_keys(
    item: Mapping[str, Any],
    allowed: frozenset[str],
    path: str,
    section: str,
    source: str,
) -> None:
    for key in item:
        if key in allowed:
            continue
        guidance = KEY_GUIDANCE.get((section, str(key).lower()))
        if guidance:
            msg = f"Invalid property '{key}' in {path} in {source}. {guidance}"
        else:
            msg = (
                f"Unknown property '{key}' in {path} in {source}. "
                f"Allowed properties: {sorted(allowed)}"
            )
        raise ConfigurationError(msg, details={"source": source, "path": path, "key": key})


def _require_map(value: Any, path: str, source: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        msg = f"{path} must be an object in: {source}"
        raise ConfigurationError(msg, details={"source": source, "path": path})
    return value


def _require_list(value: Any, path: str, source: str) -> list[Any]:
    if not isinstance(value, list):
        msg = f"'{path}' must be a list/array in: {source}"
        raise ConfigurationError(msg, details={"source": source, "path": path})
    return value


def _check_conditions(value: Any, path: str, source: str, depth: int, max_depth: int) -> None:
    if depth > max_depth:
        msg = f"{path} nests conditions deeper than {max_depth} levels in {source}"
        raise ConfigurationError(msg, details={"source": source, "path": path})
    conditions = _require_map(value, path, source)
    _check_keys(conditions, CONDITION_KEYS, path, "conditions", source)
    for combinator in ("allOf", "anyOf"):
        if combinator in conditions:
            items = _require_list(conditions[combinator], f"{path}.{combinator}", source)
            for i, nested in enumerate(items):
                _check_conditions(nested, f"{path}.{combinator}[{i}]", source, depth + 1, max_depth)
    if "not" in conditions:
        _check_conditions(conditions["not"], f"{path}.not", source, depth + 1, max_depth)


def _check_insertion(value: Any, path: str, source: str, depth: int, max_depth: int) -> None:
    item = _require_map(value, path, source)
    _check_keys(item, INSERTION_KEYS, path, "insertions", source)
    if "conditions" in item:
        _check_conditions(item["conditions"], f"{path}.conditions", source, 0, max_depth)
    if "fallback" in item:
        if depth >= max_depth:
            msg = f"Fallback chain at {path} exceeds the maximum depth of {max_depth} in {source}"
            raise ConfigurationError(msg, details={"source": source, "path": path})
        _check_insertion(item["fallback"], f"{path}.fallback", source, depth + 1, max_depth)


def _check_replacement(value: Any, path: str, source: str, depth: int, max_depth: int) -> None:
    item = _require_map(value, path, source)
    if "find" not in item:
        msg = f"{path} must have 'find' property in: {source}"
        raise ConfigurationError(msg, details={"source": source, "path": path, "key": "find"})
    if "replace" not in item:
        msg = f"{path} must have 'replace' property in: {source}"
        raise ConfigurationError(msg, details={"source": source, "path": path, "key": "replace"})
    _check_keys(item, REPLACEMENT_KEYS, path, "replacements", source)
    if "conditions" in item:
        _check_conditions(item["conditions"], f"{path}.conditions", source, 0, max_depth)
    if "fallback" in item:
        if depth >= max_depth:
            msg = f"Fallback chain at {path} exceeds the maximum depth of {max_depth} in {source}"
            raise ConfigurationError(msg, details={"source": source, "path": path})
        _check_replacement(item["fallback"], f"{path}.fallback", source, depth + 1, max_depth)


def _check_smart_replacement(value: Any, path: str, source: str, max_depth: int) -> None:
    item = _require_map(value, path, source)
    _check_keys(item, SMART_REPLACEMENT_KEYS, path, "smartReplacements", source)
    if "findPattern" in item:
        find_pattern = _require_map(item["findPattern"], f"{path}.findPattern", source)
        _check_keys(find_pattern, FIND_PATTERN_KEYS, f"{path}.findPattern", "findPattern", source)
    if "conditions" in item:
        _check_conditions(item["conditions"], f"{path}.conditions", source, 0, max_depth)


def _check_smart_insertion(value: Any, path: str, source: str, max_depth: int) -> None:
    item = _require_map(value, path, source)
    _check_keys(item, SMART_INSERTION_KEYS, path, "smartInsertions", source)
    if "findInsertionPoint" in item:
        point_path = f"{path}.findInsertionPoint"
        point = _require_map(item["findInsertionPoint"], point_path, source)
        _check_keys(point, INSERTION_POINT_KEYS, point_path, "findInsertionPoint", source)
        patterns = _require_list(point.get("patterns", []), f"{point_path}.patterns", source)
        for i, location in enumerate(patterns):
            location_path = f"{point_path}.patterns[{i}]"
            location_map = _require_map(location, location_path, source)
            _check_keys(location_map, PATTERN_LOCATION_KEYS, location_path, "patterns", source)
    if "conditions" in item:
        _check_conditions(item["conditions"], f"{path}.conditions", source, 0, max_depth)
    if "fallback" in item:
        _check_insertion(item["fallback"], f"{path}.fallback", source, 1, max_depth)


def validate_structure(
    raw: Any,
    source: str,
    max_fallback_depth: int = DEFAULT_MAX_FALLBACK_DEPTH,
) -> Mapping[str, Any]:
    """Validate the raw document tree before binding.

    Args:
        raw: Result of ``yaml.safe_load`` on the document text
        source: Document name used in error messages
        max_fallback_depth: Longest permitted fallback chain

    Returns:
        The root mapping

    Raises:
        ConfigurationError: On the first structural problem found
    """
    if raw is None:
        msg = f"Empty YAML content in: {source}"
        raise ConfigurationError(msg, details={"source": source})
    if not isinstance(raw, Mapping):
        msg = f"YAML root must be an object/map in: {source}"
        raise ConfigurationError(msg, details={"source": source})

    for key in raw:
        if key not in ROOT_KEYS:
            msg = (
                f"Unknown root property '{key}' in {source}. "
                f"Allowed properties: {sorted(ROOT_KEYS)}"
            )
            raise ConfigurationError(msg, details={"source": source, "key": key})

    if "metadata" in raw and raw["metadata"] is not None:
        metadata = _require_map(raw["metadata"], "metadata", source)
        _check_keys(metadata, METADATA_KEYS, "metadata", "metadata", source)
    if "conditions" in raw:
        _check_conditions(raw["conditions"], "conditions", source, 0, max_fallback_depth)
    if "insertions" in raw:
        for i, item in enumerate(_require_list(raw["insertions"], "insertions", source)):
            _check_insertion(item, f"insertions[{i}]", source, 0, max_fallback_depth)
    if "replacements" in raw:
        for i, item in enumerate(_require_list(raw["replacements"], "replacements", source)):
            _check_replacement(item, f"replacements[{i}]", source, 0, max_fallback_depth)
    if "smartReplacements" in raw:
        items = _require_list(raw["smartReplacements"], "smartReplacements", source)
        for i, item in enumerate(items):
            _check_smart_replacement(item, f"smartReplacements[{i}]", source, max_fallback_depth)
    if "smartInsertions" in raw:
        items = _require_list(raw["smartInsertions"], "smartInsertions", source)
        for i, item in enumerate(items):
            _check_smart_insertion(item, f"smartInsertions[{i}]", source, max_fallback_depth)
    if "partials" in raw:
        _require_map(raw["partials"], "partials", source)

    try:
        jsonschema.validate(raw, RULE_DOCUMENT_SCHEMA)
    except jsonschema.ValidationError as e:
        location = ".".join(str(p) for p in e.absolute_path) or "<root>"
        msg = f"Schema validation failed for {source} at {location}: {e.message}"
        raise ConfigurationError(
            msg,
            details={"source": source, "path": list(e.absolute_path)},
        ) from e

    return raw


# -- pass 2: completeness ----------------------------------------------------


def check_completeness(raw: Mapping[str, Any], document: RuleDocument, source: str) -> None:
    """Fail when the bound document holds fewer rules than the raw tree.

    Raises:
        ConfigurationError: If any category count differs
    """
    bound = document.category_counts()
    for key in RULE_LIST_KEYS:
        expected_items = raw.get(key)
        if not isinstance(expected_items, list):
            continue
        expected = len(expected_items)
        actual = bound[key]
        if expected != actual:
            msg = (
                f"Deserialization failure in {source}: expected {expected} {key} "
                f"from YAML but bound {actual}"
            )
            raise ConfigurationError(
                msg,
                details={"source": source, "category": key, "expected": expected, "actual": actual},
            )


# -- pass 3: rule semantics --------------------------------------------------


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _check_safe_content(content: str | None, path: str, errors: list[str]) -> None:
    if content is None:
        return
    lowered = content.lower()
    for marker in UNSAFE_CONTENT:
        if marker.lower() in lowered:
            errors.append(f"{path}: potentially dangerous content detected: {marker}")


def _check_string_list(values: tuple[str, ...] | None, path: str, errors: list[str]) -> None:
    if values is None:
        return
    if not values:
        errors.append(f"{path}: cannot be empty list")
        return
    for i, value in enumerate(values):
        if _blank(value):
            errors.append(f"{path}[{i}]: cannot be null or empty")


def _check_feature_list(features: tuple[str, ...] | None, path: str, errors: list[str]) -> None:
    _check_string_list(features, path, errors)
    for i, feature in enumerate(features or ()):
        if not _blank(feature) and not is_known_feature(feature.strip()):
            errors.append(
                f"{path}[{i}]: unknown feature '{feature}'. Valid built-in features: "
                f"{sorted(FEATURE_PATTERNS)}, or use 'custom_' prefix",
            )


def validate_conditions(conditions: ConditionSet | None, path: str, errors: list[str]) -> None:
    """Append problems found in ``conditions`` to ``errors``."""
    if conditions is None:
        return

    if conditions.generator_version is not None and not CONSTRAINT_PATTERN.match(
        conditions.generator_version.strip(),
    ):
        errors.append(
            f"{path}.generatorVersion: invalid version constraint format. "
            "Use: >=1.2.3, >1.2.3, <=1.2.3, <1.2.3, ~>1.2.3, ^1.2.3, =1.2.3",
        )

    for name, value in (
        ("templateContains", conditions.template_contains),
        ("templateNotContains", conditions.template_not_contains),
        ("projectProperty", conditions.project_property),
        ("environmentVariable", conditions.environment_variable),
        ("buildType", conditions.build_type),
    ):
        if value is not None and not value.strip():
            errors.append(f"{path}.{name}: cannot be empty string")

    _check_string_list(conditions.template_contains_all, f"{path}.templateContainsAll", errors)
    _check_string_list(conditions.template_contains_any, f"{path}.templateContainsAny", errors)

    if conditions.has_feature is not None and not is_known_feature(conditions.has_feature.strip()):
        errors.append(
            f"{path}.hasFeature: unknown feature '{conditions.has_feature}'. "
            f"Valid built-in features: {sorted(FEATURE_PATTERNS)}, "
            "or use 'custom_' prefix for custom features",
        )
    _check_feature_list(conditions.has_all_features, f"{path}.hasAllFeatures", errors)
    _check_feature_list(conditions.has_any_features, f"{path}.hasAnyFeatures", errors)

    for name, nested_list in (("allOf", conditions.all_of), ("anyOf", conditions.any_of)):
        if nested_list is None:
            continue
        if not nested_list:
            errors.append(f"{path}.{name}: cannot be empty list")
        for i, nested in enumerate(nested_list):
            validate_conditions(nested, f"{path}.{name}[{i}]", errors)
    if conditions.not_ is not None:
        validate_conditions(conditions.not_, f"{path}.not", errors)


def _validate_metadata(metadata: RuleMetadata, errors: list[str]) -> None:
    if metadata.name is not None and not metadata.name.strip():
        errors.append("metadata.name cannot be empty")
    if metadata.version is not None and not metadata.version.strip():
        errors.append("metadata.version cannot be empty")


def _validate_insertion(insertion: Insertion, path: str, errors: list[str]) -> None:
    anchors = [a for a in (insertion.after, insertion.before, insertion.at) if not _blank(a)]
    if not anchors:
        errors.append(f"{path}: must specify one insertion point (after, before, or at)")
    elif len(anchors) > 1:
        errors.append(f"{path}: can only specify one insertion point (after, before, or at)")

    if insertion.at is not None and insertion.at.strip().lower() not in ("start", "end"):
        errors.append(f"{path}.at: must be 'start' or 'end', got: {insertion.at}")

    if _blank(insertion.content):
        errors.append(f"{path}.content: content is required and cannot be empty")

    validate_conditions(insertion.conditions, f"{path}.conditions", errors)
    if insertion.fallback is not None:
        _validate_insertion(insertion.fallback, f"{path}.fallback", errors)
    _check_safe_content(insertion.content, f"{path}.content", errors)


def _validate_replacement(replacement: Replacement, path: str, errors: list[str]) -> None:
    if _blank(replacement.find):
        errors.append(f"{path}.find: find pattern is required and cannot be empty")
    elif replacement.kind is ReplacementType.REGEX:
        try:
            regex = re.compile(replacement.find)
        except re.error as e:
            errors.append(f"{path}.find: invalid regex pattern '{replacement.find}': {e}")
        else:
            try:
                compile_replacement(regex, replacement.replace)
            except PatternError as e:
                errors.append(f"{path}.replace: invalid replacement: {e}")

    validate_conditions(replacement.conditions, f"{path}.conditions", errors)
    if replacement.fallback is not None:
        _validate_replacement(replacement.fallback, f"{path}.fallback", errors)
    _check_safe_content(replacement.find, f"{path}.find", errors)
    _check_safe_content(replacement.replace, f"{path}.replace", errors)


def _validate_find_pattern(pattern: FindPattern, path: str, errors: list[str]) -> None:
    if _blank(pattern.type):
        errors.append(f"{path}.type: type is required")
    if not pattern.variants:
        errors.append(f"{path}.variants: at least one variant is required")
    for i, variant in enumerate(pattern.variants):
        if _blank(variant):
            errors.append(f"{path}.variants[{i}]: variant cannot be null or empty")


def _validate_smart_replacement(replacement: SmartReplacement, path: str, errors: list[str]) -> None:
    locators = [
        replacement.find_any is not None and len(replacement.find_any) > 0,
        not _blank(replacement.semantic),
        replacement.find_pattern is not None,
    ]
    if not any(locators):
        errors.append(f"{path}: must specify one find method (findAny, semantic, or findPattern)")
    elif sum(locators) > 1:
        errors.append(f"{path}: can only specify one find method (findAny, semantic, or findPattern)")

    if replacement.find_any is not None:
        if not replacement.find_any:
            errors.append(f"{path}.findAny: cannot be empty list")
        for i, candidate in enumerate(replacement.find_any):
            if _blank(candidate):
                errors.append(f"{path}.findAny[{i}]: pattern cannot be null or empty")

    if replacement.semantic is not None and not replacement.semantic.strip():
        errors.append(f"{path}.semantic: cannot be empty")

    if replacement.find_pattern is not None:
        _validate_find_pattern(replacement.find_pattern, f"{path}.findPattern", errors)

    validate_conditions(replacement.conditions, f"{path}.conditions", errors)
    _check_safe_content(replacement.replace, f"{path}.replace", errors)


def _validate_insertion_point(point: InsertionPoint, path: str, errors: list[str]) -> None:
    if not point.patterns:
        errors.append(f"{path}.patterns: at least one pattern is required")
    for i, location in enumerate(point.patterns):
        _validate_pattern_location(location, f"{path}.patterns[{i}]", errors)


def _validate_pattern_location(location: PatternLocation, path: str, errors: list[str]) -> None:
    anchors = [a for a in (location.after, location.before) if not _blank(a)]
    if not anchors:
        errors.append(f"{path}: must specify either 'after' or 'before'")
    elif len(anchors) > 1:
        errors.append(f"{path}: can only specify either 'after' or 'before', not both")


def _validate_smart_insertion(insertion: SmartInsertion, path: str, errors: list[str]) -> None:
    has_semantic = not _blank(insertion.semantic)
    has_point = insertion.find_insertion_point is not None
    if not has_semantic and not has_point:
        errors.append(f"{path}: must specify one insertion method (findInsertionPoint or semantic)")
    elif has_semantic and has_point:
        errors.append(f"{path}: can only specify one insertion method (findInsertionPoint or semantic)")

    if has_semantic and not is_known_semantic(insertion.semantic.strip()):
        errors.append(
            f"{path}.semantic: unknown semantic insertion point '{insertion.semantic}'. "
            f"Valid values: {sorted(SEMANTIC_PATTERNS)}",
        )

    if insertion.find_insertion_point is not None:
        _validate_insertion_point(insertion.find_insertion_point, f"{path}.findInsertionPoint", errors)

    if _blank(insertion.content):
        errors.append(f"{path}.content: content is required and cannot be empty")

    validate_conditions(insertion.conditions, f"{path}.conditions", errors)
    if insertion.fallback is not None:
        _validate_insertion(insertion.fallback, f"{path}.fallback", errors)
    _check_safe_content(insertion.content, f"{path}.content", errors)


def _validate_partials(partials: Mapping[str, str], errors: list[str]) -> None:
    for name, content in partials.items():
        if _blank(name):
            errors.append("partials: partial name cannot be null or empty")
            continue
        if not PARTIAL_NAME.match(name):
            errors.append(
                f"partials.{name}: partial name must start with a letter and contain "
                "only letters, numbers, and underscores",
            )
        _check_safe_content(content, f"partials.{name}", errors)


def collect_rule_errors(document: RuleDocument) -> list[str]:
    """Every semantic problem in ``document``, in document order."""
    errors: list[str] = []

    if document.metadata is not None:
        _validate_metadata(document.metadata, errors)
    validate_conditions(document.conditions, "global", errors)

    for i, insertion in enumerate(document.insertions):
        _validate_insertion(insertion, f"insertions[{i}]", errors)
    for i, replacement in enumerate(document.replacements):
        _validate_replacement(replacement, f"replacements[{i}]", errors)
    for i, smart_replacement in enumerate(document.smart_replacements):
        _validate_smart_replacement(smart_replacement, f"smartReplacements[{i}]", errors)
    for i, smart_insertion in enumerate(document.smart_insertions):
        _validate_smart_insertion(smart_insertion, f"smartInsertions[{i}]", errors)

    _validate_partials(document.partials, errors)
    return errors


def validate_rules(document: RuleDocument, source: str) -> None:
    """Check rule semantics, reporting every problem in one error.

    Raises:
        ConfigurationError: If any problem is found
    """
    errors = collect_rule_errors(document)
    if errors:
        msg = f"Validation failed for {source}:\n" + "\n".join(errors)
        raise ConfigurationError(msg, details={"source": source, "errors": errors})
