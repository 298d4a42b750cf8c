"""Customization engine: parses rule documents and applies them to templates."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import ValidationError

from . import matcher, semantic
from .cache import ResultCache, fingerprint, mapping_text
from .conditions import ConditionEvaluator
from .context import EvaluationContext
from .exceptions import ConfigurationError, CustomizationError, PatternError
from .models import (
    Insertion,
    Replacement,
    ReplacementType,
    RuleDocument,
    SmartInsertion,
    SmartReplacement,
)
from .schema import (
    DEFAULT_MAX_FALLBACK_DEPTH,
    check_completeness,
    validate_rules,
    validate_structure,
)

logger = logging.getLogger(__name__)

PARTIAL_MARKER = re.compile(r"\{\{>([^}]+)\}\}")
UNKNOWN_TEMPLATE = "unknown template"


def expand_partials(content: str, partials: Mapping[str, str]) -> str:
    """Substitute ``{{>name}}`` markers with partial bodies in a single pass.

    Markers naming an undefined partial are left as they are. With no
    partials defined nothing is touched, so ordinary template partials such
    as ``{{>licenseInfo}}`` pass through silently.
    """
    if not partials:
        return content

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1).strip()
        body = partials.get(name)
        if body is None:
            logger.warning("Partial '%s' referenced but not defined", name)
            return match.group(0)
        logger.debug("Expanded partial '%s' in content", name)
        return body

    return PARTIAL_MARKER.sub(substitute, content)


def _qualified_name(obj: object) -> str:
    cls = type(obj)
    return f"{cls.__module__}.{cls.__qualname__}"


class CustomizationEngine:
    """Parses rule documents and applies them to template text.

    The engine holds no per-template state. Its only shared resource is the
    injected result cache, so one engine may serve many threads.
    """

    def __init__(
        self,
        cache: ResultCache[str] | None = None,
        evaluator: ConditionEvaluator | None = None,
        max_fallback_depth: int = DEFAULT_MAX_FALLBACK_DEPTH,
    ) -> None:
        """Initialize the engine.

        Args:
            cache: Result memo shared across calls; a private one is created if omitted
            evaluator: Condition evaluator used for global and per-rule gates
            max_fallback_depth: Longest fallback chain accepted at parse and apply time
        """
        self.cache: ResultCache[str] = cache if cache is not None else ResultCache()
        self.evaluator = evaluator or ConditionEvaluator()
        self.max_fallback_depth = max_fallback_depth

    # -- parsing -------------------------------------------------------------

    def parse(self, source: str, source_name: str = "<string>") -> RuleDocument:
        """Parse and strictly validate a YAML rule document.

        Args:
            source: YAML text
            source_name: Name used in error messages, usually the file path

        Returns:
            Immutable rule document

        Raises:
            ConfigurationError: If the document is malformed in any way
        """
        try:
            raw = yaml.safe_load(source)
        except yaml.YAMLError as e:
            msg = f"Invalid YAML syntax in {source_name}: {e}"
            raise ConfigurationError(msg, details={"source": source_name}) from e

        raw = validate_structure(raw, source_name, self.max_fallback_depth)

        try:
            document = RuleDocument.model_validate(raw)
        except ValidationError as e:
            msg = f"Failed to bind rule document {source_name}: {e}"
            raise ConfigurationError(
                msg,
                details={"source": source_name, "errors": e.errors(include_url=False)},
            ) from e

        check_completeness(raw, document, source_name)
        validate_rules(document, source_name)

        logger.debug(
            "Parsed %s: %d rule(s) %s",
            source_name,
            document.rule_count,
            document.category_counts(),
        )
        return document

    def parse_file(self, path: Path) -> RuleDocument:
        """Read and parse a rule document from disk.

        Raises:
            ConfigurationError: If the file cannot be read or is malformed
        """
        path = Path(path)
        try:
            source = path.read_text(encoding="utf-8")
        except OSError as e:
            msg = f"Failed to read rule document {path}: {e}"
            raise ConfigurationError(msg, details={"source": str(path)}) from e
        return self.parse(source, str(path))

    # -- application ---------------------------------------------------------

    def apply(
        self,
        template: str,
        document: RuleDocument | None,
        context: EvaluationContext,
        template_name: str | None = None,
    ) -> str:
        """Apply ``document`` to ``template``.

        Rule categories run in a fixed order: replacements, smart
        replacements, insertions, smart insertions. Results are memoized by a
        fingerprint of every input that can influence the output.

        Args:
            template: Template text to transform
            document: Parsed rule document; ``None`` returns ``template`` as is
            context: Evaluation context for this template pass
            template_name: Name used in error messages; defaults to the
                ``templateName`` project property

        Returns:
            Transformed template text

        Raises:
            PatternError: If a regular expression in a rule is invalid
            CustomizationError: On any other failure while applying rules
        """
        if document is None:
            return template

        name = template_name or context.project_property("templateName") or UNKNOWN_TEMPLATE
        key = self._cache_key(template, document, context)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Using cached customization result for %s", name)
            return cached

        try:
            result = self._apply_document(template, document, context, name)
        except (PatternError, CustomizationError):
            raise
        except Exception as e:
            msg = f"Template '{name}': customization failed: {e}"
            raise CustomizationError(msg, details={"template": name}) from e

        return self.cache.put(key, result)

    def cache_size(self) -> int:
        """Number of memoized results."""
        return self.cache.size()

    def clear_cache(self) -> None:
        """Forget every memoized result."""
        dropped = self.cache.clear()
        logger.debug("Cleared %d cached customization result(s)", dropped)

    def _cache_key(
        self,
        template: str,
        document: RuleDocument,
        context: EvaluationContext,
    ) -> str:
        return fingerprint([
            ("template", template),
            ("document", document.fingerprint_text()),
            ("snapshot", context.template_content),
            ("generatorVersion", context.generator_version),
            ("properties", mapping_text(context.project_properties)),
            ("environment", mapping_text(context.environment_variables)),
            ("featureDetector", _qualified_name(context.feature_detector)),
        ])

    def _apply_document(
        self,
        template: str,
        document: RuleDocument,
        context: EvaluationContext,
        name: str,
    ) -> str:
        trace = context.debug_enabled
        if not self.evaluator.evaluate(document.conditions, context):
            logger.debug("Global conditions not met for %s, leaving template unchanged", name)
            return template

        partials = document.partials
        result = template

        for i, replacement in enumerate(document.replacements):
            if trace:
                logger.debug("%s: replacement #%d find=%r", name, i, replacement.find)
            result = self._apply_replacement(result, replacement, context, partials, name, 0)

        for smart_replacement in document.smart_replacements:
            result = self._apply_smart_replacement(result, smart_replacement, context, partials)

        for i, insertion in enumerate(document.insertions):
            before = result
            result = self._apply_insertion(result, insertion, context, partials, name, 0)
            if trace:
                logger.debug("%s: insertion #%d changed template: %s", name, i, before != result)

        for smart_insertion in document.smart_insertions:
            result = self._apply_smart_insertion(result, smart_insertion, context, partials, name)

        if trace:
            logger.debug("%s: final result length %d", name, len(result))
        return result

    def _check_depth(self, depth: int, name: str) -> None:
        if depth > self.max_fallback_depth:
            msg = (
                f"Template '{name}': fallback chain exceeds the maximum depth "
                f"of {self.max_fallback_depth}"
            )
            raise CustomizationError(msg, details={"template": name, "depth": depth})

    def _apply_replacement(
        self,
        text: str,
        replacement: Replacement,
        context: EvaluationContext,
        partials: Mapping[str, str],
        name: str,
        depth: int,
    ) -> str:
        self._check_depth(depth, name)
        if not self.evaluator.evaluate(replacement.conditions, context):
            if replacement.fallback is not None:
                logger.debug("Primary replacement conditions not met, trying fallback")
                return self._apply_replacement(
                    text, replacement.fallback, context, partials, name, depth + 1,
                )
            logger.debug("Replacement conditions not met and no fallback provided")
            return text

        replace = expand_partials(replacement.replace, partials)
        if replacement.kind is ReplacementType.REGEX:
            return matcher.replace_regex(text, replacement.find, replace)
        return matcher.replace_string(text, replacement.find, replace)

    def _apply_smart_replacement(
        self,
        text: str,
        replacement: SmartReplacement,
        context: EvaluationContext,
        partials: Mapping[str, str],
    ) -> str:
        if not self.evaluator.evaluate(replacement.conditions, context):
            logger.debug("Smart replacement conditions not met")
            return text

        replace = expand_partials(replacement.replace, partials)
        if replacement.find_any is not None:
            return semantic.find_any(text, replacement.find_any, replace)
        if replacement.semantic is not None:
            return semantic.semantic_replace(text, replacement.semantic, replace)
        if replacement.find_pattern is not None:
            return semantic.find_any(text, replacement.find_pattern.variants, replace)
        msg = "Smart replacement must specify findAny, semantic, or findPattern"
        raise CustomizationError(msg)

    def _apply_insertion(
        self,
        text: str,
        insertion: Insertion,
        context: EvaluationContext,
        partials: Mapping[str, str],
        name: str,
        depth: int,
    ) -> str:
        self._check_depth(depth, name)
        if not self.evaluator.evaluate(insertion.conditions, context):
            if insertion.fallback is not None:
                logger.debug("Primary insertion conditions not met, trying fallback")
                return self._apply_insertion(
                    text, insertion.fallback, context, partials, name, depth + 1,
                )
            logger.debug("Insertion conditions not met and no fallback provided")
            return text

        content = expand_partials(insertion.content, partials)
        if insertion.after is not None:
            return matcher.insert_after(text, insertion.after, content)
        if insertion.before is not None:
            return matcher.insert_before(text, insertion.before, content)
        if insertion.at is not None:
            location = insertion.at.strip().lower()
            if location == "start":
                return content + text
            if location == "end":
                return text + content
            logger.warning("Unknown insertion location: %s", insertion.at)
            return text
        msg = f"Template '{name}': insertion must specify after, before, or at"
        raise CustomizationError(msg, details={"template": name})

    def _apply_smart_insertion(
        self,
        text: str,
        insertion: SmartInsertion,
        context: EvaluationContext,
        partials: Mapping[str, str],
        name: str,
    ) -> str:
        if not self.evaluator.evaluate(insertion.conditions, context):
            if insertion.fallback is not None:
                logger.debug("Smart insertion conditions not met, trying fallback")
                return self._apply_insertion(text, insertion.fallback, context, partials, name, 1)
            logger.debug("Smart insertion conditions not met and no fallback provided")
            return text

        content = expand_partials(insertion.content, partials)
        if insertion.semantic is not None:
            return semantic.semantic_insert(text, insertion.semantic, content)
        if insertion.find_insertion_point is not None:
            return semantic.find_insertion_point(
                text, insertion.find_insertion_point.patterns, content,
            )
        msg = f"Template '{name}': smart insertion must specify semantic or findInsertionPoint"
        raise CustomizationError(msg, details={"template": name})
