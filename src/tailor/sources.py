"""Source discovery and precedence-ordered customization.

Source categories are requested highest precedence first. Each one is checked
for availability, and the available ones are applied to a template from the
lowest precedence upwards, so that higher-precedence sources win wherever
their edits overlap.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .cache import changed_entries, sha256_hex
from .config import TailorSettings
from .context import EvaluationContext
from .engine import CustomizationEngine
from .exceptions import ConfigurationError, TailorError
from .library import LibraryArtifact, incompatibility_reason
from .models import RuleDocument, SourceCategory

logger = logging.getLogger(__name__)

TEMPLATE_GLOB = "*.mustache"
RULE_GLOBS = ("*.yaml", "*.yml")


@dataclass(frozen=True)
class SourceAvailability:
    """Whether a source category can contribute, and why."""

    available: bool
    reason: str

    @classmethod
    def yes(cls, reason: str) -> SourceAvailability:
        return cls(True, reason)

    @classmethod
    def no(cls, reason: str) -> SourceAvailability:
        return cls(False, reason)


def _as_category(name: SourceCategory | str) -> SourceCategory | None:
    if isinstance(name, SourceCategory):
        return name
    try:
        return SourceCategory(name)
    except ValueError:
        return None


def resolve_sources(
    requested: Sequence[SourceCategory | str] | None,
    check: Callable[[SourceCategory], SourceAvailability],
) -> list[SourceCategory]:
    """Filter ``requested`` down to the categories that are available.

    Args:
        requested: Categories highest precedence first; ``None`` or empty
            requests every category in the default order
        check: Availability probe for one category

    Returns:
        Available categories, highest precedence first, always ending with
        the base generator category
    """
    order: Iterable[SourceCategory | str] = requested or SourceCategory.default_order()
    resolved: list[SourceCategory] = []

    for name in order:
        category = _as_category(name)
        if category is None:
            logger.warning("Unknown template source '%s': not available", name)
            continue
        if category in resolved:
            continue
        availability = check(category)
        if availability.available:
            logger.debug("Template source %s available: %s", category.value, availability.reason)
            resolved.append(category)
        else:
            logger.info("Template source %s skipped: %s", category.value, availability.reason)

    if not resolved:
        logger.warning(
            "No template sources available from %s; base templates pass through unmodified",
            [getattr(n, "value", n) for n in order],
        )
    if SourceCategory.OPENAPI_GENERATOR not in resolved:
        resolved.append(SourceCategory.OPENAPI_GENERATOR)
    return resolved


def _has_files(directory: Path | None, patterns: Sequence[str]) -> SourceAvailability:
    if directory is None:
        return SourceAvailability.no("Directory not configured")
    if not directory.is_dir():
        return SourceAvailability.no(f"Directory does not exist: {directory}")
    for pattern in patterns:
        if next(directory.rglob(pattern), None) is not None:
            return SourceAvailability.yes(f"Found {pattern} files in {directory}")
    return SourceAvailability.no(f"No {'/'.join(patterns)} files in {directory}")


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        msg = f"Failed to read {path}: {e}"
        raise ConfigurationError(msg, details={"path": str(path)}) from e


@dataclass
class TemplateResult:
    """Outcome of customizing one template."""

    name: str
    content: str
    base_hash: str
    applied: list[SourceCategory] = field(default_factory=list)

    @property
    def content_hash(self) -> str:
        return sha256_hex(self.content)

    @property
    def changed(self) -> bool:
        return self.content_hash != self.base_hash


class PrecedenceResolver:
    """Discovers template sources and applies them in precedence order."""

    def __init__(
        self,
        settings: TailorSettings,
        engine: CustomizationEngine | None = None,
        libraries: Sequence[LibraryArtifact] = (),
        plugin_customizations: Mapping[str, str] | None = None,
        environment: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            settings: Run settings
            engine: Customization engine; one is built from ``settings`` if omitted
            libraries: Already-extracted library artifacts
            plugin_customizations: Built-in rule documents keyed ``<generator>/<file>``
            environment: Environment variables visible to conditions
        """
        self.settings = settings
        self.engine = engine or CustomizationEngine(max_fallback_depth=settings.max_fallback_depth)
        self.libraries = list(libraries)
        self.plugin_customizations = dict(plugin_customizations or {})
        self.environment = dict(environment or {})
        self._documents: dict[str, RuleDocument] = {}
        self._compatible: list[LibraryArtifact] | None = None

    @property
    def generator_name(self) -> str:
        return self.settings.generator_name

    def compatible_libraries(self) -> list[LibraryArtifact]:
        """Libraries whose manifest admits the current generator and versions."""
        if self._compatible is None:
            compatible = []
            for library in self.libraries:
                reason = incompatibility_reason(
                    library,
                    self.generator_name,
                    self.settings.generator_version,
                    self.settings.tool_version,
                )
                if reason is None:
                    compatible.append(library)
                else:
                    logger.info("Skipping library content: %s", reason)
            self._compatible = compatible
        return self._compatible

    def availability(self, category: SourceCategory) -> SourceAvailability:
        """Check whether ``category`` can contribute to this run."""
        if category is SourceCategory.USER_TEMPLATES:
            return _has_files(self.settings.user_templates_dir, (TEMPLATE_GLOB,))
        if category is SourceCategory.USER_CUSTOMIZATIONS:
            return _has_files(self.settings.user_customizations_dir, RULE_GLOBS)
        if category is SourceCategory.LIBRARY_TEMPLATES:
            carriers = [
                lib.name for lib in self.compatible_libraries()
                if lib.templates_for(self.generator_name)
            ]
            if carriers:
                return SourceAvailability.yes(f"Library templates from {carriers}")
            return SourceAvailability.no("No compatible library provides templates")
        if category is SourceCategory.LIBRARY_CUSTOMIZATIONS:
            carriers = [
                lib.name for lib in self.compatible_libraries()
                if lib.customizations_for(self.generator_name)
            ]
            if carriers:
                return SourceAvailability.yes(f"Library customizations from {carriers}")
            return SourceAvailability.no("No compatible library provides customizations")
        if category is SourceCategory.PLUGIN_CUSTOMIZATIONS:
            return SourceAvailability.yes("Built-in customizations")
        return SourceAvailability.yes("Base generator templates are always available")

    def report(self) -> dict[SourceCategory, SourceAvailability]:
        """Availability of every category, for display."""
        return {category: self.availability(category) for category in SourceCategory}

    def resolve_sources(
        self,
        requested: Sequence[SourceCategory | str] | None = None,
    ) -> list[SourceCategory]:
        """Available categories from ``requested`` (default: the configured sources)."""
        if requested is None:
            requested = self.settings.template_sources
        return resolve_sources(requested, self.availability)

    # -- customization -------------------------------------------------------

    def customize(
        self,
        template_name: str,
        base_template: str,
        sources: Sequence[SourceCategory] | None = None,
    ) -> TemplateResult:
        """Run every available source over one template, lowest precedence first.

        A rule document that fails to parse or apply is logged and skipped;
        the remaining sources still run.
        """
        if sources is None:
            sources = self.resolve_sources()
        result = TemplateResult(
            name=template_name,
            content=base_template,
            base_hash=sha256_hex(base_template),
        )

        for category in reversed(sources):
            before = result.content
            result.content = self._apply_category(category, template_name, result.content)
            if result.content != before:
                result.applied.append(category)

        logger.debug(
            "Template %s customized by %s",
            template_name,
            [c.value for c in result.applied],
        )
        return result

    def customize_all(self, base_templates: Mapping[str, str]) -> dict[str, TemplateResult]:
        """Customize every template in ``base_templates``, keyed by name."""
        sources = self.resolve_sources()
        results = {
            name: self.customize(name, text, sources)
            for name, text in base_templates.items()
        }
        changed = changed_entries(
            {name: sha256_hex(text) for name, text in base_templates.items()},
            {name: result.content_hash for name, result in results.items()},
        )
        logger.info("Customized %d of %d template(s)", len(changed), len(results))
        return results

    def _apply_category(self, category: SourceCategory, template_name: str, text: str) -> str:
        generator = self.generator_name

        if category is SourceCategory.OPENAPI_GENERATOR:
            return text

        if category is SourceCategory.PLUGIN_CUSTOMIZATIONS:
            for suffix in (".yaml", ".yml"):
                key = f"{generator}/{template_name}{suffix}"
                if key in self.plugin_customizations:
                    return self._apply_rules(
                        category, template_name, text, self.plugin_customizations[key], f"plugin:{key}",
                    )
            return text

        if category is SourceCategory.LIBRARY_CUSTOMIZATIONS:
            for library in self.compatible_libraries():
                document = library.rule_document_for(generator, template_name)
                if document is not None:
                    text = self._apply_rules(
                        category, template_name, text, document, f"{library.name}:{template_name}",
                    )
            return text

        if category is SourceCategory.LIBRARY_TEMPLATES:
            for library in self.compatible_libraries():
                replacement = library.templates_for(generator).get(template_name)
                if replacement is not None:
                    logger.debug("Using library template %s from %s", template_name, library.name)
                    text = replacement
            return text

        if category is SourceCategory.USER_CUSTOMIZATIONS:
            directory = self.settings.user_customizations_dir
            if directory is None:
                return text
            for suffix in (".yaml", ".yml"):
                path = directory / generator / f"{template_name}{suffix}"
                if path.is_file():
                    try:
                        rules = _read_source(path)
                    except ConfigurationError as e:
                        logger.warning(
                            "Skipping %s customization %s for %s: %s",
                            category.value,
                            path,
                            template_name,
                            e,
                        )
                        return text
                    return self._apply_rules(category, template_name, text, rules, str(path))
            return text

        directory = self.settings.user_templates_dir
        if directory is not None:
            path = directory / template_name
            if path.is_file():
                try:
                    replacement = _read_source(path)
                except ConfigurationError as e:
                    logger.warning("Skipping user template %s: %s", path, e)
                    return text
                logger.debug("Using user template %s", path)
                return replacement
        return text

    def _apply_rules(
        self,
        category: SourceCategory,
        template_name: str,
        text: str,
        rules: str,
        source_name: str,
    ) -> str:
        try:
            document = self._documents.get(source_name)
            if document is None:
                document = self.engine.parse(rules, source_name)
                self._documents[source_name] = document
            context = EvaluationContext(
                generator_version=self.settings.generator_version,
                template_content=text,
                project_properties=self._properties(category, template_name),
                environment_variables=self.environment,
            )
            return self.engine.apply(text, document, context, template_name=template_name)
        except TailorError as e:
            logger.warning(
                "Skipping %s customization %s for %s: %s",
                category.value,
                source_name,
                template_name,
                e,
            )
            return text

    def _properties(self, category: SourceCategory, template_name: str) -> dict[str, str]:
        properties = dict(self.settings.project_properties)
        properties.update({
            "generatorName": self.generator_name,
            "templateName": template_name,
            "templateSource": category.value,
            "debug": "true" if self.settings.debug else "false",
        })
        return properties
