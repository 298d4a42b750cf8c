"""Library artifacts: shipped templates, rule documents and compatibility manifests."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

import yaml
from pydantic import ValidationError

from .exceptions import ManifestError
from .models import CompatibilityManifest
from .versions import is_above, is_at_least, is_known_version

logger = logging.getLogger(__name__)

TEMPLATES_PREFIX = "META-INF/openapi-templates/"
CUSTOMIZATIONS_PREFIX = "META-INF/openapi-customizations/"
MANIFEST_PATH = "META-INF/openapi-library.yaml"

RULE_SUFFIXES = (".yaml", ".yml")


def load_manifest(text: str, source: str = MANIFEST_PATH) -> CompatibilityManifest:
    """Parse a compatibility manifest.

    Raises:
        ManifestError: If the manifest is not valid YAML or has invalid values
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        msg = f"Failed to parse library manifest {source}: {e}"
        raise ManifestError(msg, details={"source": source}) from e

    if data is None:
        return CompatibilityManifest()
    if not isinstance(data, Mapping):
        msg = f"Library manifest {source} must be a map"
        raise ManifestError(msg, details={"source": source})

    try:
        return CompatibilityManifest.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid library manifest {source}: {e}"
        raise ManifestError(msg, details={"source": source}) from e


@dataclass(frozen=True)
class LibraryArtifact:
    """Already-extracted content of one library.

    ``templates`` and ``customizations`` are keyed ``<generator>/<file>``.
    """

    name: str
    templates: Mapping[str, str] = field(default_factory=dict)
    customizations: Mapping[str, str] = field(default_factory=dict)
    manifest: CompatibilityManifest | None = None

    @classmethod
    def from_mapping(cls, name: str, files: Mapping[str, str]) -> LibraryArtifact:
        """Split a path-to-content map laid out under ``META-INF/``.

        Raises:
            ManifestError: If the manifest file is present but invalid
        """
        templates: dict[str, str] = {}
        customizations: dict[str, str] = {}
        manifest: CompatibilityManifest | None = None

        for path, content in files.items():
            normalized = path.replace("\\", "/").lstrip("/")
            if normalized == MANIFEST_PATH:
                manifest = load_manifest(content, f"{name}:{MANIFEST_PATH}")
            elif normalized.startswith(TEMPLATES_PREFIX):
                relative = normalized[len(TEMPLATES_PREFIX):]
                if "/" in relative:
                    templates[relative] = content
            elif normalized.startswith(CUSTOMIZATIONS_PREFIX):
                relative = normalized[len(CUSTOMIZATIONS_PREFIX):]
                if "/" in relative and relative.endswith(RULE_SUFFIXES):
                    customizations[relative] = content

        logger.debug(
            "Library %s: %d template(s), %d rule document(s), manifest=%s",
            name,
            len(templates),
            len(customizations),
            manifest is not None,
        )
        return cls(name=name, templates=templates, customizations=customizations, manifest=manifest)

    def templates_for(self, generator_name: str) -> dict[str, str]:
        """Template files for one generator, keyed by file name."""
        return _for_generator(self.templates, generator_name)

    def customizations_for(self, generator_name: str) -> dict[str, str]:
        """Rule documents for one generator, keyed by file name."""
        return _for_generator(self.customizations, generator_name)

    def rule_document_for(self, generator_name: str, template_name: str) -> str | None:
        """Rule document text targeting ``template_name``, if shipped."""
        documents = self.customizations_for(generator_name)
        for suffix in RULE_SUFFIXES:
            text = documents.get(f"{template_name}{suffix}")
            if text is not None:
                return text
        return None


def _for_generator(files: Mapping[str, str], generator_name: str) -> dict[str, str]:
    prefix = f"{generator_name}/"
    return {path[len(prefix):]: content for path, content in files.items() if path.startswith(prefix)}


def incompatibility_reason(
    library: LibraryArtifact,
    generator_name: str,
    generator_version: str | None,
    tool_version: str | None,
) -> str | None:
    """Explain why ``library`` cannot be used, or return ``None`` if it can.

    A library without a manifest is compatible with everything. An unknown
    generator version skips the generator-version checks.
    """
    manifest = library.manifest
    if manifest is None:
        return None

    if not manifest.supports_generator(generator_name):
        return (
            f"Library '{library.name}' does not support generator '{generator_name}'. "
            f"Supported generators: {list(manifest.supported_generators)}"
        )

    if (
        manifest.min_tool_version
        and is_known_version(tool_version)
        and not is_at_least(tool_version, manifest.min_tool_version)
    ):
        return (
            f"Library '{library.name}' requires tool version {manifest.min_tool_version}+ "
            f"(current: {tool_version})"
        )

    if manifest.min_generator_version or manifest.max_generator_version:
        if not is_known_version(generator_version):
            logger.warning(
                "Library '%s' declares generator version bounds but the generator version "
                "is unknown; version checks skipped",
                library.name,
            )
            return None
        if manifest.min_generator_version and not is_at_least(
            generator_version,
            manifest.min_generator_version,
        ):
            return (
                f"Library '{library.name}' requires generator version "
                f"{manifest.min_generator_version}+ but detected version is {generator_version}"
            )
        if manifest.max_generator_version and is_above(
            generator_version,
            manifest.max_generator_version,
        ):
            return (
                f"Library '{library.name}' supports generator versions up to "
                f"{manifest.max_generator_version} but detected version is {generator_version}"
            )

    return None
