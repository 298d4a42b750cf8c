"""Evaluation context shared by the conditions of one template pass."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from .features import FeatureDetector, FeatureProbe


def _matches_spec(values: Mapping[str, str], spec: str, *, require_value: bool) -> bool:
    """Check a ``key`` or ``key=value`` spec against a string map."""
    if "=" in spec:
        key, expected = spec.split("=", 1)
        actual = values.get(key.strip())
        return actual is not None and str(actual) == expected.strip()

    value = values.get(spec.strip())
    if value is None:
        return False
    value = str(value)
    if require_value and not value:
        return False
    return value.lower() != "false"


@dataclass
class EvaluationContext:
    """Inputs a condition set is evaluated against.

    Built once per template-processing pass. Substring and feature probes are
    memoized per probe string for the lifetime of the context.
    """

    generator_version: str | None = None
    template_content: str | None = None
    project_properties: Mapping[str, str] = field(default_factory=dict)
    environment_variables: Mapping[str, str] = field(default_factory=dict)
    feature_detector: FeatureProbe = field(default_factory=FeatureDetector, repr=False)
    _feature_cache: dict[str, bool] = field(default_factory=dict, init=False, repr=False)
    _contains_cache: dict[str, bool] = field(default_factory=dict, init=False, repr=False)

    def template_contains(self, probe: str) -> bool:
        """Substring probe against the template snapshot."""
        cached = self._contains_cache.get(probe)
        if cached is None:
            cached = self.template_content is not None and probe in self.template_content
            self._contains_cache[probe] = cached
        return cached

    def has_feature(self, feature_name: str) -> bool:
        """Feature probe against the template snapshot."""
        cached = self._feature_cache.get(feature_name)
        if cached is None:
            cached = self.feature_detector.has_feature(self.template_content or "", feature_name)
            self._feature_cache[feature_name] = cached
        return cached

    def has_project_property(self, spec: str) -> bool:
        """``key`` is set and not 'false', or ``key=value`` matches exactly."""
        if not spec:
            return False
        return _matches_spec(self.project_properties, spec, require_value=False)

    def has_environment_variable(self, spec: str) -> bool:
        """``KEY`` is set, non-empty and not 'false', or ``KEY=value`` matches exactly."""
        if not spec:
            return False
        return _matches_spec(self.environment_variables, spec, require_value=True)

    def project_property(self, key: str) -> str | None:
        """Raw project property value."""
        return self.project_properties.get(key)

    def environment_variable(self, key: str) -> str | None:
        """Raw environment variable value."""
        return self.environment_variables.get(key)

    @property
    def debug_enabled(self) -> bool:
        """Whether the host asked for verbose rule tracing."""
        return str(self.project_properties.get("debug", "")).lower() == "true"
