"""Tests for library artifacts, settings and precedence resolution."""

import logging
from pathlib import Path

import pytest

from tailor import __version__
from tailor.config import TailorSettings, load_settings
from tailor.exceptions import ConfigurationError, ManifestError
from tailor.library import LibraryArtifact, incompatibility_reason, load_manifest
from tailor.models import CompatibilityManifest, SourceCategory
from tailor.sources import PrecedenceResolver, SourceAvailability, resolve_sources

SET_X_1 = "replacements:\n  - find: 'X=\\d'\n    replace: X=1\n    type: regex\n"
SET_X_2 = "replacements:\n  - find: 'X=\\d'\n    replace: X=2\n    type: regex\n"


def library(name: str, manifest: str | None = None, **files: str) -> LibraryArtifact:
    """Build a library artifact from short relative paths."""
    mapping = {f"META-INF/{path.replace('__', '/')}": content for path, content in files.items()}
    if manifest is not None:
        mapping["META-INF/openapi-library.yaml"] = manifest
    return LibraryArtifact.from_mapping(name, mapping)


class TestLibraryArtifact:
    """Test LibraryArtifact and manifests."""

    def test_from_mapping_splits_content(self) -> None:
        """Test files are sorted into templates, rule documents and manifest."""
        artifact = LibraryArtifact.from_mapping("corp", {
            "META-INF/openapi-templates/spring/pojo.mustache": "template",
            "META-INF/openapi-customizations/spring/pojo.mustache.yaml": "rules",
            "META-INF/openapi-customizations/spring/README.md": "ignored",
            "META-INF/openapi-library.yaml": "name: corp\nsupportedGenerators: [spring]\n",
            "com/example/Other.class": "ignored",
        })
        assert artifact.templates == {"spring/pojo.mustache": "template"}
        assert artifact.customizations == {"spring/pojo.mustache.yaml": "rules"}
        assert artifact.manifest is not None
        assert artifact.manifest.supported_generators == ("spring",)

    def test_generator_views(self) -> None:
        """Test per-generator lookups strip the generator prefix."""
        artifact = LibraryArtifact(
            name="corp",
            templates={"spring/pojo.mustache": "a", "kotlin/data.mustache": "b"},
            customizations={"spring/model.mustache.yml": "rules"},
        )
        assert artifact.templates_for("spring") == {"pojo.mustache": "a"}
        assert artifact.customizations_for("kotlin") == {}
        assert artifact.rule_document_for("spring", "model.mustache") == "rules"
        assert artifact.rule_document_for("spring", "pojo.mustache") is None

    def test_load_manifest(self) -> None:
        """Test manifests bind camelCase keys."""
        manifest = load_manifest(
            "name: corp\nversion: 1.2.0\nminToolVersion: 0.1.0\nminGeneratorVersion: 7.0.0\n",
        )
        assert manifest.name == "corp"
        assert manifest.min_tool_version == "0.1.0"
        assert manifest.min_generator_version == "7.0.0"

    def test_empty_manifest(self) -> None:
        """Test an empty manifest declares no restrictions."""
        assert load_manifest("") == CompatibilityManifest()

    def test_invalid_manifest(self) -> None:
        """Test malformed manifests raise ManifestError."""
        with pytest.raises(ManifestError, match="Failed to parse library manifest"):
            load_manifest("name: [unclosed\n")
        with pytest.raises(ManifestError, match="must be a map"):
            load_manifest("- a\n- b\n")
        with pytest.raises(ManifestError, match="Invalid library manifest"):
            load_manifest("supportedGenerators: 5\n")


class TestCompatibility:
    """Test incompatibility_reason."""

    def test_no_manifest_is_compatible(self) -> None:
        """Test libraries without a manifest are always usable."""
        assert incompatibility_reason(LibraryArtifact("plain"), "spring", None, "0.1.0") is None

    def test_unsupported_generator(self) -> None:
        """Test generator support is enforced."""
        artifact = library("corp", "supportedGenerators: [kotlin]\n")
        reason = incompatibility_reason(artifact, "spring", "7.0.0", "0.1.0")
        assert reason is not None
        assert "does not support generator 'spring'" in reason

    def test_min_tool_version(self) -> None:
        """Test libraries needing a newer tool are skipped."""
        artifact = library("corp", "minToolVersion: 2.0.0\n")
        reason = incompatibility_reason(artifact, "spring", "7.0.0", "1.5.0")
        assert reason is not None
        assert "requires tool version 2.0.0+" in reason
        assert incompatibility_reason(artifact, "spring", "7.0.0", "2.0.0") is None

    def test_generator_version_bounds(self) -> None:
        """Test min and max generator versions."""
        artifact = library("corp", "minGeneratorVersion: 7.0.0\nmaxGeneratorVersion: 7.9.0\n")
        assert incompatibility_reason(artifact, "spring", "7.5.0", "0.1.0") is None
        assert "requires generator version 7.0.0+" in (
            incompatibility_reason(artifact, "spring", "6.6.0", "0.1.0") or ""
        )
        assert "up to 7.9.0" in (incompatibility_reason(artifact, "spring", "8.0.0", "0.1.0") or "")

    def test_unknown_generator_version_skips_checks(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test an undetected generator version skips bounds with a warning."""
        artifact = library("corp", "minGeneratorVersion: 7.0.0\n")
        assert incompatibility_reason(artifact, "spring", "unknown", "0.1.0") is None
        assert "version checks skipped" in caplog.text


class TestSettings:
    """Test TailorSettings and load_settings."""

    def test_defaults(self) -> None:
        """Test default settings."""
        settings = TailorSettings()
        assert settings.generator_name == "spring"
        assert settings.tool_version == __version__
        assert settings.template_sources == tuple(c.value for c in SourceCategory)
        assert settings.max_fallback_depth == 8
        assert settings.debug is False

    def test_load_settings(self, tmp_path: Path) -> None:
        """Test YAML settings with relative directories."""
        path = tmp_path / "tailor.yaml"
        path.write_text(
            "generatorName: spring\n"
            "generatorVersion: 7.14.0\n"
            "templateSources: [user-customizations, openapi-generator]\n"
            "userCustomizationsDir: customizations\n"
            "projectProperties:\n"
            "  useLombok: true\n"
            "  level: 3\n",
            encoding="utf-8",
        )
        settings = load_settings(path)
        assert settings.generator_version == "7.14.0"
        assert settings.template_sources == ("user-customizations", "openapi-generator")
        assert settings.user_customizations_dir == tmp_path / "customizations"
        assert settings.project_properties == {"useLombok": "true", "level": "3"}

    def test_unknown_setting_rejected(self, tmp_path: Path) -> None:
        """Test misspelled settings fail loudly."""
        path = tmp_path / "tailor.yaml"
        path.write_text("generator: spring\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Settings validation failed"):
            load_settings(path)

    def test_missing_settings_file(self, tmp_path: Path) -> None:
        """Test unreadable files raise ConfigurationError."""
        with pytest.raises(ConfigurationError, match="Failed to read settings file"):
            load_settings(tmp_path / "missing.yaml")

    def test_empty_settings_file(self, tmp_path: Path) -> None:
        """Test an empty file yields defaults."""
        path = tmp_path / "tailor.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(path).generator_name == "spring"


class TestResolveSources:
    """Test resolve_sources filtering."""

    @staticmethod
    def only(*available: SourceCategory):
        """Availability probe that admits the given categories."""

        def check(category: SourceCategory) -> SourceAvailability:
            if category in available:
                return SourceAvailability.yes("test")
            return SourceAvailability.no("test")

        return check

    def test_filters_unavailable(self) -> None:
        """Test unavailable categories are dropped, order preserved."""
        check = self.only(SourceCategory.PLUGIN_CUSTOMIZATIONS, SourceCategory.OPENAPI_GENERATOR)
        resolved = resolve_sources(["user-templates", "plugin-customizations", "openapi-generator"], check)
        assert resolved == [SourceCategory.PLUGIN_CUSTOMIZATIONS, SourceCategory.OPENAPI_GENERATOR]

    def test_default_order(self) -> None:
        """Test no request means every category."""
        resolved = resolve_sources(None, self.only(*SourceCategory))
        assert resolved == SourceCategory.default_order()

    def test_unknown_names_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test unknown category names are unavailable."""
        resolved = resolve_sources(["corporate-templates", "openapi-generator"], self.only(*SourceCategory))
        assert resolved == [SourceCategory.OPENAPI_GENERATOR]
        assert "Unknown template source 'corporate-templates'" in caplog.text

    def test_base_generator_guaranteed(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test the base category is always the terminal fallback."""
        with caplog.at_level(logging.WARNING):
            resolved = resolve_sources(["user-templates"], self.only())
        assert resolved == [SourceCategory.OPENAPI_GENERATOR]
        assert "No template sources available" in caplog.text

    def test_base_generator_appended(self) -> None:
        """Test a request without the base category still ends with it."""
        resolved = resolve_sources([SourceCategory.USER_CUSTOMIZATIONS], self.only(*SourceCategory))
        assert resolved == [SourceCategory.USER_CUSTOMIZATIONS, SourceCategory.OPENAPI_GENERATOR]

    def test_duplicates_ignored(self) -> None:
        """Test repeated names are resolved once."""
        resolved = resolve_sources(
            ["plugin-customizations", "plugin-customizations", "openapi-generator"],
            self.only(*SourceCategory),
        )
        assert resolved == [SourceCategory.PLUGIN_CUSTOMIZATIONS, SourceCategory.OPENAPI_GENERATOR]


class TestPrecedenceResolver:
    """Test availability and precedence-ordered customization."""

    @pytest.fixture
    def user_dirs(self, tmp_path: Path) -> tuple[Path, Path]:
        """Create empty user template and customization directories."""
        templates = tmp_path / "templates"
        customizations = tmp_path / "customizations"
        templates.mkdir()
        (customizations / "spring").mkdir(parents=True)
        return templates, customizations

    def test_availability_without_configuration(self) -> None:
        """Test only built-in categories are available by default."""
        report = PrecedenceResolver(TailorSettings()).report()
        assert report[SourceCategory.USER_TEMPLATES] == SourceAvailability.no("Directory not configured")
        assert not report[SourceCategory.USER_CUSTOMIZATIONS].available
        assert not report[SourceCategory.LIBRARY_TEMPLATES].available
        assert not report[SourceCategory.LIBRARY_CUSTOMIZATIONS].available
        assert report[SourceCategory.PLUGIN_CUSTOMIZATIONS].available
        assert report[SourceCategory.OPENAPI_GENERATOR].available

    def test_user_directories_need_matching_files(self, user_dirs: tuple[Path, Path]) -> None:
        """Test user categories need at least one matching file."""
        templates, customizations = user_dirs
        settings = TailorSettings(user_templates_dir=templates, user_customizations_dir=customizations)
        resolver = PrecedenceResolver(settings)
        assert not resolver.availability(SourceCategory.USER_TEMPLATES).available
        assert not resolver.availability(SourceCategory.USER_CUSTOMIZATIONS).available

        (templates / "pojo.mustache").write_text("x", encoding="utf-8")
        (customizations / "spring" / "pojo.mustache.yml").write_text(SET_X_1, encoding="utf-8")
        assert resolver.availability(SourceCategory.USER_TEMPLATES).available
        assert resolver.availability(SourceCategory.USER_CUSTOMIZATIONS).available

    def test_missing_directory_reason(self, tmp_path: Path) -> None:
        """Test a configured but missing directory explains itself."""
        settings = TailorSettings(user_templates_dir=tmp_path / "nope")
        availability = PrecedenceResolver(settings).availability(SourceCategory.USER_TEMPLATES)
        assert not availability.available
        assert "does not exist" in availability.reason

    def test_incompatible_library_unavailable(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test libraries filtered by their manifest do not make categories available."""
        artifact = library(
            "kotlin-only",
            "supportedGenerators: [kotlin]\n",
            **{"openapi-customizations__spring__pojo.mustache.yaml": SET_X_1},
        )
        with caplog.at_level(logging.INFO, logger="tailor.sources"):
            resolver = PrecedenceResolver(TailorSettings(), libraries=[artifact])
            availability = resolver.availability(SourceCategory.LIBRARY_CUSTOMIZATIONS)
        assert not availability.available
        assert "does not support generator 'spring'" in caplog.text

    def test_precedence_merge(self, user_dirs: tuple[Path, Path]) -> None:
        """Test the higher-precedence source wins on an overlapping edit."""
        _, customizations = user_dirs
        (customizations / "spring" / "pojo.mustache.yaml").write_text(SET_X_2, encoding="utf-8")
        artifact = library("corp", **{"openapi-customizations__spring__pojo.mustache.yaml": SET_X_1})
        settings = TailorSettings(user_customizations_dir=customizations)
        resolver = PrecedenceResolver(settings, libraries=[artifact])

        result = resolver.customize("pojo.mustache", "X=0")
        assert result.content == "X=2"
        assert result.applied == [
            SourceCategory.LIBRARY_CUSTOMIZATIONS,
            SourceCategory.USER_CUSTOMIZATIONS,
        ]
        assert result.changed

    def test_requested_order_controls_precedence(self, user_dirs: tuple[Path, Path]) -> None:
        """Test reversing the requested order reverses the winner."""
        _, customizations = user_dirs
        (customizations / "spring" / "pojo.mustache.yaml").write_text(SET_X_2, encoding="utf-8")
        artifact = library("corp", **{"openapi-customizations__spring__pojo.mustache.yaml": SET_X_1})
        settings = TailorSettings(
            user_customizations_dir=customizations,
            template_sources=("library-customizations", "user-customizations", "openapi-generator"),
        )
        result = PrecedenceResolver(settings, libraries=[artifact]).customize("pojo.mustache", "X=0")
        assert result.content == "X=1"

    def test_user_template_overrides_everything(self, user_dirs: tuple[Path, Path]) -> None:
        """Test an explicit user template replaces the customized text."""
        templates, customizations = user_dirs
        (templates / "pojo.mustache").write_text("mine", encoding="utf-8")
        (customizations / "spring" / "pojo.mustache.yaml").write_text(SET_X_2, encoding="utf-8")
        settings = TailorSettings(user_templates_dir=templates, user_customizations_dir=customizations)
        result = PrecedenceResolver(settings).customize("pojo.mustache", "X=0")
        assert result.content == "mine"

    def test_library_template_then_user_customization(self, user_dirs: tuple[Path, Path]) -> None:
        """Test user rules apply on top of a library template."""
        _, customizations = user_dirs
        (customizations / "spring" / "pojo.mustache.yaml").write_text(SET_X_2, encoding="utf-8")
        artifact = library("corp", **{"openapi-templates__spring__pojo.mustache": "library X=9"})
        settings = TailorSettings(user_customizations_dir=customizations)
        result = PrecedenceResolver(settings, libraries=[artifact]).customize("pojo.mustache", "X=0")
        assert result.content == "library X=2"

    def test_plugin_customizations_see_enriched_properties(self) -> None:
        """Test conditions can read generatorName, templateName and templateSource."""
        rules = (
            "insertions:\n"
            "  - at: end\n"
            "    content: ' // plugin'\n"
            "    conditions:\n"
            "      allOf:\n"
            "        - projectProperty: generatorName=spring\n"
            "        - projectProperty: templateName=pojo.mustache\n"
            "        - projectProperty: templateSource=plugin-customizations\n"
        )
        resolver = PrecedenceResolver(
            TailorSettings(),
            plugin_customizations={"spring/pojo.mustache.yaml": rules},
        )
        assert resolver.customize("pojo.mustache", "body").content == "body // plugin"
        assert resolver.customize("model.mustache", "body").content == "body"

    def test_broken_document_skipped(
        self,
        user_dirs: tuple[Path, Path],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test a malformed document is logged and the other sources still run."""
        _, customizations = user_dirs
        (customizations / "spring" / "pojo.mustache.yaml").write_text("bogus: true\n", encoding="utf-8")
        settings = TailorSettings(user_customizations_dir=customizations)
        resolver = PrecedenceResolver(
            settings,
            plugin_customizations={"spring/pojo.mustache.yaml": SET_X_1},
        )
        result = resolver.customize("pojo.mustache", "X=0")
        assert result.content == "X=1"
        assert "Skipping user-customizations customization" in caplog.text

    def test_undecodable_document_isolated(
        self,
        user_dirs: tuple[Path, Path],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test a rule file that is not UTF-8 only affects its own template."""
        _, customizations = user_dirs
        (customizations / "spring" / "a.mustache.yaml").write_bytes(b"replacements: \xff\xfe\n")
        (customizations / "spring" / "b.mustache.yaml").write_text(SET_X_2, encoding="utf-8")
        resolver = PrecedenceResolver(TailorSettings(user_customizations_dir=customizations))

        results = resolver.customize_all({"a.mustache": "X=0", "b.mustache": "X=0"})

        assert results["a.mustache"].content == "X=0"
        assert results["b.mustache"].content == "X=2"
        assert "Failed to read" in caplog.text

    def test_undecodable_user_template_isolated(
        self,
        user_dirs: tuple[Path, Path],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test an unreadable user template leaves the working text in place."""
        templates, _ = user_dirs
        (templates / "a.mustache").write_bytes(b"\xff\xfe")
        (templates / "b.mustache").write_text("mine", encoding="utf-8")
        resolver = PrecedenceResolver(TailorSettings(user_templates_dir=templates))

        results = resolver.customize_all({"a.mustache": "base", "b.mustache": "base"})

        assert results["a.mustache"].content == "base"
        assert results["b.mustache"].content == "mine"
        assert "Skipping user template" in caplog.text

    def test_environment_reaches_conditions(self) -> None:
        """Test injected environment variables are visible to rules."""
        rules = "insertions:\n  - at: end\n    content: '!'\n    conditions:\n      environmentVariable: CI\n"
        plugin = {"spring/pojo.mustache.yaml": rules}
        with_ci = PrecedenceResolver(TailorSettings(), plugin_customizations=plugin, environment={"CI": "1"})
        without_ci = PrecedenceResolver(TailorSettings(), plugin_customizations=plugin)
        assert with_ci.customize("pojo.mustache", "x").content == "x!"
        assert without_ci.customize("pojo.mustache", "x").content == "x"

    def test_customize_all(self) -> None:
        """Test every template is processed and change is tracked."""
        resolver = PrecedenceResolver(
            TailorSettings(),
            plugin_customizations={"spring/pojo.mustache.yaml": SET_X_1},
        )
        results = resolver.customize_all({"pojo.mustache": "X=0", "model.mustache": "X=0"})
        assert results["pojo.mustache"].content == "X=1"
        assert results["pojo.mustache"].changed
        assert results["model.mustache"].content == "X=0"
        assert not results["model.mustache"].changed
        assert results["model.mustache"].applied == []
