"""End-to-end integration tests for the Tailor workflow."""

from pathlib import Path

import pytest
import yaml

from tailor.config import load_settings
from tailor.library import LibraryArtifact
from tailor.models import SourceCategory
from tailor.sources import PrecedenceResolver

POJO = (
    "package {{package}};\n"
    "\n"
    "{{#imports}}import {{import}};\n"
    "{{/imports}}\n"
    "\n"
    "public class {{classname}} {\n"
    "{{#vars}}  private {{datatype}} {{name}};\n"
    "{{/vars}}\n"
    "}\n"
)

BASE_TEMPLATES = {
    "pojo.mustache": POJO,
    "api.mustache": "interface {{classname}}Api {\n}\n",
    "enumClass.mustache": "enum {{classname}} {\n}\n",
    "model.mustache": "{{#models}}{{>pojo}}{{/models}}\n",
}

PLUGIN_RULES = {
    "spring/pojo.mustache.yaml": yaml.dump({
        "metadata": {"name": "generated-annotation", "version": 1},
        "insertions": [
            {
                "before": "public class ",
                "content": "@Generated\n",
                "conditions": {"generatorVersion": ">=7.0.0"},
            },
        ],
    }),
}


def corporate_library(min_generator_version: str = "7.0.0") -> LibraryArtifact:
    """Build a library laid out the way it ships in an archive."""
    manifest = yaml.dump({
        "name": "corp-templates",
        "version": "1.0.0",
        "supportedGenerators": ["spring"],
        "minGeneratorVersion": min_generator_version,
    })
    rules = yaml.dump({
        "replacements": [
            {
                "find": "  private ",
                "replace": "  protected ",
                "conditions": {"projectProperty": "useProtected=true"},
            },
        ],
    })
    return LibraryArtifact.from_mapping("corp-templates", {
        "META-INF/openapi-library.yaml": manifest,
        "META-INF/openapi-customizations/spring/pojo.mustache.yaml": rules,
        "META-INF/openapi-templates/spring/api.mustache": "// corporate\ninterface {{classname}}Api {\n}\n",
        "META-INF/openapi-templates/go/api.mustache": "ignored",
        "META-INF/README.md": "ignored",
    })


class TestTailorIntegration:
    """Test the complete customization workflow."""

    @pytest.fixture
    def project(self, tmp_path: Path) -> Path:
        """Create a project with a settings file and user overrides."""
        templates = tmp_path / "templates"
        templates.mkdir()
        (templates / "enumClass.mustache").write_text(
            "enum {{classname}} { UNKNOWN }\n", encoding="utf-8",
        )

        customizations = tmp_path / "customizations" / "spring"
        customizations.mkdir(parents=True)
        user_rules = {
            "conditions": {"templateContains": "{{#vars}}"},
            "insertions": [
                {
                    "after": "public class {{classname}} {",
                    "content": "\n  {{>auditField}}",
                },
            ],
            "partials": {"auditField": "private String createdBy;"},
        }
        with open(customizations / "pojo.mustache.yaml", "w") as f:
            yaml.dump(user_rules, f)

        settings = {
            "generatorName": "spring",
            "generatorVersion": "7.2.0",
            "userTemplatesDir": "templates",
            "userCustomizationsDir": "customizations",
            "projectProperties": {"useProtected": True},
        }
        with open(tmp_path / "tailor.yaml", "w") as f:
            yaml.dump(settings, f)
        return tmp_path

    def test_complete_workflow(self, project: Path) -> None:
        """Test every source layer contributes in precedence order."""
        settings = load_settings(project / "tailor.yaml")
        resolver = PrecedenceResolver(
            settings,
            libraries=[corporate_library()],
            plugin_customizations=PLUGIN_RULES,
        )

        assert resolver.resolve_sources() == SourceCategory.default_order()

        results = resolver.customize_all(BASE_TEMPLATES)

        pojo = results["pojo.mustache"]
        assert pojo.content == (
            "package {{package}};\n"
            "\n"
            "{{#imports}}import {{import}};\n"
            "{{/imports}}\n"
            "\n"
            "@Generated\n"
            "public class {{classname}} {\n"
            "  private String createdBy;\n"
            "{{#vars}}  protected {{datatype}} {{name}};\n"
            "{{/vars}}\n"
            "}\n"
        )
        assert pojo.applied == [
            SourceCategory.PLUGIN_CUSTOMIZATIONS,
            SourceCategory.LIBRARY_CUSTOMIZATIONS,
            SourceCategory.USER_CUSTOMIZATIONS,
        ]

        api = results["api.mustache"]
        assert api.content.startswith("// corporate\n")
        assert api.applied == [SourceCategory.LIBRARY_TEMPLATES]

        enum = results["enumClass.mustache"]
        assert enum.content == "enum {{classname}} { UNKNOWN }\n"
        assert enum.applied == [SourceCategory.USER_TEMPLATES]

        model = results["model.mustache"]
        assert model.content == BASE_TEMPLATES["model.mustache"]
        assert not model.changed

    def test_incompatible_library_is_ignored(
        self, project: Path, caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test a library requiring a newer generator contributes nothing."""
        settings = load_settings(project / "tailor.yaml")
        resolver = PrecedenceResolver(
            settings,
            libraries=[corporate_library(min_generator_version="8.0.0")],
            plugin_customizations=PLUGIN_RULES,
        )

        with caplog.at_level("INFO"):
            results = resolver.customize_all(BASE_TEMPLATES)

        assert "requires generator version 8.0.0+" in caplog.text
        assert "  private {{datatype}}" in results["pojo.mustache"].content
        assert results["pojo.mustache"].applied == [
            SourceCategory.PLUGIN_CUSTOMIZATIONS,
            SourceCategory.USER_CUSTOMIZATIONS,
        ]
        assert results["api.mustache"].content == BASE_TEMPLATES["api.mustache"]

    def test_older_generator_skips_conditional_rules(self, project: Path) -> None:
        """Test version conditions see the configured generator version."""
        settings = load_settings(project / "tailor.yaml").model_copy(
            update={"generator_version": "6.6.0"},
        )
        resolver = PrecedenceResolver(settings, plugin_customizations=PLUGIN_RULES)

        result = resolver.customize("pojo.mustache", POJO)

        assert "@Generated" not in result.content
        assert "private String createdBy;" in result.content

    def test_repeated_runs_reuse_results(self, project: Path) -> None:
        """Test a second run over the same inputs is served from the cache."""
        settings = load_settings(project / "tailor.yaml")
        resolver = PrecedenceResolver(
            settings,
            libraries=[corporate_library()],
            plugin_customizations=PLUGIN_RULES,
        )

        first = resolver.customize_all(BASE_TEMPLATES)
        cached = resolver.engine.cache_size()
        second = resolver.customize_all(BASE_TEMPLATES)

        assert cached > 0
        assert resolver.engine.cache_size() == cached
        assert {name: r.content for name, r in first.items()} == {
            name: r.content for name, r in second.items()
        }
