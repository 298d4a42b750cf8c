"""Named insertion points and first-match-wins candidate resolution."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from . import matcher
from .models import PatternLocation

logger = logging.getLogger(__name__)

START_OF_FILE = "start_of_file"
END_OF_FILE = "end_of_file"

# Candidates are tried in order; the first one present in the template wins.
SEMANTIC_PATTERNS: dict[str, tuple[str, ...]] = {
    START_OF_FILE: (),
    END_OF_FILE: (),
    "after_license": ("{{>licenseInfo}}", "*/", "# License", "// License"),
    "after_package": ("package ", "{{package}}", "{{#package}}"),
    "end_of_imports": ("{{/imports}}", "{{/import}}", "import ", "; // imports end"),
    "after_class_declaration": ("public class ", "class ", "{{classname}}", "public interface "),
    "after_model_declaration": ("{{#model}}", "{{#models}}", "// Model declaration"),
    "before_class_end": ("}\n}", "} // class end", "{{/model}}"),
    "after_constructor": ("// constructor", "{{#generateConstructors}}", "public {{classname}}("),
    "after_fields": ("{{/vars}}", "// fields end", "{{#hasVars}}{{/hasVars}}"),
    "after_getters_setters": ("// getters/setters", "{{/operations}}", "{{/vars}}"),
}


def is_known_semantic(name: str) -> bool:
    """Whether ``name`` is a recognised semantic insertion point."""
    return name in SEMANTIC_PATTERNS


def first_present(text: str, candidates: Sequence[str]) -> str | None:
    """Return the first candidate that occurs in ``text``."""
    for candidate in candidates:
        if candidate and candidate in text:
            return candidate
    return None


def find_any(text: str, candidates: Sequence[str], replace: str) -> str:
    """Replace the first occurrence of the first candidate found in ``text``."""
    candidate = first_present(text, candidates)
    if candidate is None:
        logger.debug("No candidates matched for smart replacement: %s", list(candidates))
        return text
    logger.debug("Found candidate '%s' for smart replacement", candidate)
    return matcher.replace_first(text, candidate, replace)


def semantic_insert(text: str, semantic: str, content: str) -> str:
    """Insert ``content`` at the named insertion point."""
    if semantic == START_OF_FILE:
        return content + text
    if semantic == END_OF_FILE:
        return text + content

    candidates = SEMANTIC_PATTERNS.get(semantic)
    if candidates is None:
        logger.warning("Unknown semantic insertion point: %s", semantic)
        return text

    anchor = first_present(text, candidates)
    if anchor is None:
        logger.debug("No anchors found for semantic insertion: %s", semantic)
        return text
    logger.debug("Semantic insertion point '%s' resolved to '%s'", semantic, anchor)
    return matcher.insert_after(text, anchor, content)


def semantic_replace(text: str, semantic: str, replace: str) -> str:
    """Replace the first anchor found for the named concept."""
    candidates = SEMANTIC_PATTERNS.get(semantic, ())
    if not candidates:
        logger.debug("No anchors known for semantic replacement: %s", semantic)
        return text
    return find_any(text, candidates, replace)


def find_insertion_point(text: str, locations: Sequence[PatternLocation], content: str) -> str:
    """Insert ``content`` at the first location whose anchor is present."""
    for location in locations:
        if location.after is not None and location.after in text:
            logger.debug("Found insertion point after '%s'", location.after)
            return matcher.insert_after(text, location.after, content)
        if location.before is not None and location.before in text:
            logger.debug("Found insertion point before '%s'", location.before)
            return matcher.insert_before(text, location.before, content)
    logger.debug("No insertion points matched")
    return text
