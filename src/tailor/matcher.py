"""Literal and regular-expression text primitives.

A missing anchor or pattern is never an error: the text comes back unchanged
so rules keep working when the templates they target evolve.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from .exceptions import PatternError

logger = logging.getLogger(__name__)

REPLACEMENT_TOKEN = re.compile(
    r"\$(?P<dollar_number>\d+)"
    r"|\$\{(?P<dollar_name>\w+)\}"
    r"|\\(?P<backslash_number>\d+)"
    r"|\\g<(?P<backslash_name>\w+)>"
    r"|\\(?P<escaped>.)",
    re.DOTALL,
)


def _escape(text: str) -> str:
    return text.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")


def insert_after(text: str, anchor: str, content: str) -> str:
    """Insert ``content`` right after the first occurrence of ``anchor``."""
    index = text.find(anchor)
    if index < 0:
        logger.debug("Anchor '%s' not found for insertion", _escape(anchor))
        return text
    point = index + len(anchor)
    return text[:point] + content + text[point:]


def insert_before(text: str, anchor: str, content: str) -> str:
    """Insert ``content`` right before the first occurrence of ``anchor``."""
    index = text.find(anchor)
    if index < 0:
        logger.debug("Anchor '%s' not found for insertion", _escape(anchor))
        return text
    return text[:index] + content + text[index:]


def replace_string(text: str, find: str, replace: str) -> str:
    """Replace every literal occurrence of ``find``."""
    occurrences = text.count(find) if find else 0
    if not occurrences:
        logger.debug("Pattern '%s' not found for replacement", _escape(find))
        return text
    logger.debug("Replacing %d occurrence(s) of '%s'", occurrences, _escape(find))
    return text.replace(find, replace)


def replace_first(text: str, find: str, replace: str) -> str:
    """Replace only the first literal occurrence of ``find``."""
    if not find or find not in text:
        return text
    return text.replace(find, replace, 1)


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile ``pattern`` or raise :class:`PatternError` naming it."""
    try:
        return re.compile(pattern)
    except re.error as e:
        msg = f"Invalid regex pattern '{pattern}': {e}"
        raise PatternError(msg, details={"pattern": pattern}) from e


def _group_number(regex: re.Pattern[str], digits: str, pattern: str, replace: str) -> tuple[int, str]:
    # Longest prefix naming an existing group; the remaining digits are literal.
    for end in range(len(digits), 0, -1):
        number = int(digits[:end])
        if number <= regex.groups:
            return number, digits[end:]
    msg = f"Replacement '{replace}' refers to group {digits[0]} but pattern '{pattern}' has {regex.groups}"
    raise PatternError(msg, details={"pattern": pattern, "replace": replace})


def compile_replacement(regex: re.Pattern[str], replace: str) -> Callable[[re.Match[str]], str]:
    """Build a substitution function for ``replace``.

    Group references may be written ``$1``, ``${name}``, ``\\1`` or
    ``\\g<name>``. ``\\$`` and ``\\\\`` give a literal dollar or backslash;
    any other backslash is kept as written.

    Raises:
        PatternError: If a reference names a group the pattern does not have
    """
    pattern = regex.pattern
    parts: list[str | int] = []
    position = 0
    for token in REPLACEMENT_TOKEN.finditer(replace):
        parts.append(replace[position:token.start()])
        position = token.end()
        digits = token.group("dollar_number") or token.group("backslash_number")
        name = token.group("dollar_name") or token.group("backslash_name")
        if digits is not None:
            number, rest = _group_number(regex, digits, pattern, replace)
            parts.extend([number, rest])
        elif name is not None:
            if name.isdigit():
                number, rest = _group_number(regex, name, pattern, replace)
                if rest:
                    msg = f"Replacement '{replace}' refers to unknown group '{name}'"
                    raise PatternError(msg, details={"pattern": pattern, "replace": replace})
                parts.append(number)
            elif name in regex.groupindex:
                parts.append(regex.groupindex[name])
            else:
                msg = f"Replacement '{replace}' refers to unknown group '{name}' in pattern '{pattern}'"
                raise PatternError(msg, details={"pattern": pattern, "replace": replace})
        else:
            escaped = token.group("escaped")
            parts.append(escaped if escaped in "$\\" else token.group(0))
    parts.append(replace[position:])

    def substitute(match: re.Match[str]) -> str:
        return "".join(
            part if isinstance(part, str) else (match.group(part) or "")
            for part in parts
        )

    return substitute


def replace_regex(text: str, pattern: str, replace: str) -> str:
    """Replace every match of ``pattern`` once a first match is known to exist.

    The existence test looks for a single match; the substitution then covers
    the whole text.

    Raises:
        PatternError: If ``pattern`` is not a valid regular expression, or
            ``replace`` refers to a group it does not define
    """
    regex = compile_pattern(pattern)
    if regex.search(text) is None:
        logger.debug("Regex pattern '%s' not found for replacement", pattern)
        return text
    return regex.sub(compile_replacement(regex, replace), text)
