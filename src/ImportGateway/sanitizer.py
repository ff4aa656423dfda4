# === NAVMAP v1 ===
# {
#   "module": "ImportGateway.sanitizer",
#   "purpose": "Neutralise active content in fetched SVG documents",
#   "sections": [
#     {"id": "results", "name": "Result Types", "anchor": "RES", "kind": "api"},
#     {"id": "patterns", "name": "Rejection & Removal Patterns", "anchor": "PAT", "kind": "constants"},
#     {"id": "sanitize-svg", "name": "sanitize_svg", "anchor": "function-sanitize-svg", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""SVG sanitisation with a two-tier contract.

Some constructs admit no safe partial cleaning: a document type declaration or
an entity declaration is an XML external entity vector, so its presence rejects
the whole document.  Everything else that can execute code or reach out to the
network (script elements, event handler attributes, ``javascript:`` values,
HTML-hosting containers such as ``foreignObject``, external ``href`` targets)
is stripped and the remainder is passed on.

Stripping is an ordered series of linear-time removals run until the text
stops changing, so a removal can never splice a new forbidden construct together
(``<scr<script></script>ipt>``).  The result is only accepted when an ``<svg>``
opening tag survives.  Benign documents come back byte-for-byte unchanged.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, ClassVar, Pattern, Tuple, Union

__all__ = [
    "RejectionReason",
    "Accepted",
    "Rejected",
    "SanitizationResult",
    "sanitize_svg",
    "removal_patterns",
]


class RejectionReason(str, Enum):
    """Why a document was refused outright."""

    DOCTYPE_DECLARATION = "doctype_declaration"
    ENTITY_DECLARATION = "entity_declaration"
    NOT_SVG = "not_svg"
    UNSTABLE_CONTENT = "unstable_content"


@dataclass(frozen=True, slots=True)
class Accepted:
    """Sanitised document ready for persistence."""

    cleaned_text: str
    accepted: ClassVar[bool] = True


@dataclass(frozen=True, slots=True)
class Rejected:
    """Refused document; nothing of it may be persisted."""

    reason: RejectionReason
    detail: str
    accepted: ClassVar[bool] = False


SanitizationResult = Union[Accepted, Rejected]

# --- Rejection & Removal Patterns ----------------------------------------------

_DOCTYPE_RE = re.compile(r"<!\s*DOCTYPE", re.IGNORECASE)
_ENTITY_RE = re.compile(r"<!\s*ENTITY", re.IGNORECASE)
# XML forbids a raw "<" inside a tag, so tag bodies stop at the next "<" or ">".
_SVG_ROOT_RE = re.compile(r"<svg\b[^<>]*>", re.IGNORECASE)

# Attribute boundary: directly after whitespace, "/" or a closing quote (not consumed).
_LEAD = r"""(?<=[\s/"'])"""
# Any namespace prefix may alias an SVG, XHTML or XLink name.
_PREFIX = r"(?:[\w.-]+:)?"
_FOREIGN_NAMES = ("iframe", "object", "embed", "foreignObject")
_FOREIGN = _PREFIX + "(?:" + "|".join(_FOREIGN_NAMES) + ")"


def _element_patterns(name: str) -> Tuple[Pattern[str], Pattern[str], Pattern[str]]:
    """Whole-element, opening-tag and closing-tag patterns for ``name``."""

    qualified = _PREFIX + name
    return (
        re.compile(rf"<{qualified}\b[^<>]*>[\s\S]*?</{qualified}\s*>", re.IGNORECASE),
        re.compile(rf"<{qualified}\b[^<>]*>", re.IGNORECASE),
        re.compile(rf"</{qualified}\s*>", re.IGNORECASE),
    )


_SCRIPT_ELEMENT = _element_patterns("script")
_FOREIGN_ELEMENTS = tuple(_element_patterns(name) for name in _FOREIGN_NAMES)
_SCRIPT_TAG_RE = re.compile(rf"</?{_PREFIX}script\b[^>]*(?:>|\Z)", re.IGNORECASE)
_FOREIGN_EMPTY_RE = re.compile(rf"<{_FOREIGN}\b[^<>]*/\s*>", re.IGNORECASE)
_FOREIGN_OPEN_RE = re.compile(rf"<{_FOREIGN}\b[\s\S]*\Z", re.IGNORECASE)
_FOREIGN_CLOSE_RE = re.compile(rf"</{_FOREIGN}\s*>", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(
    _LEAD + _PREFIX + r"""on\w+\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+)""", re.IGNORECASE
)
_SCRIPT_SCHEME_RE = re.compile(
    _LEAD + r"""[A-Za-z_:][-\w:.]*\s*=\s*["']?\s*(?:javascript|vbscript)\s*:""",
    re.IGNORECASE,
)
_EXTERNAL_HREF_RE = re.compile(
    _LEAD
    + _PREFIX
    + r"""href\s*=\s*(?:"\s*(?:https?:)?//[^"]*"|'\s*(?:https?:)?//[^']*'|(?:https?:)?//[^\s>]*)""",
    re.IGNORECASE,
)
_ATTRIBUTE_RE = re.compile(
    _LEAD + r"""(?P<name>[A-Za-z_:][-\w:.]*)\s*=\s*(?P<value>"[^"]*"|'[^']*'|[^\s>"']+)"""
)

_SCRIPT_SCHEMES = ("javascript:", "vbscript:")
_EXTERNAL_PREFIXES = ("http:", "https:", "//")
_INVISIBLE_CHARS = re.compile(r"[\x00-\x20\x7f]+")
_MAX_PASSES = 25


def _normalize_attribute_value(raw: str) -> str:
    """Return the value as a browser would see it when resolving its scheme."""

    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in {'"', "'"}:
        raw = raw[1:-1]
    value = html.unescape(raw)
    value = _INVISIBLE_CHARS.sub("", value).replace("\\", "/")
    return value.lower()


def _is_link_attribute(name: str) -> bool:
    return name in {"href", "src"} or name.endswith(":href")


def _filter_attribute(match: "re.Match[str]") -> str:
    name = match.group("name").lower()
    value = _normalize_attribute_value(match.group("value"))
    if value.startswith(_SCRIPT_SCHEMES):
        return ""
    if _is_link_attribute(name) and value.startswith(_EXTERNAL_PREFIXES):
        return ""
    return match.group(0)


def _remove_elements(opener: Pattern[str], closer: Pattern[str], text: str) -> str:
    """Cut each opening tag through the first closing tag after it.

    Closing tags are collected in one pass, so the scan stays linear however
    many openers lack a partner.  Unpartnered openers are left for the tag
    steps that follow.
    """

    closers = [match.span() for match in closer.finditer(text)]
    if not closers:
        return text
    pieces = []
    position = 0
    index = 0
    while True:
        match = opener.search(text, position)
        if match is None:
            break
        while index < len(closers) and closers[index][0] < match.end():
            index += 1
        if index == len(closers):
            break
        pieces.append(text[position : match.start()])
        position = closers[index][1]
    pieces.append(text[position:])
    return "".join(pieces)


def _element_step(name: str, patterns: Tuple[Pattern[str], Pattern[str], Pattern[str]]):
    block, opener, closer = patterns
    return (name, block, partial(_remove_elements, opener, closer))


def _substitution_step(name: str, pattern: Pattern[str], replacement):
    return (name, pattern, partial(pattern.sub, replacement))


_STRIP_STEPS: Tuple[Tuple[str, Pattern[str], Callable[[str], str]], ...] = (
    _element_step("script-block", _SCRIPT_ELEMENT),
    _substitution_step("script-tag", _SCRIPT_TAG_RE, ""),
    _substitution_step("foreign-empty", _FOREIGN_EMPTY_RE, ""),
    *(
        _element_step(f"foreign-block-{name.lower()}", patterns)
        for name, patterns in zip(_FOREIGN_NAMES, _FOREIGN_ELEMENTS)
    ),
    _substitution_step("foreign-unterminated", _FOREIGN_OPEN_RE, ""),
    _substitution_step("foreign-close", _FOREIGN_CLOSE_RE, ""),
    _substitution_step("event-handler", _EVENT_HANDLER_RE, ""),
    _substitution_step("attribute-filter", _ATTRIBUTE_RE, _filter_attribute),
    _substitution_step("script-scheme", _SCRIPT_SCHEME_RE, ""),
    _substitution_step("external-href", _EXTERNAL_HREF_RE, ""),
)


def removal_patterns() -> Tuple[Pattern[str], ...]:
    """Patterns that never match a document accepted by :func:`sanitize_svg`."""

    return tuple(pattern for name, pattern, _ in _STRIP_STEPS if name != "attribute-filter")


def _declaration_rejection(text: str) -> Rejected | None:
    if _DOCTYPE_RE.search(text):
        return Rejected(
            RejectionReason.DOCTYPE_DECLARATION,
            "Forbidden SVG: contains a DOCTYPE declaration",
        )
    if _ENTITY_RE.search(text):
        return Rejected(
            RejectionReason.ENTITY_DECLARATION,
            "Forbidden SVG: contains an ENTITY declaration",
        )
    return None


def _strip_once(text: str) -> str:
    for _name, _pattern, strip in _STRIP_STEPS:
        text = strip(text)
    return text


def sanitize_svg(text: str) -> SanitizationResult:
    """Return a cleaned SVG document or the reason it was refused.

    Args:
        text: Decoded document body exactly as fetched.

    Returns:
        :class:`Accepted` with the cleaned text, or :class:`Rejected` when the
        input carries DOCTYPE/ENTITY declarations, does not settle after the
        removal passes, or no longer contains an ``<svg>`` root tag.
    """

    rejection = _declaration_rejection(text)
    if rejection is not None:
        return rejection

    current = text
    for _ in range(_MAX_PASSES):
        cleaned = _strip_once(current)
        rejection = _declaration_rejection(cleaned)
        if rejection is not None:
            return rejection
        if cleaned == current:
            break
        current = cleaned
    else:
        return Rejected(
            RejectionReason.UNSTABLE_CONTENT,
            "Content did not settle after repeated sanitisation passes",
        )

    if not _SVG_ROOT_RE.search(current):
        return Rejected(RejectionReason.NOT_SVG, "Content is not a valid SVG")
    return Accepted(current)
