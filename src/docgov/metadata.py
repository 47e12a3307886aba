"""Metadata section extraction and authoring for governance documents.

A metadata section is the block of ``Key: value`` fields that follows a
``## Metadata`` heading::

    # Plan title

    ## Metadata

    - Plan-ID: docs-refresh
    - Status: queued

Both the bulleted form (``- Key: value``) and the unindented form
(``Key: value``) are accepted. The section ends at the next level-2 heading or
at the first non-blank line that is not a field line; blank lines inside the
section are skipped. :func:`metadata_section_range` is the only place that
decides where a section starts and ends.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, TypeAlias

METADATA_HEADING = "Metadata"

CANONICAL_FIELD_ORDER: tuple[str, ...] = (
    "Plan-ID",
    "Status",
    "Priority",
    "Owner",
    "Acceptance-Criteria",
    "Dependencies",
    "Autonomy-Allowed",
    "Risk-Tier",
    "Spec-Targets",
    "Done-Evidence",
)

_LINE_SPLIT_RE = re.compile(r"\r?\n")
_KEY_PATTERN = r"[A-Za-z][A-Za-z0-9- ]*"
_METADATA_HEADING_RE = re.compile(rf"^##\s+{METADATA_HEADING}\s*$")
_LEVEL2_HEADING_RE = re.compile(r"^##\s+")
_LEVEL1_HEADING_RE = re.compile(r"^#[ \t]+(?P<text>.+)$")
_BULLET_FIELD_RE = re.compile(rf"^\s*-\s*(?P<key>{_KEY_PATTERN}):\s*(?P<value>.*)$")
_PLAIN_FIELD_RE = re.compile(rf"^(?P<key>{_KEY_PATTERN}):\s*(?P<value>.*)$")
_HEADING2_TEXT_RE = re.compile(r"^##\s+(?P<text>.*)$")
_SLUG_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class MetadataEntry:
    key: str
    value: str


MetadataSection: TypeAlias = dict[str, MetadataEntry]


@dataclass(frozen=True)
class SectionRange:
    lines: tuple[str, ...]
    start: int
    end: int

    @property
    def body(self) -> tuple[str, ...]:
        return self.lines[self.start + 1 : self.end]


def split_lines(text: str) -> list[str]:
    return _LINE_SPLIT_RE.split(text)


def normalize_key(key: str) -> str:
    return key.strip().lower()


def _match_field(line: str) -> re.Match[str] | None:
    return _BULLET_FIELD_RE.match(line) or _PLAIN_FIELD_RE.match(line)


def metadata_section_range(text: str) -> SectionRange | None:
    """Return the ``(start, end)`` line span of the metadata section.

    ``start`` is the index of the ``## Metadata`` heading and ``end`` is
    exclusive. Returns ``None`` when the document has no metadata heading.
    """
    lines = tuple(split_lines(text))
    start = next(
        (index for index, line in enumerate(lines) if _METADATA_HEADING_RE.match(line)),
        None,
    )
    if start is None:
        return None
    end = len(lines)
    for index in range(start + 1, len(lines)):
        line = lines[index]
        if _LEVEL2_HEADING_RE.match(line):
            end = index
            break
        if not line.strip():
            continue
        if _match_field(line.rstrip()) is None:
            end = index
            break
    return SectionRange(lines=lines, start=start, end=end)


def parse_metadata(text: str) -> MetadataSection:
    section: MetadataSection = {}
    section_range = metadata_section_range(text)
    if section_range is None:
        return section
    for raw_line in section_range.body:
        match = _match_field(raw_line.rstrip())
        if match is None:
            continue
        key = match.group("key").strip()
        normalized = normalize_key(key)
        if normalized in section:
            continue
        section[normalized] = MetadataEntry(key=key, value=match.group("value").strip())
    return section


def metadata_value(section: Mapping[str, MetadataEntry], field: str) -> str | None:
    entry = section.get(normalize_key(field))
    return None if entry is None else entry.value


def first_heading(text: str) -> str | None:
    for line in split_lines(text):
        match = _LEVEL1_HEADING_RE.match(line)
        if match:
            return match.group("text").strip()
    return None


def level2_headings(text: str) -> list[str]:
    headings: list[str] = []
    for line in split_lines(text):
        match = _HEADING2_TEXT_RE.match(line.strip())
        if match:
            headings.append(match.group("text").strip())
    return headings


def has_heading(text: str, heading: str) -> bool:
    return heading.strip() in level2_headings(text)


def slugify(value: str) -> str:
    return _SLUG_RE.sub("-", value.lower()).strip("-")


# --- write side ---


def _canonical_rank(key: str) -> int:
    try:
        return CANONICAL_FIELD_ORDER.index(key)
    except ValueError:
        return len(CANONICAL_FIELD_ORDER)


def sort_metadata_keys(keys: list[str] | tuple[str, ...] | Mapping[str, object]) -> list[str]:
    return sorted(keys, key=lambda key: (_canonical_rank(key), key))


def render_metadata_section(fields: Mapping[str, object]) -> list[str]:
    lines = [f"## {METADATA_HEADING}", ""]
    for key in sort_metadata_keys(fields):
        value = fields[key]
        lines.append(f"- {key}: {'' if value is None else str(value).strip()}")
    lines.append("")
    return lines


def _finish(lines: list[str]) -> str:
    return "\n".join(lines).rstrip() + "\n"


def ensure_metadata_section(text: str, fields: Mapping[str, object]) -> str:
    """Write ``fields`` as the document's metadata section.

    An existing section is replaced in place. Otherwise the section is
    inserted right after the first level-1 heading, or at the top of a
    document without one. The result ends with exactly one newline.
    """
    section_lines = render_metadata_section(fields)
    section_range = metadata_section_range(text)
    if section_range is not None:
        return _finish(
            [
                *section_range.lines[: section_range.start],
                *section_lines,
                *section_range.lines[section_range.end :],
            ]
        )

    lines = split_lines(text)
    heading_index = next(
        (index for index, line in enumerate(lines) if _LEVEL1_HEADING_RE.match(line)),
        None,
    )
    before = [] if heading_index is None else [*lines[: heading_index + 1], ""]
    after = lines if heading_index is None else lines[heading_index + 1 :]
    while after and not after[0].strip():
        after = after[1:]
    return _finish([*before, *section_lines, *after])


def set_metadata_fields(text: str, updates: Mapping[str, object]) -> str:
    merged: dict[str, object] = {entry.key: entry.value for entry in parse_metadata(text).values()}
    existing_keys = {normalize_key(key): key for key in merged}
    for key, value in updates.items():
        target = existing_keys.get(normalize_key(key), key.strip())
        merged[target] = "" if value is None else str(value).strip()
    return ensure_metadata_section(text, merged)
