"""
Renderer Module - Turn streamed assistant text into display blocks.
===================================================================

Segments (possibly partial) model output into an ordered list of:

- ProseBlock: plain text, or preformatted text for tables that fail to parse
- TableBlock: a pipe-delimited table with a header row and data rows
- ScholarshipCardBlock: a scholarship laid out as labelled fields

The whole text is re-parsed on every update. Parsing is heuristic and never
raises: anything that does not parse cleanly is rendered as text.
"""

import re
from typing import Optional

from unipreply.shared.schemas import (
    ProseBlock,
    RenderBlock,
    ScholarshipCardBlock,
    TableBlock,
)
from unipreply.shared.utils import strip_emphasis

DELIMITER_PATTERN = re.compile(r"^[ \t]*---[ \t\r]*$", re.MULTILINE)

SEPARATOR_ROW_PATTERN = re.compile(r"^[\s|:-]+$")

SCHOLARSHIP_MARKER = "SCHOLARSHIP:"

# One SCHOLARSHIP: run, up to the next marker or a blank line followed by a capital
SCHOLARSHIP_RUN_PATTERN = re.compile(
    r"SCHOLARSHIP:.*?(?=SCHOLARSHIP:|\n[ \t\r]*\n(?=[A-Z])|\Z)",
    re.DOTALL,
)

FIELD_PATTERN = re.compile(
    r"^\s*(?:[-•]\s*)?[*_]*"
    r"(SCHOLARSHIP|Name|Amount|Deadline|Eligibility|Type|For|More Info|Website|Link|Details)"
    r"[*_]*\s*:\s*(.*)$",
    re.IGNORECASE,
)

FIELD_NAMES = {
    "scholarship": "name",
    "name": "name",
    "amount": "amount",
    "deadline": "deadline",
    "eligibility": "eligibility",
    "type": "type",
    "for": "audience",
    "more info": "link",
    "website": "link",
    "link": "link",
    "details": "details",
}


# ─────────────────────────────────────────────────────────────────────────────
# Tables
# ─────────────────────────────────────────────────────────────────────────────


def _split_row(line: str) -> list[str]:
    cells = [cell.strip() for cell in line.split("|")]
    if cells and cells[0] == "":
        cells = cells[1:]
    if cells and cells[-1] == "":
        cells = cells[:-1]
    return cells


def is_table_line(line: str) -> bool:
    return "|" in line and bool(line.strip())


def parse_table(lines: list[str]) -> Optional[TableBlock]:
    """
    Parse pipe-delimited lines into a table.

    The first line is the header; separator rows (only dashes, colons and
    pipes) are skipped.

    Returns:
        TableBlock, or None when there is no header, no data row, or a row
        whose cell count differs from the header
    """
    if not lines:
        return None

    headers = _split_row(lines[0])
    if not any(headers):
        return None

    rows = []
    for line in lines[1:]:
        if SEPARATOR_ROW_PATTERN.match(line):
            continue
        cells = _split_row(line)
        if len(cells) != len(headers):
            return None
        rows.append(cells)

    if not rows:
        return None
    return TableBlock(headers=headers, rows=rows)


# ─────────────────────────────────────────────────────────────────────────────
# Scholarship Cards
# ─────────────────────────────────────────────────────────────────────────────


def is_scholarship_segment(segment: str) -> bool:
    if SCHOLARSHIP_MARKER in segment:
        return True
    return "Amount:" in segment and ("Deadline:" in segment or "Eligibility:" in segment)


def _clean_value(value: str) -> str:
    return strip_emphasis(value).strip().strip("*_").strip()


def parse_scholarship(segment: str) -> Optional[ScholarshipCardBlock]:
    """
    Parse labelled lines into a scholarship card.

    Unlabelled lines become the details when no Details field is present.
    Returns None when no field could be read.
    """
    fields: dict[str, str] = {}
    extra: list[str] = []

    for line in segment.splitlines():
        match = FIELD_PATTERN.match(line)
        if match:
            name = FIELD_NAMES[match.group(1).lower()]
            value = _clean_value(match.group(2))
            if value and name not in fields:
                fields[name] = value
        elif line.strip():
            extra.append(_clean_value(line))

    if not fields:
        return None
    if "details" not in fields and extra:
        fields["details"] = " ".join(e for e in extra if e)
    return ScholarshipCardBlock(**fields)


# ─────────────────────────────────────────────────────────────────────────────
# Segmentation
# ─────────────────────────────────────────────────────────────────────────────


def _text_blocks(segment: str) -> list[RenderBlock]:
    """Split a non-scholarship segment into prose and table runs."""
    lines = [line.rstrip("\r") for line in segment.split("\n")]
    if not any(is_table_line(line) for line in lines):
        return [ProseBlock(text=segment)] if segment.strip() else []

    blocks: list[RenderBlock] = []
    runs: list[tuple[bool, list[str]]] = []
    for line in lines:
        table_like = is_table_line(line)
        if runs and runs[-1][0] == table_like:
            runs[-1][1].append(line)
        else:
            runs.append((table_like, [line]))

    for table_like, run in runs:
        text = "\n".join(run).strip("\n")
        if not text.strip():
            continue
        if not table_like:
            blocks.append(ProseBlock(text=text))
            continue
        table = parse_table(run)
        blocks.append(table if table else ProseBlock(text=text, preformatted=True))
    return blocks


def _segment_blocks(segment: str) -> list[RenderBlock]:
    if is_scholarship_segment(segment):
        card = parse_scholarship(segment)
        if card:
            return [card]
    return _text_blocks(segment)


def _undelimited_blocks(text: str) -> list[RenderBlock]:
    """Scan text without --- delimiters for SCHOLARSHIP: runs."""
    blocks: list[RenderBlock] = []
    position = 0
    for match in SCHOLARSHIP_RUN_PATTERN.finditer(text):
        before = text[position:match.start()]
        if before.strip():
            blocks.extend(_text_blocks(before.strip("\r\n")))
        card = parse_scholarship(match.group(0))
        blocks.append(card if card else ProseBlock(text=match.group(0).strip()))
        position = match.end()

    if position == 0:
        return _text_blocks(text)

    rest = text[position:]
    if rest.strip():
        blocks.extend(_text_blocks(rest.strip("\r\n")))
    return blocks


def render_blocks(text: str) -> list[RenderBlock]:
    """
    Segment assistant text into render blocks.

    Args:
        text: Full accumulated assistant text

    Returns:
        Ordered blocks; plain text without tables or scholarships comes back
        as a single ProseBlock equal to the input

    Example:
        >>> render_blocks("| A | B |\\n|---|---|\\n| 1 | 2 |")
        [TableBlock(kind='table', headers=['A', 'B'], rows=[['1', '2']])]
    """
    if not text:
        return []

    if not DELIMITER_PATTERN.search(text):
        return _undelimited_blocks(text)

    blocks: list[RenderBlock] = []
    for segment in DELIMITER_PATTERN.split(text):
        segment = segment.strip("\r\n")
        if segment.strip():
            blocks.extend(_segment_blocks(segment))
    return blocks
