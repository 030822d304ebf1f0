"""
Line tokenizer for specification documents.

Turns raw document text into typed tokens before any field extraction:

    HeadingToken   "## Metadata"              -> level=2, title="Metadata"
    FieldToken     "- **Status**: In Draft"   -> name="Status", value="In Draft"
    TableToken     a contiguous run of "| ... |" lines
    TextToken      anything else (blank lines included)

Lines inside <!-- --> comments produce no token at all, so template
documentation embedded in comments is never read as data. Every token keeps
the 0-based line number it came from; writers use those to splice lines
back into the original text without disturbing the rest of the document.
"""

import re
from dataclasses import dataclass, field
from enum import Enum

HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*$")
FIELD_RE = re.compile(r"^-\s*\*\*(.+?)\*\*:\s*(.*)$")
SEPARATOR_CELL_RE = re.compile(r"^:?-{2,}:?$")
UNESCAPED_PIPE_RE = re.compile(r"(?<!\\)\|")


class _State(Enum):
    TEXT = "text"
    TABLE = "table"
    COMMENT = "comment"


@dataclass
class HeadingToken:
    line_no: int
    level: int
    title: str


@dataclass
class FieldToken:
    line_no: int
    name: str
    value: str


@dataclass
class TableLine:
    line_no: int
    cells: list[str]
    is_separator: bool = False

    @property
    def is_blank(self) -> bool:
        return all(not cell for cell in self.cells)


@dataclass
class TableToken:
    lines: list[TableLine] = field(default_factory=list)

    @property
    def line_start(self) -> int:
        return self.lines[0].line_no

    @property
    def line_end(self) -> int:
        """Line number one past the last table line."""
        return self.lines[-1].line_no + 1


@dataclass
class TextToken:
    line_no: int
    text: str


Token = HeadingToken | FieldToken | TableToken | TextToken


def is_table_line(line: str) -> bool:
    """A table line starts and ends with a pipe once surrounding space is stripped."""
    stripped = line.strip()
    return len(stripped) >= 2 and stripped.startswith("|") and stripped.endswith("|")


def split_row(line: str) -> list[str]:
    """
    Split a table line into trimmed cells.

    Only the empty cells produced by the leading and trailing pipes are
    dropped; blank cells in the middle are kept so positions stay stable.
    Escaped pipes (\\|) stay inside their cell.
    """
    cells = [
        cell.strip().replace("\\|", "|") for cell in UNESCAPED_PIPE_RE.split(line.strip())
    ]
    if cells and cells[0] == "":
        cells.pop(0)
    if cells and cells[-1] == "":
        cells.pop()
    return cells


def is_separator_row(cells: list[str]) -> bool:
    return bool(cells) and all(SEPARATOR_CELL_RE.match(cell) for cell in cells)


def parse_heading(line: str) -> HeadingToken | None:
    match = HEADING_RE.match(line.strip())
    if not match:
        return None
    return HeadingToken(line_no=-1, level=len(match.group(1)), title=match.group(2))


def tokenize(text: str) -> list[Token]:
    """
    Tokenize document text.

    Args:
        text: Raw document text

    Returns:
        Tokens in document order
    """
    tokens: list[Token] = []
    state = _State.TEXT
    table: TableToken | None = None

    for line_no, line in enumerate(text.split("\n")):
        stripped = line.strip()

        if state is _State.COMMENT:
            if "-->" in stripped:
                state = _State.TEXT
            continue

        if stripped.startswith("<!--"):
            # Single-line comments close on the same line
            if "-->" not in stripped[4:]:
                state = _State.COMMENT
            table = None
            continue

        if is_table_line(line):
            cells = split_row(line)
            if state is not _State.TABLE or table is None:
                table = TableToken()
                tokens.append(table)
                state = _State.TABLE
            table.lines.append(
                TableLine(
                    line_no=line_no, cells=cells, is_separator=is_separator_row(cells)
                )
            )
            continue

        state = _State.TEXT
        table = None

        heading = parse_heading(line)
        if heading:
            heading.line_no = line_no
            tokens.append(heading)
            continue

        field_match = FIELD_RE.match(stripped)
        if field_match:
            tokens.append(
                FieldToken(
                    line_no=line_no,
                    name=field_match.group(1).strip(),
                    value=field_match.group(2).strip(),
                )
            )
            continue

        tokens.append(TextToken(line_no=line_no, text=line))

    return tokens
