"""
Entity Parser - Extract structured entities from specification documents.

Parsing never raises on malformed input: a missing section yields an empty
collection, a short row is skipped, a missing field keeps its default.

Grammar (see tokenizer for the line-level tokens):
- Metadata: "- **Field**: value" bullets between "## Metadata" and the next
  "##" heading. Field names are case-sensitive.
- Tables: a section is located by heading title; its first table line is the
  header, the separator after it is skipped, and every following table line
  is a row until the next heading.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from .models import (
    DEFAULTS,
    Capability,
    CapabilityStatus,
    Dependency,
    DocumentType,
    Enabler,
    EnablerRef,
    Requirement,
)
from .tokenizer import (
    FieldToken,
    HeadingToken,
    TableLine,
    TableToken,
    TextToken,
    Token,
    tokenize,
)

logger = logging.getLogger(__name__)

CAPABILITY_ID_RE = re.compile(r"^CAP-\d+$")
ENABLER_ID_RE = re.compile(r"ENB-\d+")

METADATA_SECTION = "Metadata"
ENABLERS_SECTION = "Enablers"
DEPENDENCIES_SECTION = "Dependencies"
UPSTREAM_SECTION = "Internal Upstream Dependency"
DOWNSTREAM_SECTION = "Internal Downstream Impact"
FUNCTIONAL_SECTION = "Functional Requirements"
NON_FUNCTIONAL_SECTION = "Non-Functional Requirements"
EXTERNAL_UPSTREAM_LABEL = "External Upstream Dependencies"
EXTERNAL_DOWNSTREAM_LABEL = "External Downstream Impact"

FUNCTIONAL_FIELDS = ["id", "name", "requirement", "priority", "status", "approval"]
NON_FUNCTIONAL_FIELDS = [
    "id",
    "name",
    "type",
    "requirement",
    "priority",
    "status",
    "approval",
]

# Minimum cells for a row to be read at all
MIN_REQUIREMENT_CELLS = 3
MIN_LEGACY_ENABLER_CELLS = 3
MIN_DEPENDENCY_CELLS = 2


class EnablerRowLayout(str, Enum):
    """Known shapes of a row in a capability's enabler table."""

    ID_ONLY = "id_only"  # | Enabler ID |
    ID_DESCRIPTION = "id_description"  # | Enabler ID | Description |  (canonical)
    LEGACY = "legacy"  # | ID | Name | Description | Status | Approval | Priority |


@dataclass
class TableSection:
    """A located table: heading, header cells and data rows."""

    heading: HeadingToken
    header: list[str] = field(default_factory=list)
    header_line: int | None = None
    rows: list[TableLine] = field(default_factory=list)

    @property
    def has_table(self) -> bool:
        return self.header_line is not None

    @property
    def last_line(self) -> int | None:
        """Line number of the last table line (header, separator or row)."""
        if self.rows:
            return self.rows[-1].line_no
        return self.header_line


class ParsedDocument:
    """Tokenized document with section lookups."""

    def __init__(self, text: str):
        self.text = text
        self.lines = text.split("\n")
        self.tokens: list[Token] = tokenize(text)

    def find_heading(self, title: str, start: int = 0) -> int | None:
        """
        Index of the heading token matching title.

        An exact title match wins over a substring match, so
        "Functional Requirements" never resolves to
        "Non-Functional Requirements" when both exist.
        """
        substring_match = None
        for index in range(start, len(self.tokens)):
            token = self.tokens[index]
            if not isinstance(token, HeadingToken):
                continue
            heading = token.title.rstrip(":").strip()
            if heading == title:
                return index
            if substring_match is None and title in heading:
                substring_match = index
        return substring_match

    def section_end(self, heading_index: int, max_level: int | None = None) -> int:
        """
        Line number where the section opened by heading_index ends.

        Args:
            heading_index: Token index of the section heading
            max_level: Stop at the next heading of this level or higher
                       (default: the section's own level)
        """
        heading = self.tokens[heading_index]
        level = max_level if max_level is not None else heading.level
        for token in self.tokens[heading_index + 1 :]:
            if isinstance(token, HeadingToken) and token.level <= level:
                return token.line_no
        return len(self.lines)

    def table_section(self, title: str) -> TableSection | None:
        """
        Locate the table belonging to a section.

        Returns None when no heading matches. The returned section has no
        header when the heading exists but holds no table.
        """
        heading_index = self.find_heading(title)
        if heading_index is None:
            return None

        heading = self.tokens[heading_index]
        section = TableSection(heading=heading)
        boundary = self.section_end(heading_index)

        for token in self.tokens[heading_index + 1 :]:
            if isinstance(token, HeadingToken):
                if section.has_table or token.level <= heading.level:
                    break
                continue
            if not isinstance(token, TableToken):
                continue
            if token.line_start >= boundary:
                break

            lines = list(token.lines)
            if not section.has_table:
                header = lines.pop(0)
                section.header = header.cells
                section.header_line = header.line_no
                if lines and lines[0].is_separator:
                    lines.pop(0)
            section.rows.extend(line for line in lines if not line.is_separator)

        return section

    def metadata_tokens(self) -> list[FieldToken]:
        """
        Field bullets of the metadata block.

        Bullets are read between "## Metadata" and the next "##" heading.
        Documents without a Metadata heading (older files) are read whole.
        """
        heading_index = self.find_heading(METADATA_SECTION)
        if heading_index is None:
            return [t for t in self.tokens if isinstance(t, FieldToken)]

        end = self.section_end(heading_index, max_level=2)
        start = self.tokens[heading_index].line_no
        return [
            t
            for t in self.tokens
            if isinstance(t, FieldToken) and start < t.line_no < end
        ]

    def metadata(self) -> dict[str, str]:
        """Metadata fields; the first occurrence of a field wins."""
        fields: dict[str, str] = {}
        for token in self.metadata_tokens():
            fields.setdefault(token.name, token.value)
        return fields

    def metadata_heading_line(self) -> int | None:
        heading_index = self.find_heading(METADATA_SECTION)
        if heading_index is None:
            return None
        return self.tokens[heading_index].line_no

    def section_text(self, title: str) -> str:
        """Raw text under a heading up to the next heading of any level."""
        heading_index = self.find_heading(title)
        if heading_index is None:
            return ""
        start = self.tokens[heading_index].line_no + 1
        end = len(self.lines)
        for token in self.tokens[heading_index + 1 :]:
            if isinstance(token, HeadingToken):
                end = token.line_no
                break
        return "\n".join(self.lines[start:end]).strip()

    def labelled_text(self, label: str) -> str:
        """Value of a "**Label**: value" line outside the metadata bullets."""
        pattern = re.compile(rf"^\*\*{re.escape(label)}\*\*:\s*(.*)$")
        for token in self.tokens:
            if isinstance(token, TextToken):
                match = pattern.match(token.text.strip())
                if match:
                    return match.group(1).strip()
        return ""

    def title(self) -> str | None:
        for token in self.tokens:
            if isinstance(token, HeadingToken) and token.level == 1:
                return token.title
        return None


def parse_metadata(text: str) -> dict[str, str]:
    """Raw metadata fields of a document."""
    return ParsedDocument(text).metadata()


def _match_field(header: str, fields: list[str]) -> str | None:
    header = header.strip().lower()
    if not header:
        return None
    for name in fields:
        if header == name:
            return name
    if header in ("id", "enabler id", "capability id", "requirement id"):
        return "id" if "id" in fields else None
    for name in fields:
        if name in header or header in name:
            return name
    return None


def _map_row(cells: list[str], header: list[str], fields: list[str]) -> dict[str, str]:
    """Map row cells onto fields by header name, falling back to position."""
    row: dict[str, str] = {}
    for position, value in enumerate(cells[: len(fields)]):
        target = None
        if position < len(header):
            target = _match_field(header[position], fields)
        if target is None or target in row:
            target = fields[position]
        if value:
            row[target] = value
    return row


def parse_requirements(
    text_or_doc: "str | ParsedDocument", section_title: str
) -> list[Requirement]:
    """
    Parse a functional or non-functional requirements table.

    Args:
        text_or_doc: Document text or an already parsed document
        section_title: FUNCTIONAL_SECTION or NON_FUNCTIONAL_SECTION

    Returns:
        Requirements in table order; blank and short rows are skipped
    """
    doc = _as_doc(text_or_doc)
    section = doc.table_section(section_title)
    if section is None or not section.has_table:
        return []

    non_functional = section_title == NON_FUNCTIONAL_SECTION
    fields = NON_FUNCTIONAL_FIELDS if non_functional else FUNCTIONAL_FIELDS
    requirements = []

    for line in section.rows:
        if line.is_blank:
            continue
        if len(line.cells) < MIN_REQUIREMENT_CELLS:
            logger.debug(
                f"Skipping ambiguous requirement row at line {line.line_no + 1}: "
                f"{len(line.cells)} cells"
            )
            continue

        row = _map_row(line.cells, section.header, fields)
        requirements.append(
            Requirement(
                id=row.get("id", ""),
                name=row.get("name", ""),
                requirement=row.get("requirement", ""),
                priority=row.get("priority", DEFAULTS["requirement_priority"]),
                status=row.get("status", DEFAULTS["requirement_status"]),
                approval=row.get("approval", DEFAULTS["approval"]),
                type=row.get("type", "") if non_functional else None,
            )
        )

    return requirements


def parse_dependencies(
    text_or_doc: "str | ParsedDocument", section_title: str
) -> list[Dependency]:
    """Parse an internal upstream/downstream dependency table."""
    doc = _as_doc(text_or_doc)
    section = doc.table_section(section_title)
    if section is None or not section.has_table:
        return []

    dependencies = []
    for line in section.rows:
        if line.is_blank:
            continue
        if len(line.cells) < MIN_DEPENDENCY_CELLS:
            logger.debug(
                f"Skipping ambiguous dependency row at line {line.line_no + 1}"
            )
            continue
        dependencies.append(
            Dependency(capability_id=line.cells[0], description=line.cells[1])
        )
    return dependencies


def classify_enabler_row(cells: list[str]) -> EnablerRowLayout | None:
    """Decide which enabler table layout a row uses from its cell count."""
    if not cells:
        return None
    if len(cells) == 1:
        return EnablerRowLayout.ID_ONLY
    if len(cells) == 2:
        return EnablerRowLayout.ID_DESCRIPTION
    return EnablerRowLayout.LEGACY


def parse_enabler_rows(text_or_doc: "str | ParsedDocument") -> list[dict[str, str]]:
    """
    Parse the enabler table in any of its three layouts.

    Returns:
        One dict per row with at least "id" and "layout"; legacy rows also
        carry whichever of name/description/status/approval/priority the
        header names.
    """
    doc = _as_doc(text_or_doc)
    section = doc.table_section(ENABLERS_SECTION)
    if section is None or not section.has_table:
        return []

    legacy_fields = ["id", "name", "description", "status", "approval", "priority"]
    rows = []
    for line in section.rows:
        if line.is_blank:
            continue
        layout = classify_enabler_row(line.cells)
        if layout is EnablerRowLayout.ID_ONLY:
            row = {"id": line.cells[0]}
        elif layout is EnablerRowLayout.ID_DESCRIPTION:
            row = {"id": line.cells[0], "description": line.cells[1]}
        else:
            row = _map_row(line.cells, section.header, legacy_fields)
        id_match = ENABLER_ID_RE.search(row.get("id", ""))
        if not id_match:
            logger.debug(f"Skipping enabler row without id at line {line.line_no + 1}")
            continue
        row["id"] = id_match.group(0)
        row["layout"] = layout.value
        rows.append(row)
    return rows


def parse_enabler_refs(text_or_doc: "str | ParsedDocument") -> list[EnablerRef]:
    """Enabler references stored in a capability, whatever the table layout."""
    return [
        EnablerRef(id=row["id"], description=row.get("description", ""))
        for row in parse_enabler_rows(text_or_doc)
    ]


def _as_doc(text_or_doc: "str | ParsedDocument") -> ParsedDocument:
    if isinstance(text_or_doc, ParsedDocument):
        return text_or_doc
    return ParsedDocument(text_or_doc)


def _optional(value: str | None) -> str | None:
    return value if value else None


def parse_capability(text: str) -> Capability:
    doc = ParsedDocument(text)
    meta = doc.metadata()
    return Capability(
        id=meta.get("ID", ""),
        name=meta.get("Name") or doc.title() or "",
        status=meta.get("Status") or CapabilityStatus.IN_DRAFT.value,
        approval=meta.get("Approval") or DEFAULTS["approval"],
        priority=meta.get("Priority") or DEFAULTS["priority"],
        owner=meta.get("Owner", ""),
        system=_optional(meta.get("System")),
        component=_optional(meta.get("Component")),
        purpose=doc.section_text("Purpose"),
        enablers=parse_enabler_refs(doc),
        upstream_deps=parse_dependencies(doc, UPSTREAM_SECTION),
        downstream_deps=parse_dependencies(doc, DOWNSTREAM_SECTION),
        external_upstream=doc.labelled_text(EXTERNAL_UPSTREAM_LABEL),
        external_downstream=doc.labelled_text(EXTERNAL_DOWNSTREAM_LABEL),
    )


def parse_enabler(text: str) -> Enabler:
    doc = ParsedDocument(text)
    meta = doc.metadata()
    capability_id = meta.get("Capability ID", "").strip()
    return Enabler(
        id=meta.get("ID", ""),
        name=meta.get("Name") or doc.title() or "",
        description=meta.get("Description") or doc.section_text("Purpose"),
        status=meta.get("Status") or DEFAULTS["status"],
        approval=meta.get("Approval") or DEFAULTS["approval"],
        priority=meta.get("Priority") or DEFAULTS["priority"],
        owner=meta.get("Owner", ""),
        capability_id=capability_id if CAPABILITY_ID_RE.match(capability_id) else None,
        functional_requirements=parse_requirements(doc, FUNCTIONAL_SECTION),
        non_functional_requirements=parse_requirements(doc, NON_FUNCTIONAL_SECTION),
    )


def detect_type(text: str, filename: str | None = None) -> DocumentType | None:
    """Document type from the filename suffix, else the Type metadata field."""
    if filename:
        if filename.endswith("-capability.md"):
            return DocumentType.CAPABILITY
        if filename.endswith("-enabler.md"):
            return DocumentType.ENABLER
    declared = parse_metadata(text).get("Type", "").strip().lower()
    try:
        return DocumentType(declared)
    except ValueError:
        return None


def parse_document(
    text: str, doc_type: DocumentType | str
) -> Capability | Enabler:
    """
    Parse document text into its entity.

    Args:
        text: Raw document text
        doc_type: DocumentType or its value ("capability" / "enabler")

    Returns:
        Capability or Enabler (empty shape when sections are absent)
    """
    if DocumentType(doc_type) is DocumentType.CAPABILITY:
        return parse_capability(text)
    return parse_enabler(text)
