"""
Synchronization Engine - Keep mirrored facts consistent across documents.

Three kinds of mirrored fact are maintained:

1. Enabler rows in the parent capability's "## Enablers" table
   (sync_enabler_to_capability).
2. Which capability lists an enabler at all (reparent).
3. Dependency symmetry: A lists B as downstream impact if and only if B
   lists A as upstream dependency (update_bidirectional_dependencies).

Every mutation is a single-line splice into the existing text, computed by
the pure edit_* functions below and applied through a read-modify-write
cycle guarded by the document's version stamp. A cycle that loses a race
with another writer is retried; a target that cannot be found or read is
logged and skipped so one bad file never aborts a batch.
"""

import logging
import re
from collections.abc import Callable, Iterable
from pathlib import Path

from .exceptions import DocumentNotFoundError, StaleDocumentError
from .models import Dependency, Enabler
from .parser import (
    DEPENDENCIES_SECTION,
    DOWNSTREAM_SECTION,
    ENABLERS_SECTION,
    UPSTREAM_SECTION,
    ParsedDocument,
    TableSection,
    parse_dependencies,
    parse_metadata,
)
from .render import (
    DEPENDENCY_TABLE_HEADER,
    DEPENDENCY_TABLE_SEPARATOR,
    ENABLER_TABLE_HEADER,
    ENABLER_TABLE_SEPARATOR,
    table_row,
)
from .store import DocumentStore
from .tokenizer import is_separator_row, split_row

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3
REVERSE_DEPENDENCY_DESCRIPTION = "Auto-generated reverse dependency"

Edit = Callable[[str], str | None]


# =============================================================================
# Text edits
#
# Each edit takes the full document text and returns the new text, or None
# when nothing needs to change. Line endings and everything outside the
# touched rows are preserved.
# =============================================================================


def _contains_id(cells: list[str], entity_id: str) -> bool:
    pattern = re.compile(rf"(?<![\w-]){re.escape(entity_id)}(?![\w-])")
    return any(pattern.search(cell) for cell in cells)


def _first_cell_is(cells: list[str], entity_id: str) -> bool:
    return bool(cells) and cells[0].strip() == entity_id


def _separator_line(doc: ParsedDocument, section: TableSection) -> int | None:
    index = section.header_line + 1
    if index < len(doc.lines) and is_separator_row(split_row(doc.lines[index])):
        return index
    return None


def _insert_row(doc: ParsedDocument, section: TableSection, row: str) -> list[str]:
    """
    Lines with row appended as the last data row of a located table.

    Blank placeholder rows ("| | |") are dropped: once the table holds real
    data they would only render as empty lines.
    """
    lines = list(doc.lines)
    blank_lines = {r.line_no for r in section.rows if r.is_blank}
    data_rows = [r for r in section.rows if not r.is_blank]

    if data_rows:
        anchor = data_rows[-1].line_no
    else:
        separator = _separator_line(doc, section)
        anchor = separator if separator is not None else section.header_line

    lines.insert(anchor + 1, row)
    # Shift removals that sit after the insertion point
    for line_no in sorted(blank_lines, reverse=True):
        del lines[line_no + 1 if line_no > anchor else line_no]
    return lines


def _new_table(header: str, separator: str, row: str) -> list[str]:
    return ["", header, separator, row, ""]


def edit_enabler_row(enabler_id: str, description: str) -> Edit:
    """Rewrite the enabler's row to "| id | description |"; never inserts."""

    def apply(text: str) -> str | None:
        doc = ParsedDocument(text)
        section = doc.table_section(ENABLERS_SECTION)
        if section is None or not section.has_table:
            return None

        new_row = table_row(enabler_id, description)
        lines = list(doc.lines)
        changed = False
        for row in section.rows:
            if _first_cell_is(row.cells, enabler_id) and lines[row.line_no] != new_row:
                lines[row.line_no] = new_row
                changed = True
        return "\n".join(lines) if changed else None

    return apply


def edit_remove_enabler(enabler_id: str) -> Edit:
    """Drop every row of the enabler table that mentions the enabler id."""

    def apply(text: str) -> str | None:
        doc = ParsedDocument(text)
        section = doc.table_section(ENABLERS_SECTION)
        if section is None or not section.has_table:
            return None

        doomed = {r.line_no for r in section.rows if _contains_id(r.cells, enabler_id)}
        if not doomed:
            return None
        return "\n".join(
            line for line_no, line in enumerate(doc.lines) if line_no not in doomed
        )

    return apply


def edit_add_enabler(enabler_id: str, description: str) -> Edit:
    """
    Append "| id | description |" to the enabler table.

    An existing row for the id is updated in place instead, so the table
    never holds the same enabler twice. A capability without an enabler
    table gets one.
    """

    def apply(text: str) -> str | None:
        doc = ParsedDocument(text)
        section = doc.table_section(ENABLERS_SECTION)
        new_row = table_row(enabler_id, description)

        if section is not None and section.has_table:
            if any(_contains_id(r.cells, enabler_id) for r in section.rows):
                return edit_enabler_row(enabler_id, description)(text)
            return "\n".join(_insert_row(doc, section, new_row))

        lines = list(doc.lines)
        table = _new_table(ENABLER_TABLE_HEADER, ENABLER_TABLE_SEPARATOR, new_row)
        if section is not None:
            at = section.heading.line_no + 1
            lines[at:at] = table[:-1] if at < len(lines) and not lines[at].strip() else table
        else:
            while lines and not lines[-1].strip():
                lines.pop()
            lines += ["", f"## {ENABLERS_SECTION}"] + table
        return "\n".join(lines)

    return apply


def edit_dependency(
    section_title: str, capability_id: str, present: bool, description: str = ""
) -> Edit:
    """
    Make a dependency table contain (or not contain) a row for capability_id.

    Args:
        section_title: UPSTREAM_SECTION or DOWNSTREAM_SECTION
        capability_id: Capability the row points at
        present: Whether the row should exist afterwards
        description: Description for a newly added row
    """

    def apply(text: str) -> str | None:
        doc = ParsedDocument(text)
        section = doc.table_section(section_title)
        existing = []
        if section is not None and section.has_table:
            existing = [r for r in section.rows if _first_cell_is(r.cells, capability_id)]

        if not present:
            if not existing:
                return None
            doomed = {r.line_no for r in existing}
            return "\n".join(
                line for line_no, line in enumerate(doc.lines) if line_no not in doomed
            )

        if existing:
            return None

        new_row = table_row(capability_id, description or REVERSE_DEPENDENCY_DESCRIPTION)
        if section is not None and section.has_table:
            return "\n".join(_insert_row(doc, section, new_row))

        lines = list(doc.lines)
        table = _new_table(DEPENDENCY_TABLE_HEADER, DEPENDENCY_TABLE_SEPARATOR, new_row)
        if section is not None:
            at = section.heading.line_no + 1
            lines[at:at] = table[:-1] if at < len(lines) and not lines[at].strip() else table
            return "\n".join(lines)

        # Sub-section missing: create it at the end of "## Dependencies"
        block = [f"### {section_title}"] + table
        parent = doc.find_heading(DEPENDENCIES_SECTION)
        if parent is None:
            while lines and not lines[-1].strip():
                lines.pop()
            lines += ["", f"## {DEPENDENCIES_SECTION}", ""] + block
            return "\n".join(lines)

        at = doc.section_end(parent)
        while at > 0 and not lines[at - 1].strip():
            at -= 1
        block = [""] + block[:-1]
        lines[at:at] = block
        after = at + len(block)
        if after >= len(lines) or lines[after].strip():
            lines.insert(after, "")
        return "\n".join(lines)

    return apply


def edit_metadata(fields: dict[str, str | None], title: str | None = None) -> Edit:
    """
    Set metadata bullets (and optionally the H1 title) in place.

    Existing bullets keep their position; missing ones are added after the
    last bullet of the block. None values are left untouched.
    """

    def apply(text: str) -> str | None:
        doc = ParsedDocument(text)
        lines = list(doc.lines)
        tokens = doc.metadata_tokens()
        positions: dict[str, int] = {}
        for token in tokens:
            positions.setdefault(token.name, token.line_no)

        missing = []
        for name, value in fields.items():
            if value is None:
                continue
            new_line = f"- **{name}**: {value}"
            if name in positions:
                lines[positions[name]] = new_line
            else:
                missing.append(new_line)

        if missing:
            if tokens:
                at = tokens[-1].line_no + 1
            else:
                heading_line = doc.metadata_heading_line()
                at = heading_line + 1 if heading_line is not None else 0
            lines[at:at] = missing

        if title is not None:
            for line_no, line in enumerate(lines):
                if line.startswith("# "):
                    lines[line_no] = f"# {title}"
                    break

        new_text = "\n".join(lines)
        return new_text if new_text != text else None

    return apply


def edit_replace_ids(mapping: dict[str, str]) -> Edit:
    """Replace whole-word occurrences of each old id with its new id."""

    def apply(text: str) -> str | None:
        if not mapping:
            return None
        pattern = re.compile(
            r"(?<![\w-])("
            + "|".join(re.escape(old) for old in sorted(mapping, key=len, reverse=True))
            + r")(?![\w-])"
        )
        new_text = pattern.sub(lambda m: mapping[m.group(1)], text)
        return new_text if new_text != text else None

    return apply


def chain(*edits: Edit) -> Edit:
    """Apply edits in order; None only when none of them changed anything."""

    def apply(text: str) -> str | None:
        current = text
        for edit in edits:
            result = edit(current)
            if result is not None:
                current = result
        return current if current != text else None

    return apply


# =============================================================================
# Engine
# =============================================================================


def _dependency_map(deps: Iterable | None) -> dict[str, str]:
    """
    Capability id to description from Dependency objects, dicts or id strings.

    Plain id strings carry no description.
    """
    mapping: dict[str, str] = {}
    for dep in deps or []:
        if isinstance(dep, Dependency):
            capability_id, description = dep.capability_id, dep.description
        elif isinstance(dep, dict):
            capability_id = dep.get("capability_id") or dep.get("id", "")
            description = dep.get("description", "")
        else:
            capability_id, description = str(dep), ""
        capability_id = capability_id.strip()
        if capability_id and capability_id not in mapping:
            mapping[capability_id] = (description or "").strip()
    return mapping


class SyncEngine:
    """Mirrors enabler rows and dependency edges between documents."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def apply(self, path: Path, edit: Edit) -> bool:
        """
        Run a read-modify-write cycle on one document.

        The write is conditional on the version read; when another writer got
        there first the cycle is retried on the fresh text, up to
        MAX_WRITE_ATTEMPTS times.

        Returns:
            True if the document was rewritten, False if unchanged or given up
        """
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            doc = self.store.read(path)
            new_text = edit(doc.text)
            if new_text is None or new_text == doc.text:
                return False
            try:
                self.store.write(path, new_text, expected_version=doc.version)
                return True
            except StaleDocumentError:
                logger.warning(
                    f"{path.name} changed during update "
                    f"(attempt {attempt}/{MAX_WRITE_ATTEMPTS}), retrying"
                )

        logger.error(
            f"Giving up on {path} after {MAX_WRITE_ATTEMPTS} conflicting writes"
        )
        return False

    def _apply_to_capability(self, capability_id: str, edit: Edit) -> bool:
        try:
            path = self.store.require_capability(capability_id)
        except DocumentNotFoundError as e:
            logger.warning(f"Skipping update: {e}")
            return False
        return self.apply(path, edit)

    # -------------------------------------------------------------------------
    # Enabler rows
    # -------------------------------------------------------------------------

    def sync_enabler_to_capability(
        self, enabler: Enabler | dict, capability_id: str
    ) -> bool:
        """
        Mirror an enabler's current description into its parent's row.

        Only an existing row is rewritten; a capability that does not list
        the enabler is left alone (parenting is reparent()'s job).

        Args:
            enabler: Enabler, or a dict with id and description/name
            capability_id: Parent capability id

        Returns:
            True if the capability document was rewritten
        """
        if isinstance(enabler, Enabler):
            enabler_id, description = enabler.id, enabler.description or enabler.name
        else:
            enabler_id = enabler.get("id", "")
            description = enabler.get("description") or enabler.get("name", "")

        if not enabler_id or not capability_id:
            logger.debug("Enabler sync skipped: missing enabler or capability id")
            return False

        changed = self._apply_to_capability(
            capability_id, edit_enabler_row(enabler_id, description)
        )
        if changed:
            logger.info(f"Synced {enabler_id} into {capability_id}")
        else:
            logger.debug(f"{capability_id} already up to date for {enabler_id}")
        return changed

    def remove_enabler_from_capability(self, enabler_id: str, capability_id: str) -> bool:
        changed = self._apply_to_capability(capability_id, edit_remove_enabler(enabler_id))
        if changed:
            logger.info(f"Removed {enabler_id} from {capability_id}")
        return changed

    def add_enabler_to_capability(
        self, enabler_id: str, capability_id: str, description: str = ""
    ) -> bool:
        changed = self._apply_to_capability(
            capability_id, edit_add_enabler(enabler_id, description)
        )
        if changed:
            logger.info(f"Added {enabler_id} to {capability_id}")
        return changed

    def reparent(
        self,
        enabler_id: str,
        name: str,
        old_capability_id: str | None,
        new_capability_id: str | None,
        description: str | None = None,
    ) -> list[str]:
        """
        Move an enabler's row from one capability to another.

        Either side may be None: None -> CAP parents for the first time,
        CAP -> None orphans. The two sides are independent; failure on one
        does not undo the other.

        Returns:
            Ids of the capabilities that were rewritten
        """
        description = description or name
        changed: list[str] = []

        if old_capability_id == new_capability_id:
            if new_capability_id and self.add_enabler_to_capability(
                enabler_id, new_capability_id, description
            ):
                changed.append(new_capability_id)
            return changed

        if old_capability_id and self.remove_enabler_from_capability(
            enabler_id, old_capability_id
        ):
            changed.append(old_capability_id)

        if new_capability_id and self.add_enabler_to_capability(
            enabler_id, new_capability_id, description
        ):
            changed.append(new_capability_id)

        logger.info(
            f"Reparented {enabler_id}: {old_capability_id or '-'} -> "
            f"{new_capability_id or '-'}"
        )
        return changed

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    def update_bidirectional_dependencies(
        self,
        capability_id: str,
        upstream: Iterable,
        downstream: Iterable,
    ) -> list[Path]:
        """
        Make every other capability mirror capability_id's dependency lists.

        A capability listed in downstream gets an upstream row pointing back;
        one listed in upstream gets a downstream row. Every other capability
        loses any such row.

        Args:
            capability_id: Capability whose lists are authoritative
            upstream: Its internal upstream dependencies
            downstream: Its internal downstream impacts

        Returns:
            Paths of the capability documents that were rewritten

        Raises:
            OSError: The first filesystem error hit while writing, re-raised
                     after every other capability has been processed
        """
        upstream_deps = _dependency_map(upstream)
        downstream_deps = _dependency_map(downstream)

        updated: list[Path] = []
        seen: set[str] = set()
        first_error: OSError | None = None

        for path in self.store.capability_files():
            try:
                other_id = parse_metadata(self.store.read(path).text).get("ID", "")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable capability {path}: {e}")
                continue
            if not other_id or other_id == capability_id:
                continue
            seen.add(other_id)

            edit = chain(
                edit_dependency(
                    UPSTREAM_SECTION,
                    capability_id,
                    present=other_id in downstream_deps,
                    description=downstream_deps.get(other_id, ""),
                ),
                edit_dependency(
                    DOWNSTREAM_SECTION,
                    capability_id,
                    present=other_id in upstream_deps,
                    description=upstream_deps.get(other_id, ""),
                ),
            )
            try:
                if self.apply(path, edit):
                    updated.append(path)
                    logger.info(f"Mirrored dependencies of {capability_id} into {other_id}")
            except OSError as e:
                logger.error(f"Failed to update {path}: {e}")
                first_error = first_error or e

        for dep_id in sorted((upstream_deps.keys() | downstream_deps.keys()) - seen):
            if dep_id != capability_id:
                logger.warning(f"Dependency target not found: {dep_id}")

        if first_error is not None:
            raise first_error
        return updated

    def sync_dependencies_from_document(self, path: Path) -> list[Path]:
        """Mirror the dependency tables of a saved capability document."""
        doc = ParsedDocument(self.store.read(path).text)
        capability_id = doc.metadata().get("ID", "")
        if not capability_id:
            logger.warning(f"No capability ID in {path}; dependency sync skipped")
            return []
        return self.update_bidirectional_dependencies(
            capability_id,
            parse_dependencies(doc, UPSTREAM_SECTION),
            parse_dependencies(doc, DOWNSTREAM_SECTION),
        )
