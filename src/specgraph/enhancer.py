"""
Dynamic View Enhancer - Join live enabler and capability data into a view.

A capability stores only {id, description} per enabler. At read time every
enabler table is rebuilt from the enabler files themselves, so the view
always shows each enabler's current name, status, approval and priority no
matter which of the three historical layouts the stored table uses:

    | Enabler ID |                                          (single column)
    | Enabler ID | Description |                            (canonical)
    | ID | Name | Description | Status | Approval | Priority |  (legacy)

        -> | Enabler ID | Name | Status | Approval | Priority |

Dependency rows additionally get the referenced capability's name beneath
its id. Both markdown text and rendered HTML are handled.
"""

import html
import logging
import re

from .models import EnablerSummary
from .parser import parse_enabler, parse_metadata
from .render import table_row
from .store import CAPABILITY_SUFFIX, ENABLER_SUFFIX, DocumentStore
from .tokenizer import TableToken, tokenize

logger = logging.getLogger(__name__)

VIEW_HEADER = ["Enabler ID", "Name", "Status", "Approval", "Priority"]
VIEW_SEPARATOR = "|------------|------|--------|----------|----------|"
NOT_FOUND_SUFFIX = " (Not Found)"

ENABLER_ID_RE = re.compile(r"^ENB-\d+$")
CAPABILITY_ID_RE = re.compile(r"^CAP-\d+$")

HTML_TABLE_RE = re.compile(r"<table[\s\S]*?</table>")
HTML_ROW_RE = re.compile(r"<tr[^>]*>[\s\S]*?</tr>")
HTML_ENABLER_CELL_RE = re.compile(r"<td[^>]*>\s*(ENB-\d+)\s*</td>")
HTML_DEPENDENCY_ROW_RE = re.compile(
    r"<tr>\s*<td>(CAP-\d+)</td>\s*<td>([^<]*)</td>\s*</tr>"
)


def _css_token(value: str) -> str:
    return re.sub(r"\s+", "-", value.strip().lower())


class ViewEnhancer:
    """Rewrites capability views against the current enabler files."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def build_enabler_index(self) -> dict[str, EnablerSummary]:
        """id -> live summary, from one scan of every enabler file."""
        index: dict[str, EnablerSummary] = {}
        for doc in self.store.iter_documents(ENABLER_SUFFIX):
            enabler = parse_enabler(doc.text)
            if enabler.id:
                index[enabler.id] = enabler.summary()
        return index

    def build_capability_index(self) -> dict[str, str]:
        """capability id -> display name."""
        index: dict[str, str] = {}
        for doc in self.store.iter_documents(CAPABILITY_SUFFIX):
            meta = parse_metadata(doc.text)
            if meta.get("ID") and meta.get("Name"):
                index[meta["ID"]] = meta["Name"]
        return index

    def enhance_for_render(self, text: str) -> str:
        """
        Rewrite enabler and dependency tables with live data.

        Args:
            text: Capability markdown, or the HTML rendered from it

        Returns:
            Enhanced text; on a lookup failure the affected half is left as is
        """
        is_html = "<table" in text
        text = self.enhance_enabler_tables(text, is_html)
        return self.enhance_dependency_tables(text, is_html)

    # -------------------------------------------------------------------------
    # Enabler tables
    # -------------------------------------------------------------------------

    def enhance_enabler_tables(self, text: str, is_html: bool = False) -> str:
        try:
            index = self.build_enabler_index()
        except Exception as e:
            logger.warning(f"Enabler index unavailable, view not enhanced: {e}", exc_info=True)
            return text

        if is_html:
            return self._enhance_enabler_html(text, index)
        return self._enhance_enabler_markdown(text, index)

    @staticmethod
    def _is_enabler_table(table: TableToken) -> bool:
        header = table.lines[0].cells
        if any(c.strip() == "Enabler ID" for c in header):
            return True
        return any(
            line.cells and ENABLER_ID_RE.match(line.cells[0])
            for line in table.lines[1:]
        )

    @staticmethod
    def _view_row(enabler_id: str, index: dict[str, EnablerSummary]) -> str:
        summary = index.get(enabler_id)
        if summary is None:
            return table_row(f"{enabler_id}{NOT_FOUND_SUFFIX}", "", "", "", "")
        return table_row(
            summary.id, summary.name, summary.status, summary.approval, summary.priority
        )

    def _enhance_enabler_markdown(
        self, text: str, index: dict[str, EnablerSummary]
    ) -> str:
        lines = text.split("\n")
        for token in tokenize(text):
            if not isinstance(token, TableToken) or not self._is_enabler_table(token):
                continue

            header, *rows = token.lines
            lines[header.line_no] = table_row(*VIEW_HEADER)
            for line in rows:
                if line.is_separator:
                    lines[line.line_no] = VIEW_SEPARATOR
                    continue
                if line.cells and ENABLER_ID_RE.match(line.cells[0]):
                    lines[line.line_no] = self._view_row(line.cells[0], index)
            if not rows or not rows[0].is_separator:
                # Header without separator is not a table; add one
                lines[header.line_no] += "\n" + VIEW_SEPARATOR
        return "\n".join(lines)

    @staticmethod
    def _view_row_html(summary: EnablerSummary) -> str:
        return (
            "<tr>"
            f"<td>{html.escape(summary.id)}</td>"
            f"<td>{html.escape(summary.name)}</td>"
            f'<td><span class="status-{_css_token(summary.status)}">'
            f"{html.escape(summary.status)}</span></td>"
            f'<td><span class="approval-{_css_token(summary.approval)}">'
            f"{html.escape(summary.approval)}</span></td>"
            f'<td><span class="priority-{_css_token(summary.priority)}">'
            f"{html.escape(summary.priority)}</span></td>"
            "</tr>"
        )

    def _enhance_enabler_html(self, text: str, index: dict[str, EnablerSummary]) -> str:
        def rewrite_row(match: re.Match) -> str:
            row = match.group(0)
            if "<th" in row:
                if "Enabler ID" in row or re.search(r"<th[^>]*>\s*ID\s*</th>", row):
                    return "<tr>" + "".join(f"<th>{h}</th>" for h in VIEW_HEADER) + "</tr>"
                return row
            id_match = HTML_ENABLER_CELL_RE.search(row)
            if not id_match:
                return row
            enabler_id = id_match.group(1)
            summary = index.get(enabler_id)
            if summary is None:
                return HTML_ENABLER_CELL_RE.sub(
                    f'<td><strong class="not-found">{enabler_id}{NOT_FOUND_SUFFIX}</strong></td>',
                    row,
                    count=1,
                )
            return self._view_row_html(summary)

        def rewrite_table(match: re.Match) -> str:
            table = match.group(0)
            if "Enabler ID" not in table and not HTML_ENABLER_CELL_RE.search(table):
                return table
            return HTML_ROW_RE.sub(rewrite_row, table)

        return HTML_TABLE_RE.sub(rewrite_table, text)

    # -------------------------------------------------------------------------
    # Dependency tables
    # -------------------------------------------------------------------------

    def enhance_dependency_tables(self, text: str, is_html: bool = False) -> str:
        """Add capability names beneath dependency ids; input returned on failure."""
        try:
            names = self.build_capability_index()
            if is_html:
                return self._enhance_dependency_html(text, names)
            return self._enhance_dependency_markdown(text, names)
        except Exception as e:
            logger.warning(f"Dependency enhancement skipped: {e}", exc_info=True)
            return text

    @staticmethod
    def _enhance_dependency_markdown(text: str, names: dict[str, str]) -> str:
        lines = text.split("\n")
        for token in tokenize(text):
            if not isinstance(token, TableToken):
                continue
            if not any(c.strip() == "Capability ID" for c in token.lines[0].cells):
                continue
            for line in token.lines[1:]:
                if len(line.cells) != 2 or not CAPABILITY_ID_RE.match(line.cells[0]):
                    continue
                name = names.get(line.cells[0])
                if name:
                    lines[line.line_no] = table_row(
                        f"**{line.cells[0]}**<br/>{name}", line.cells[1]
                    )
        return "\n".join(lines)

    @staticmethod
    def _enhance_dependency_html(text: str, names: dict[str, str]) -> str:
        def rewrite(match: re.Match) -> str:
            capability_id = match.group(1)
            name = names.get(capability_id)
            if not name:
                return match.group(0)
            return match.group(0).replace(
                f"<td>{capability_id}</td>",
                f"<td><strong>{capability_id}</strong><br/>"
                f'<span class="capability-name">{html.escape(name)}</span></td>',
                1,
            )

        return HTML_DEPENDENCY_ROW_RE.sub(rewrite, text)
