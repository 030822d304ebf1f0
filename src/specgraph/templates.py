"""
Template Instantiator - Create new document text from the plan document.

The plan document carries the canonical skeletons:

    ### Capability Template Structure:
    <!-- START CAPABILITY TEMPLATE -->
    ...skeleton...
    <!-- END CAPABILITY TEMPLATE -->

A skeleton is filled by an ordered list of substitutions (specific metadata
lines first, then bare placeholders). A value that was not supplied leaves
its placeholder in place. When the plan document or its markers are
missing, a built-in template rendered from the entity is used instead so
creation is never blocked.
"""

import logging
import re
from dataclasses import replace
from datetime import date
from pathlib import Path

from .config import StoreContext
from .exceptions import TemplateMissingError
from .models import Capability, DocumentType, Enabler
from .render import render_capability, render_enabler

logger = logging.getLogger(__name__)

TEMPLATE_HEADINGS = {
    DocumentType.CAPABILITY: "### Capability Template Structure:",
    DocumentType.ENABLER: "### Enabler Template Structure:",
}
DEVELOPMENT_PLAN_HEADING = "# Development Plan"
CAPABILITY_PURPOSE_PLACEHOLDER = (
    "[Clear business value statement explaining what business problem this solves]"
)
ENABLER_PURPOSE_PLACEHOLDER = "[What is the purpose?]"

# (pattern, value-or-None, fallback); None values keep the placeholder
Substitution = tuple[str, str | None, str]


def _start_marker(doc_type: DocumentType) -> str:
    return f"<!-- START {doc_type.value.upper()} TEMPLATE -->"


def _end_marker(doc_type: DocumentType) -> str:
    return f"<!-- END {doc_type.value.upper()} TEMPLATE -->"


def _literal(placeholder: str, value: str | None) -> Substitution:
    return (re.escape(placeholder), value, placeholder)


def _field(name: str, placeholder: str, value: str | None) -> Substitution:
    """Substitution for a "- **Name**: placeholder" metadata line."""
    return (
        rf"- \*\*{re.escape(name)}\*\*: {re.escape(placeholder)}",
        f"- **{name}**: {value}" if value else None,
        f"- **{name}**: {placeholder}",
    )


def _title(placeholder: str, value: str | None) -> Substitution:
    return (
        rf"^# {re.escape(placeholder)}",
        f"# {value}" if value else None,
        f"# {placeholder}",
    )


def apply_substitutions(text: str, substitutions: list[Substitution]) -> str:
    """
    Apply substitutions in order.

    Patterns starting with "^" are anchored per line; every other pattern
    replaces all occurrences.
    """
    for pattern, value, fallback in substitutions:
        replacement = value if value else fallback
        flags = re.MULTILINE if pattern.startswith("^") else 0
        text = re.sub(pattern, lambda _m, r=replacement: r, text, flags=flags)
    return text


def strip_development_plan(text: str) -> str:
    """Drop a trailing "# Development Plan" section."""
    match = re.search(rf"^{re.escape(DEVELOPMENT_PLAN_HEADING)}\b", text, re.MULTILINE)
    if not match:
        return text
    logger.debug("Removed Development Plan section from template")
    return text[: match.start()].rstrip() + "\n"


class TemplateInstantiator:
    """Builds document text for new capabilities and enablers."""

    def __init__(self, context: StoreContext, today: date | None = None):
        self.context = context
        self._today = today

    @property
    def today(self) -> str:
        return (self._today or date.today()).isoformat()

    def extract_template(self, doc_type: DocumentType | str) -> str:
        """
        Slice a skeleton out of the plan document.

        Raises:
            TemplateMissingError: If the plan document, heading or markers
                                  are absent
        """
        doc_type = DocumentType(doc_type)
        plan_path: Path | None = self.context.plan_path
        if plan_path is None or not plan_path.exists():
            raise TemplateMissingError(f"Plan document not found: {plan_path}")

        text = plan_path.read_text(encoding="utf-8")
        heading = TEMPLATE_HEADINGS[doc_type]

        heading_at = text.find(heading)
        if heading_at == -1:
            raise TemplateMissingError(f"'{heading}' not found in {plan_path.name}")

        start = text.find(_start_marker(doc_type), heading_at)
        if start == -1:
            raise TemplateMissingError(f"{_start_marker(doc_type)} not found")
        start += len(_start_marker(doc_type))

        end = text.find(_end_marker(doc_type), start)
        if end == -1:
            raise TemplateMissingError(f"{_end_marker(doc_type)} not found")

        return text[start:end].strip() + "\n"

    def _capability_substitutions(self, capability: Capability) -> list[Substitution]:
        ctx = self.context
        return [
            _title("[Capability Name]", capability.name),
            _field("Name", "[Business Function Name]", capability.name),
            _field("ID", "CAP-XXXXXX", capability.id),
            _field("Status", "[Current State]", capability.status),
            _field("Approval", "Not Approved", capability.approval),
            _field("Priority", "[High/Medium/Low]", capability.priority),
            _field(
                "Analysis Review",
                "[Required/Not Required]",
                ctx.default("analysis_review"),
            ),
            _field("Owner", "[Team/Person]", capability.owner or ctx.default("owner")),
            _field("Created Date", "YYYY-MM-DD", self.today),
            _field("Last Updated", "YYYY-MM-DD", self.today),
            _field("Version", "X.Y", ctx.default("version")),
            _literal("[Capability Name]", capability.name),
            _literal("CAP-XXXXXX", capability.id),
            _literal(CAPABILITY_PURPOSE_PLACEHOLDER, capability.purpose),
            _literal("YYYY-MM-DD", self.today),
            _literal("X.Y", ctx.default("version")),
        ]

    def _enabler_substitutions(
        self, enabler: Enabler, parent_id: str | None
    ) -> list[Substitution]:
        ctx = self.context
        return [
            _title("[Enabler Name]", enabler.name),
            _field("Name", "[Enabler Name]", enabler.name),
            _field("ID", "ENB-XXXXXX", enabler.id),
            _field("Capability ID", "CAP-XXXXXX", parent_id),
            _field("Status", "In Draft", enabler.status),
            _field("Approval", "Not Approved", enabler.approval),
            _field("Priority", "High", enabler.priority),
            _field("Analysis Review", "Required", ctx.default("analysis_review")),
            _field("Design Review", "Required", ctx.default("design_review")),
            _field("Code Review", "Not Required", ctx.default("code_review")),
            _field("Created Date", "YYYY-MM-DD", self.today),
            _field("Last Updated", "YYYY-MM-DD", self.today),
            _field("Version", "X.Y", ctx.default("version")),
            _literal("[Enabler Name]", enabler.name),
            _literal("ENB-XXXXXX", enabler.id),
            _literal("CAP-XXXXXX", parent_id),
            _literal(ENABLER_PURPOSE_PLACEHOLDER, enabler.description),
            _literal("YYYY-MM-DD", self.today),
            _literal("X.Y", ctx.default("version")),
        ]

    def _review_metadata(self, doc_type: DocumentType) -> dict[str, str]:
        extra = {"Analysis Review": self.context.default("analysis_review")}
        if doc_type is DocumentType.ENABLER:
            extra["Design Review"] = self.context.default("design_review")
            extra["Code Review"] = self.context.default("code_review")
        extra["Created Date"] = self.today
        extra["Last Updated"] = self.today
        extra["Version"] = self.context.default("version")
        return extra

    def fallback(self, entity: Capability | Enabler, parent_id: str | None = None) -> str:
        """Built-in template used when the plan document cannot supply one."""
        entity = replace(entity, owner=entity.owner or self.context.default("owner"))
        if isinstance(entity, Capability):
            return render_capability(entity, self._review_metadata(DocumentType.CAPABILITY))
        if parent_id:
            entity = replace(entity, capability_id=parent_id)
        return render_enabler(entity, self._review_metadata(DocumentType.ENABLER))

    def instantiate(
        self, entity: Capability | Enabler, parent_id: str | None = None
    ) -> str:
        """
        Produce full document text for a new entity.

        Args:
            entity: Partially filled Capability or Enabler
            parent_id: Owning capability id (enablers only; overrides
                       entity.capability_id)

        Returns:
            Document text
        """
        doc_type = entity.doc_type
        if isinstance(entity, Enabler):
            parent_id = parent_id or entity.capability_id

        try:
            template = self.extract_template(doc_type)
        except (TemplateMissingError, OSError) as e:
            logger.warning(f"TemplateMissing: {e}; using built-in {doc_type.value} template")
            return self.fallback(entity, parent_id)

        if isinstance(entity, Capability):
            text = apply_substitutions(template, self._capability_substitutions(entity))
            placeholder = "CAP-XXXXXX" if entity.id else None
        else:
            text = apply_substitutions(template, self._enabler_substitutions(entity, parent_id))
            placeholder = "ENB-XXXXXX" if entity.id else None

        if placeholder and placeholder in text:
            logger.warning(f"Some {placeholder} placeholders were not replaced")

        return strip_development_plan(text)
