"""
SpecGraph - Multi-file workflows over the document store.

Wires the store, id allocator, sync engine, view enhancer and template
instantiator together for a single StoreContext. Every mutating workflow
runs its synchronization synchronously before returning: structural facts
(which capability lists which enabler, dependency symmetry) are not
repaired at read time, so they have to be right when the write finishes.
"""

import logging
import random
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import StoreContext, build_context, load_config
from .enhancer import ViewEnhancer
from .events import ChangeBus
from .exceptions import SpecGraphError
from .ids import IdAllocator
from .models import (
    DEFAULTS,
    Capability,
    CapabilityStatus,
    DocumentType,
    Enabler,
    IdPrefix,
)
from .parser import (
    FUNCTIONAL_SECTION,
    NON_FUNCTIONAL_SECTION,
    ParsedDocument,
    parse_capability,
    parse_enabler,
    parse_metadata,
)
from .store import Document, DocumentStore, filename_for
from .sync import SyncEngine, chain, edit_metadata, edit_replace_ids
from .templates import TemplateInstantiator

logger = logging.getLogger(__name__)

COPY_PREFIX = "(Copy) "
REQUIREMENT_ID_RE = re.compile(r"^(N?FR)-\d+$")


@dataclass
class IntegrityIssue:
    """One referential-integrity or symmetry violation."""

    kind: str
    document_id: str
    message: str
    path: Path | None = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "document_id": self.document_id,
            "message": self.message,
            "path": str(self.path) if self.path else None,
        }


class SpecGraph:
    """Entry point for reading and changing the document graph."""

    def __init__(
        self,
        context: StoreContext,
        bus: ChangeBus | None = None,
        rng: random.Random | None = None,
    ):
        self.context = context
        self.store = DocumentStore(context, bus)
        self.ids = IdAllocator(self.store, rng=rng)
        self.sync = SyncEngine(self.store)
        self.enhancer = ViewEnhancer(self.store)
        self.templates = TemplateInstantiator(context)

    @classmethod
    def from_config(
        cls, config: dict[str, Any] | None = None, bus: ChangeBus | None = None
    ) -> "SpecGraph":
        return cls(build_context(config or load_config()), bus)

    @property
    def bus(self) -> ChangeBus:
        return self.store.bus

    # =========================================================================
    # Read
    # =========================================================================

    def read(self, path: str | Path) -> Document:
        return self.store.read(self.store.resolve(path))

    def parse(self, path: str | Path) -> Capability | Enabler | None:
        return self.read(path).parse()

    def render_document(self, path: str | Path) -> str:
        """Document text with enabler and dependency tables joined live."""
        return self.enhancer.enhance_for_render(self.read(path).text)

    # =========================================================================
    # Create
    # =========================================================================

    def create_capability(
        self,
        name: str,
        purpose: str = "",
        status: str = CapabilityStatus.IN_DRAFT.value,
        approval: str = DEFAULTS["approval"],
        priority: str = DEFAULTS["priority"],
        owner: str = "",
        system: str | None = None,
        component: str | None = None,
        directory: Path | None = None,
    ) -> Path:
        """
        Create a capability document from the plan template.

        Returns:
            Path of the new document
        """
        capability = Capability(
            id=self.ids.allocate(IdPrefix.CAPABILITY),
            name=name,
            status=status,
            approval=approval,
            priority=priority,
            owner=owner,
            system=system,
            component=component,
            purpose=purpose,
        )
        text = self.templates.instantiate(capability)
        target = Path(directory or self.context.primary_root)
        path = target / filename_for(capability.id, DocumentType.CAPABILITY)

        self.store.write(path, text)
        logger.info(f"Created capability {capability.id} at {path}")
        return path

    def create_enabler(
        self,
        name: str,
        capability_id: str | None = None,
        description: str = "",
        status: str = DEFAULTS["status"],
        approval: str = DEFAULTS["approval"],
        priority: str = DEFAULTS["priority"],
        owner: str = "",
    ) -> Path:
        """
        Create an enabler document and list it in its parent capability.

        The file is placed beside its parent capability when the parent is
        found, else in the primary root.
        """
        enabler = Enabler(
            id=self.ids.allocate(IdPrefix.ENABLER),
            name=name,
            description=description,
            status=status,
            approval=approval,
            priority=priority,
            owner=owner,
            capability_id=capability_id,
        )
        text = self.templates.instantiate(enabler, capability_id)

        directory = self.context.primary_root
        if capability_id:
            parent = self.store.find_capability(capability_id)
            if parent is not None:
                directory = parent.parent
            else:
                logger.warning(f"Parent capability {capability_id} not found")

        path = directory / filename_for(enabler.id, DocumentType.ENABLER)
        self.store.write(path, text)
        logger.info(f"Created enabler {enabler.id} at {path}")

        if capability_id:
            self.sync.reparent(
                enabler.id, name, None, capability_id, description or None
            )
        return path

    # =========================================================================
    # Save
    # =========================================================================

    def save_enabler(
        self,
        path: str | Path,
        text: str,
        original_capability_id: str | None = None,
        expected_version: str | None = None,
    ) -> Path:
        """
        Save an enabler and bring its parent capability in line.

        Args:
            path: Enabler document path
            text: New document text
            original_capability_id: Parent before the edit (default: read
                                    from the file being replaced)
            expected_version: Version stamp from the caller's read; when
                              given the save fails if the file changed since

        Returns:
            Final path of the enabler (moved when its parent moved)
        """
        path = self.store.resolve(path)
        if original_capability_id is None and path.exists():
            previous = parse_enabler(self.store.read(path).text)
            original_capability_id = previous.capability_id

        self.store.write(path, text, expected_version=expected_version)
        enabler = parse_enabler(text)
        new_capability_id = enabler.capability_id

        if original_capability_id != new_capability_id:
            self.sync.reparent(
                enabler.id,
                enabler.name,
                original_capability_id,
                new_capability_id,
                enabler.description or None,
            )
            if new_capability_id:
                parent = self.store.find_capability(new_capability_id)
                if parent is not None and parent.parent.resolve() != path.parent:
                    path = self.store.move(path, parent.parent / path.name)
        elif new_capability_id:
            self.sync.sync_enabler_to_capability(enabler, new_capability_id)

        return path

    def save_capability(
        self, path: str | Path, text: str, expected_version: str | None = None
    ) -> list[Path]:
        """
        Save a capability and mirror its dependency tables.

        Returns:
            Other capability documents rewritten by the dependency sync
        """
        path = self.store.resolve(path)
        self.store.write(path, text, expected_version=expected_version)
        return self.sync.sync_dependencies_from_document(path)

    def reparent_enabler(self, enabler_id: str, capability_id: str | None) -> Path:
        """
        Point an enabler at a new parent (None orphans it).

        Rewrites the enabler's Capability ID bullet, then saves it through
        save_enabler so both parents' tables follow.
        """
        path = self.store.require_enabler(enabler_id)
        document = self.store.read(path)
        edit = edit_metadata({"Capability ID": capability_id or ""})
        return self.save_enabler(
            path, edit(document.text) or document.text, expected_version=document.version
        )

    def sync_dependencies(self, capability_id: str) -> list[Path]:
        """Mirror a capability's dependency tables into every other capability."""
        return self.sync.sync_dependencies_from_document(
            self.store.require_capability(capability_id)
        )

    def copy_document(self, path: str | Path) -> Path:
        document = self.read(path)
        if document.doc_type is DocumentType.CAPABILITY:
            return self.copy_capability(document.path)
        if document.doc_type is DocumentType.ENABLER:
            return self.copy_enabler(document.path)
        raise SpecGraphError(f"Not a capability or enabler document: {path}")

    def update_enabler_metadata(
        self, enabler: Enabler | dict, capability_id: str | None = None
    ) -> Path:
        """
        Rewrite an enabler's metadata bullets and mirror it into its parent.

        Args:
            enabler: Enabler, or dict with id and any of name, status,
                     approval, priority, description
            capability_id: New parent (default: keep the current one)
        """
        data = enabler.to_dict() if isinstance(enabler, Enabler) else dict(enabler)
        enabler_id = data["id"]
        path = self.store.require_enabler(enabler_id)
        current = parse_enabler(self.store.read(path).text)

        fields = {
            "Name": data.get("name") or None,
            "Status": data.get("status") or None,
            "Approval": data.get("approval") or None,
            "Priority": data.get("priority") or None,
            "Capability ID": capability_id,
        }
        self.sync.apply(path, edit_metadata(fields, title=data.get("name") or None))

        updated = parse_enabler(self.store.read(path).text)
        if capability_id and capability_id != current.capability_id:
            self.sync.reparent(
                enabler_id,
                updated.name,
                current.capability_id,
                capability_id,
                updated.description or None,
            )
        elif updated.capability_id:
            self.sync.sync_enabler_to_capability(updated, updated.capability_id)
        return path

    # =========================================================================
    # Delete
    # =========================================================================

    def delete_document(self, path: str | Path) -> None:
        """
        Delete a document.

        An enabler is first removed from its parent's table; a capability
        first has the reverse dependency rows pointing at it removed.
        Failures in that cleanup are logged and the deletion goes ahead.
        """
        path = self.store.resolve(path)
        document = self.store.read(path)
        meta = parse_metadata(document.text)

        try:
            if document.doc_type is DocumentType.ENABLER:
                enabler = parse_enabler(document.text)
                if enabler.capability_id:
                    self.sync.remove_enabler_from_capability(
                        enabler.id, enabler.capability_id
                    )
            elif document.doc_type is DocumentType.CAPABILITY and meta.get("ID"):
                self.sync.update_bidirectional_dependencies(meta["ID"], [], [])
        except OSError as e:
            logger.error(f"Cleanup before deleting {path.name} failed: {e}")

        self.store.delete(path)

    # =========================================================================
    # Copy
    # =========================================================================

    def _renumber_requirements(self, text: str) -> dict[str, str]:
        doc = ParsedDocument(text)
        old_ids: dict[str, list[str]] = {"FR": [], "NFR": []}
        for section in (FUNCTIONAL_SECTION, NON_FUNCTIONAL_SECTION):
            table = doc.table_section(section)
            if table is None:
                continue
            for row in table.rows:
                match = row.cells and REQUIREMENT_ID_RE.match(row.cells[0])
                if match and row.cells[0] not in old_ids[match.group(1)]:
                    old_ids[match.group(1)].append(row.cells[0])

        mapping: dict[str, str] = {}
        for kind, ids in old_ids.items():
            if ids:
                new_ids = self.ids.allocate_many(f"{kind}-", len(ids))
                mapping.update(zip(ids, new_ids))
        return mapping

    def _copy_enabler_text(
        self, text: str, new_id: str, capability_id: str | None
    ) -> str:
        source = parse_enabler(text)
        name = f"{COPY_PREFIX}{source.name}"
        mapping = self._renumber_requirements(text)
        fields = {"ID": new_id, "Name": name}
        if capability_id is not None:
            fields["Capability ID"] = capability_id
        edit = chain(edit_replace_ids(mapping), edit_metadata(fields, title=name))
        return edit(text) or text

    def copy_enabler(self, path: str | Path) -> Path:
        """
        Copy an enabler under a new id, listed in the same parent.

        The copy's name gets a "(Copy) " prefix and its requirements get
        fresh FR-/NFR- ids.
        """
        path = self.store.resolve(path)
        text = self.store.read(path).text
        source = parse_enabler(text)

        new_id = self.ids.allocate(IdPrefix.ENABLER)
        new_text = self._copy_enabler_text(text, new_id, None)
        new_path = path.parent / filename_for(new_id, DocumentType.ENABLER)
        self.store.write(new_path, new_text)
        logger.info(f"Copied {source.id} to {new_id}")

        if source.capability_id:
            copy = parse_enabler(new_text)
            self.sync.reparent(
                new_id, copy.name, None, source.capability_id, copy.description or None
            )
        return new_path

    def copy_capability(self, path: str | Path) -> Path:
        """
        Copy a capability together with every enabler it owns.

        Each enabler copy is independent: one failing copy is logged and the
        rest go ahead. The new capability's enabler table lists the copies.
        """
        path = self.store.resolve(path)
        text = self.store.read(path).text
        source = parse_capability(text)
        new_id = self.ids.allocate(IdPrefix.CAPABILITY)

        mapping: dict[str, str] = {source.id: new_id}
        for enabler_path, enabler in self.store.enablers():
            if enabler.capability_id != source.id:
                continue
            try:
                copy_id = self.ids.allocate(IdPrefix.ENABLER)
                copy_text = self._copy_enabler_text(
                    self.store.read(enabler_path).text, copy_id, new_id
                )
                self.store.write(
                    enabler_path.parent / filename_for(copy_id, DocumentType.ENABLER),
                    copy_text,
                )
                mapping[enabler.id] = copy_id
            except OSError as e:
                logger.error(f"Failed to copy enabler {enabler.id}: {e}")

        name = f"{COPY_PREFIX}{source.name}"
        edit = chain(
            edit_replace_ids({k: v for k, v in mapping.items() if k != v}),
            edit_metadata({"Name": name}, title=name),
        )
        new_path = path.parent / filename_for(new_id, DocumentType.CAPABILITY)
        self.store.write(new_path, edit(text) or text)
        logger.info(
            f"Copied {source.id} to {new_id} with {len(mapping) - 1} enabler(s)"
        )

        # The copy inherits the source's dependency tables; mirror them
        self.sync.sync_dependencies_from_document(new_path)
        return new_path

    # =========================================================================
    # Integrity
    # =========================================================================

    def check_integrity(self) -> list[IntegrityIssue]:
        """
        Report referential-integrity and dependency-symmetry violations.

        Checks:
        - every enabler a capability lists exists and names it as parent
        - every parented enabler is listed by an existing parent
        - A lists B downstream exactly when B lists A upstream
        - no id is used by two documents
        """
        issues: list[IntegrityIssue] = []
        capabilities = self.store.capabilities()
        enablers = self.store.enablers()

        seen: dict[str, Path] = {}
        for path, entity in [*capabilities, *enablers]:
            if not entity.id:
                continue
            if entity.id in seen:
                issues.append(
                    IntegrityIssue(
                        "duplicate_id",
                        entity.id,
                        f"{entity.id} is used by {seen[entity.id].name} and {path.name}",
                        path,
                    )
                )
            else:
                seen[entity.id] = path

        caps_by_id = {c.id: (p, c) for p, c in capabilities if c.id}
        enablers_by_id = {e.id: (p, e) for p, e in enablers if e.id}

        for cap_id, (path, capability) in caps_by_id.items():
            for ref in capability.enablers:
                found = enablers_by_id.get(ref.id)
                if found is None:
                    issues.append(
                        IntegrityIssue(
                            "missing_enabler",
                            cap_id,
                            f"{cap_id} lists {ref.id}, which does not exist",
                            path,
                        )
                    )
                elif found[1].capability_id != cap_id:
                    issues.append(
                        IntegrityIssue(
                            "foreign_enabler",
                            cap_id,
                            f"{cap_id} lists {ref.id}, whose parent is "
                            f"{found[1].capability_id or 'unset'}",
                            path,
                        )
                    )

            for deps, reverse, relation in (
                (capability.upstream_deps, "downstream_deps", "depends on"),
                (capability.downstream_deps, "upstream_deps", "impacts"),
            ):
                for dep in deps:
                    other = caps_by_id.get(dep.capability_id)
                    if other is None:
                        issues.append(
                            IntegrityIssue(
                                "missing_capability",
                                cap_id,
                                f"{cap_id} {relation} {dep.capability_id}, "
                                f"which does not exist",
                                path,
                            )
                        )
                    elif not any(
                        d.capability_id == cap_id for d in getattr(other[1], reverse)
                    ):
                        issues.append(
                            IntegrityIssue(
                                "asymmetric_dependency",
                                cap_id,
                                f"{cap_id} {relation} {dep.capability_id}, which does "
                                f"not mirror it in {reverse.split('_')[0]}",
                                path,
                            )
                        )

        for enabler_id, (path, enabler) in enablers_by_id.items():
            if not enabler.capability_id:
                continue
            parent = caps_by_id.get(enabler.capability_id)
            if parent is None:
                issues.append(
                    IntegrityIssue(
                        "missing_capability",
                        enabler_id,
                        f"{enabler_id} names parent {enabler.capability_id}, "
                        f"which does not exist",
                        path,
                    )
                )
            elif not any(ref.id == enabler_id for ref in parent[1].enablers):
                issues.append(
                    IntegrityIssue(
                        "unlisted_enabler",
                        enabler_id,
                        f"{enabler_id} is not listed by its parent {enabler.capability_id}",
                        path,
                    )
                )

        logger.info(f"Integrity check found {len(issues)} issue(s)")
        return issues
