"""
Document Store - Discovery, reading and writing of specification files.

Every read and write is an independent filesystem operation on one of the
configured content roots. There is no cache: callers always see what is on
disk right now, including edits made outside the process.

Reads return a Document carrying a version stamp (SHA-256 of the bytes
read). Passing that stamp back to write() turns the write into a
compare-and-swap: if the file changed in between, StaleDocumentError is
raised and nothing is written. Writes without a stamp are last-writer-wins.
"""

import hashlib
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from .config import StoreContext
from .events import ChangeBus, ChangeType
from .exceptions import AccessDeniedError, DocumentNotFoundError, StaleDocumentError
from .models import Capability, DocumentType, Enabler
from .parser import detect_type, parse_document, parse_metadata

logger = logging.getLogger(__name__)

CAPABILITY_SUFFIX = "-capability.md"
ENABLER_SUFFIX = "-enabler.md"


def content_version(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def numeric_id(entity_id: str) -> str:
    """Entity id without its CAP-/ENB- prefix."""
    for prefix in ("CAP-", "ENB-"):
        if entity_id.upper().startswith(prefix):
            return entity_id[len(prefix) :]
    return entity_id


def filename_for(entity_id: str, doc_type: DocumentType | str) -> str:
    """Index filename for an entity: <numeric-id>-capability.md / -enabler.md."""
    suffix = (
        CAPABILITY_SUFFIX
        if DocumentType(doc_type) is DocumentType.CAPABILITY
        else ENABLER_SUFFIX
    )
    return f"{numeric_id(entity_id)}{suffix}"


@dataclass
class Document:
    """A document as read from disk."""

    path: Path
    text: str
    version: str

    @property
    def doc_type(self) -> DocumentType | None:
        return detect_type(self.text, self.path.name)

    @property
    def id(self) -> str | None:
        return parse_metadata(self.text).get("ID") or None

    def parse(self) -> Capability | Enabler | None:
        doc_type = self.doc_type
        if doc_type is None:
            return None
        return parse_document(self.text, doc_type)


class DocumentStore:
    """Reads and writes specification documents under the content roots."""

    def __init__(self, context: StoreContext, bus: ChangeBus | None = None):
        self.context = context
        self.bus = bus or ChangeBus()

        logger.info(
            f"DocumentStore initialized with roots: {[str(r) for r in context.roots]}"
        )

    # =========================================================================
    # Discovery
    # =========================================================================

    def iter_files(self, suffix: str = ".md") -> Iterator[Path]:
        """All files under every existing root whose name ends with suffix."""
        seen: set[Path] = set()
        for root in self.context.roots:
            if not root.exists():
                logger.debug(f"Content root does not exist (skipping): {root}")
                continue
            for path in sorted(root.rglob(f"*{suffix}")):
                resolved = path.resolve()
                if resolved in seen or not path.is_file():
                    continue
                seen.add(resolved)
                yield path

    def capability_files(self) -> list[Path]:
        return list(self.iter_files(CAPABILITY_SUFFIX))

    def enabler_files(self) -> list[Path]:
        return list(self.iter_files(ENABLER_SUFFIX))

    def iter_documents(self, suffix: str = ".md") -> Iterator[Document]:
        """
        Read every matching document.

        Unreadable files are logged and skipped so one bad file never hides
        the rest of the store.
        """
        for path in self.iter_files(suffix):
            try:
                yield self.read(path)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Could not read document {path}: {e}")

    def capabilities(self) -> list[tuple[Path, Capability]]:
        """Parse every capability document."""
        return [
            (doc.path, parse_document(doc.text, DocumentType.CAPABILITY))
            for doc in self.iter_documents(CAPABILITY_SUFFIX)
        ]

    def enablers(self) -> list[tuple[Path, Enabler]]:
        """Parse every enabler document."""
        return [
            (doc.path, parse_document(doc.text, DocumentType.ENABLER))
            for doc in self.iter_documents(ENABLER_SUFFIX)
        ]

    def _find_by_id(self, entity_id: str, doc_type: DocumentType) -> Path | None:
        suffix = (
            CAPABILITY_SUFFIX if doc_type is DocumentType.CAPABILITY else ENABLER_SUFFIX
        )

        # Filename index first; the id inside the file stays authoritative
        indexed_name = filename_for(entity_id, doc_type)
        for path in self.iter_files(suffix):
            if path.name != indexed_name:
                continue
            try:
                if parse_metadata(path.read_text(encoding="utf-8")).get("ID") == entity_id:
                    return path
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Could not read document {path}: {e}")

        for doc in self.iter_documents(suffix):
            if doc.id == entity_id:
                return doc.path

        logger.debug(f"No {doc_type.value} document found for id {entity_id}")
        return None

    def find_capability(self, capability_id: str) -> Path | None:
        """Path of the capability whose metadata ID equals capability_id."""
        return self._find_by_id(capability_id, DocumentType.CAPABILITY)

    def find_enabler(self, enabler_id: str) -> Path | None:
        """Path of the enabler whose metadata ID equals enabler_id."""
        return self._find_by_id(enabler_id, DocumentType.ENABLER)

    def require_capability(self, capability_id: str) -> Path:
        path = self.find_capability(capability_id)
        if path is None:
            raise DocumentNotFoundError(capability_id, "capability")
        return path

    def require_enabler(self, enabler_id: str) -> Path:
        path = self.find_enabler(enabler_id)
        if path is None:
            raise DocumentNotFoundError(enabler_id, "enabler")
        return path

    def resolve(self, path: str | Path) -> Path:
        """
        Resolve a user supplied path to an absolute path inside a root.

        Relative paths are looked up in each root in order; a relative path
        that exists nowhere resolves against the primary root.

        Raises:
            AccessDeniedError: If the path escapes every content root
        """
        candidate = Path(path)
        if not candidate.is_absolute():
            for root in self.context.roots:
                if (root / candidate).exists():
                    candidate = root / candidate
                    break
            else:
                candidate = self.context.primary_root / candidate

        resolved = candidate.resolve()
        for root in self.context.roots:
            if resolved.is_relative_to(root.resolve()):
                return resolved
        raise AccessDeniedError(f"Path is outside the content roots: {path}")

    # =========================================================================
    # Read / write
    # =========================================================================

    def read(self, path: Path) -> Document:
        data = Path(path).read_bytes()
        return Document(
            path=Path(path), text=data.decode("utf-8"), version=content_version(data)
        )

    def current_version(self, path: Path) -> str | None:
        try:
            return content_version(Path(path).read_bytes())
        except FileNotFoundError:
            return None

    def write(
        self, path: Path, text: str, expected_version: str | None = None
    ) -> Document:
        """
        Write a document and publish a change event once it is on disk.

        Args:
            path: Target path
            text: Full document text
            expected_version: Version stamp from a previous read; when given,
                              the write fails if the file changed since

        Returns:
            The written Document (with its new version stamp)

        Raises:
            StaleDocumentError: If expected_version no longer matches
            OSError: Filesystem errors propagate unchanged
        """
        path = Path(path)
        existed = path.exists()

        if expected_version is not None:
            actual = self.current_version(path)
            if actual != expected_version:
                raise StaleDocumentError(path, expected_version, actual)

        path.parent.mkdir(parents=True, exist_ok=True)
        data = text.encode("utf-8")
        path.write_bytes(data)
        logger.debug(f"Wrote {path.name} ({len(data)} bytes)")

        self.bus.notify(path, ChangeType.MODIFIED if existed else ChangeType.CREATED)
        return Document(path=path, text=text, version=content_version(data))

    def delete(self, path: Path) -> None:
        path = Path(path)
        path.unlink()
        logger.info(f"Deleted {path}")
        self.bus.notify(path, ChangeType.DELETED)

    def move(self, source: Path, target: Path) -> Path:
        source, target = Path(source), Path(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        source.rename(target)
        logger.info(f"Moved {source} -> {target}")
        self.bus.notify(source, ChangeType.DELETED)
        self.bus.notify(target, ChangeType.CREATED)
        return target
