"""
Identifier Allocator - Collision-resistant ids for new entities.

Ids are six-digit numbers embedded in filenames, so they are picked rather
than counted: every document under the content roots is scanned for ids
with the requested prefix, then candidates are drawn from the low-order
digits of the millisecond clock combined with a two-digit random salt.
After MAX_ATTEMPTS collisions the allocator falls back to a linear scan
from LINEAR_SCAN_START for the first free number.

Uniqueness holds against ids visible at scan time plus ids this allocator
has already handed out. Another process allocating at the same moment is
not seen.
"""

import itertools
import logging
import random
import re
import time
from collections.abc import Callable

from .models import IdPrefix
from .store import CAPABILITY_SUFFIX, ENABLER_SUFFIX, DocumentStore

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 100
LINEAR_SCAN_START = 100000
ID_DIGITS = 6

# Prefixes whose numbers also name files
INDEX_SUFFIXES = {
    IdPrefix.CAPABILITY.value: CAPABILITY_SUFFIX,
    IdPrefix.ENABLER.value: ENABLER_SUFFIX,
}


def _millis() -> int:
    return time.time_ns() // 1_000_000


def _normalize_prefix(prefix: str | IdPrefix) -> str:
    value = prefix.value if isinstance(prefix, IdPrefix) else str(prefix)
    try:
        return IdPrefix(value).value
    except ValueError:
        valid = ", ".join(p.value for p in IdPrefix)
        raise ValueError(f"Unknown id prefix {prefix!r} (expected one of: {valid})")


def id_pattern(prefix: str) -> re.Pattern:
    """Pattern matching full ids for a prefix; FR- never matches inside NFR-."""
    return re.compile(rf"\b{re.escape(prefix)}(\d+)\b")


class IdAllocator:
    """Allocates CAP-/ENB-/FR-/NFR- ids unique within the store."""

    def __init__(
        self,
        store: DocumentStore,
        rng: random.Random | None = None,
        clock: Callable[[], int] | None = None,
    ):
        """
        Args:
            store: Document store to scan
            rng: Salt source (default: a fresh random.Random)
            clock: Millisecond clock (default: wall clock)
        """
        self.store = store
        self.rng = rng or random.Random()
        self.clock = clock or _millis
        self._issued: set[str] = set()

    def existing_numbers(self, prefix: str) -> set[str]:
        """
        Numeric parts of every id with this prefix found in the store.

        For CAP- and ENB- the numbers of existing index filenames count as
        taken too, so a new document never lands on a file whose name
        disagrees with the id inside it.
        """
        pattern = id_pattern(prefix)
        numbers: set[str] = set()
        for doc in self.store.iter_documents():
            numbers.update(pattern.findall(doc.text))

        suffix = INDEX_SUFFIXES.get(prefix)
        if suffix:
            for path in self.store.iter_files(suffix):
                digits = path.name[: -len(suffix)]
                if digits.isdigit():
                    numbers.add(digits)
        return numbers

    def _candidate(self) -> str:
        number = (self.clock() % 10000) * 100 + self.rng.randint(0, 99)
        return f"{number:0{ID_DIGITS}d}"

    def _pick(self, taken: set[str]) -> str:
        for _ in range(MAX_ATTEMPTS):
            candidate = self._candidate()
            if candidate not in taken:
                return candidate

        logger.warning(
            f"IdExhausted: no free id after {MAX_ATTEMPTS} attempts, "
            f"falling back to linear scan from {LINEAR_SCAN_START}"
        )
        for number in itertools.count(LINEAR_SCAN_START):
            candidate = f"{number:0{ID_DIGITS}d}"
            if candidate not in taken:
                return candidate

    def _taken(self, prefix: str) -> set[str]:
        taken = self.existing_numbers(prefix)
        taken.update(
            issued[len(prefix) :] for issued in self._issued if issued.startswith(prefix)
        )
        return taken

    def allocate(self, prefix: str | IdPrefix) -> str:
        """
        Allocate one id.

        Args:
            prefix: "CAP-", "ENB-", "FR-" or "NFR-"

        Returns:
            Full id, e.g. "ENB-482913"

        Raises:
            ValueError: If prefix is not a known id prefix
        """
        return self.allocate_many(prefix, 1)[0]

    def allocate_many(self, prefix: str | IdPrefix, count: int) -> list[str]:
        """Allocate count distinct ids from a single store scan."""
        prefix = _normalize_prefix(prefix)
        taken = self._taken(prefix)

        ids = []
        for _ in range(count):
            number = self._pick(taken)
            taken.add(number)
            new_id = f"{prefix}{number}"
            self._issued.add(new_id)
            ids.append(new_id)

        logger.debug(f"Allocated {', '.join(ids)}")
        return ids
