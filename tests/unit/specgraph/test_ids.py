"""Unit tests for id allocation."""

import random
import re

import pytest
from conftest import write_capability, write_enabler

from specgraph.ids import LINEAR_SCAN_START, IdAllocator, id_pattern
from specgraph.models import IdPrefix
from specgraph.store import DocumentStore


@pytest.fixture
def store(context) -> DocumentStore:
    return DocumentStore(context)


class TestIdPattern:
    def test_fr_does_not_match_inside_nfr(self):
        assert id_pattern("FR-").findall("NFR-123 FR-456") == ["456"]


class TestAllocate:
    """Tests for IdAllocator.allocate()."""

    def test_format(self, store):
        new_id = IdAllocator(store, rng=random.Random(7)).allocate("ENB-")
        assert re.fullmatch(r"ENB-\d{6}", new_id)

    def test_accepts_enum_prefix(self, store):
        assert IdAllocator(store).allocate(IdPrefix.CAPABILITY).startswith("CAP-")

    def test_unknown_prefix(self, store):
        with pytest.raises(ValueError):
            IdAllocator(store).allocate("XYZ-")

    def test_avoids_ids_in_store(self, store, content_root):
        write_capability(content_root, "CAP-000007")
        allocator = IdAllocator(store, rng=random.Random(0), clock=lambda: 0)
        allocator.rng.randint = lambda a, b: 7

        # Every random candidate is 000007, which is taken
        assert allocator.allocate("CAP-") == f"CAP-{LINEAR_SCAN_START}"

    def test_ids_referenced_in_tables_count_as_taken(self, store, content_root):
        write_enabler(content_root, "ENB-000001")  # carries FR-000001 / NFR-000001
        allocator = IdAllocator(store, clock=lambda: 0)
        allocator.rng.randint = lambda a, b: 1

        assert allocator.allocate("FR-") == f"FR-{LINEAR_SCAN_START}"
        assert "000001" in allocator.existing_numbers("NFR-")

    def test_index_filenames_count_as_taken(self, store, content_root):
        # File named for 123456 but carrying another id
        (content_root / "123456-capability.md").write_text("# Renamed\n")
        (content_root / "123456-enabler.md").write_text("# Renamed\n")
        allocator = IdAllocator(store, clock=lambda: 1234)
        allocator.rng.randint = lambda a, b: 56

        assert "123456" in allocator.existing_numbers("CAP-")
        assert allocator.allocate("CAP-") == f"CAP-{LINEAR_SCAN_START}"
        assert allocator.allocate("ENB-") == f"ENB-{LINEAR_SCAN_START}"
        # Requirement ids have no index files
        assert allocator.allocate("FR-") == "FR-123456"

    def test_never_repeats_within_allocator(self, store):
        allocator = IdAllocator(store, clock=lambda: 1234)
        allocator.rng.randint = lambda a, b: 56

        first = allocator.allocate("ENB-")
        second = allocator.allocate("ENB-")

        assert first == "ENB-123456"
        assert second != first

    def test_allocate_many_distinct(self, store):
        ids = IdAllocator(store, rng=random.Random(3)).allocate_many("FR-", 50)
        assert len(set(ids)) == 50

    def test_prefixes_are_independent(self, store, content_root):
        write_capability(content_root, "CAP-123456")
        allocator = IdAllocator(store, clock=lambda: 1234)
        allocator.rng.randint = lambda a, b: 56

        assert allocator.allocate("ENB-") == "ENB-123456"


class TestExhaustion:
    """The linear-scan fallback bounds allocation time."""

    def test_linear_scan_after_collisions(self, store, monkeypatch, caplog):
        allocator = IdAllocator(store, clock=lambda: 0)
        taken = {f"{n:06d}" for n in range(LINEAR_SCAN_START + 5)}
        monkeypatch.setattr(allocator, "existing_numbers", lambda prefix: set(taken))

        assert allocator.allocate("ENB-") == f"ENB-{LINEAR_SCAN_START + 5:06d}"
        assert "IdExhausted" in caplog.text

    def test_terminates_with_nearly_full_space(self, store, monkeypatch):
        """999,999 of the 1,000,000 six-digit ids already in use."""
        allocator = IdAllocator(store, rng=random.Random(11))
        taken = {f"{n:06d}" for n in range(999_999)}
        monkeypatch.setattr(allocator, "existing_numbers", lambda prefix: taken)

        assert allocator.allocate("ENB-") == "ENB-999999"
