"""Unit tests for the MCP tool functions.

Tools are plain async functions once registered, so they are awaited
directly against a SpecGraph bound to tmp_path.
"""

import asyncio
import random
from pathlib import Path

import pytest
from conftest import write_capability, write_enabler

from specgraph import server
from specgraph.events import ChangeBus
from specgraph.operations import SpecGraph


@pytest.fixture
def graph(context, monkeypatch) -> SpecGraph:
    bus = ChangeBus()
    bus.subscribe(server._record_change)
    graph = SpecGraph(context, bus, rng=random.Random(5))
    monkeypatch.setattr(server, "graph", graph)
    monkeypatch.setattr(server, "_recent_changes", [])
    return graph


def run(coro):
    return asyncio.run(coro)


class TestReadTools:
    def test_parse_document(self, graph, content_root):
        write_enabler(content_root, "ENB-1", capability_id="CAP-1")

        result = run(server.parse_document("1-enabler.md"))

        assert result["success"] is True
        assert result["document"]["id"] == "ENB-1"
        assert result["document"]["type"] == "enabler"
        assert result["version"] == graph.read("1-enabler.md").version

    def test_parse_document_outside_roots(self, graph):
        result = run(server.parse_document("../../etc/passwd"))

        assert result["success"] is False
        assert "outside" in result["error"]

    def test_render_document(self, graph, content_root):
        write_capability(content_root, "CAP-1", enablers=[("ENB-1", "x")])
        write_enabler(content_root, "ENB-1", capability_id="CAP-1")

        result = run(server.render_document("1-capability.md"))

        assert "| ENB-1 | Order Intake API |" in result["content"]

    def test_allocate_id(self, graph):
        result = run(server.allocate_id("FR-", count=3))

        assert result["success"] is True
        assert len(set(result["ids"])) == 3

    def test_allocate_id_bad_prefix(self, graph):
        assert run(server.allocate_id("BUG-"))["success"] is False


class TestWriteTools:
    def test_create_and_reparent(self, graph, content_root):
        write_capability(content_root, "CAP-1")
        write_capability(content_root, "CAP-2")

        created = run(server.create_enabler("Intake", capability_id="CAP-1"))
        assert created["success"] is True

        moved = run(server.reparent_enabler(created["id"], "CAP-2"))
        assert moved["success"] is True

        issues = run(server.check_integrity())
        assert issues["issue_count"] == 0

    def test_reparent_unknown(self, graph):
        result = run(server.reparent_enabler("ENB-404", "CAP-1"))
        assert result["success"] is False

    def test_sync_dependencies(self, graph, content_root):
        write_capability(content_root, "CAP-1", downstream=[("CAP-2", "x")])
        write_capability(content_root, "CAP-2")

        result = run(server.sync_dependencies("CAP-1"))

        assert [Path(p).name for p in result["updated"]] == ["2-capability.md"]

    def test_copy_and_delete(self, graph, content_root):
        write_capability(content_root, "CAP-1")

        copied = run(server.copy_document("1-capability.md"))
        deleted = run(server.delete_document(copied["path"]))

        assert copied["success"] and deleted["success"]
        assert [p.name for p in graph.store.capability_files()] == ["1-capability.md"]

    def test_recent_changes(self, graph):
        run(server.create_capability("Billing"))

        changes = run(server.recent_changes())

        assert changes["count"] >= 1
        assert changes["changes"][0]["change_type"] == "created"
