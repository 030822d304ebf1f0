"""Shared pytest fixtures for specgraph tests.

Every test gets its own content root under tmp_path, so stores never share
state. Documents are written as a person would write them, not through the
renderer, so parser and sync tests exercise hand-made markdown.
"""

import random
from pathlib import Path

import pytest

from specgraph.config import StoreContext
from specgraph.operations import SpecGraph

# =============================================================================
# Document builders
# =============================================================================

CAPABILITY_DOC = """# {name}

## Metadata
- **Name**: {name}
- **Type**: Capability
- **ID**: {id}
- **Owner**: Product Team
- **Status**: In Draft
- **Approval**: Not Approved
- **Priority**: High

## Technical Overview
### Purpose
{name} for the whole organisation.

## Enablers

| Enabler ID | Description |
|------------|-------------|
{enabler_rows}

## Dependencies

### Internal Upstream Dependency

| Capability ID | Description |
|---------------|-------------|
{upstream_rows}

### Internal Downstream Impact

| Capability ID | Description |
|---------------|-------------|
{downstream_rows}

### External Dependencies

**External Upstream Dependencies**: Payment provider

**External Downstream Impact**: None identified.
"""

ENABLER_DOC = """# {name}

## Metadata
- **Name**: {name}
- **Type**: Enabler
- **ID**: {id}
- **Capability ID**: {capability_id}
- **Owner**: Product Team
- **Status**: {status}
- **Approval**: Approved
- **Priority**: Medium

## Technical Overview
### Purpose
{description}

## Functional Requirements

| ID | Name | Requirement | Priority | Status | Approval |
|----|------|-------------|----------|--------|----------|
| FR-{fr} | Accept input | The system accepts input | Must Have | In Draft | Not Approved |

## Non-Functional Requirements

| ID | Name | Type | Requirement | Priority | Status | Approval |
|----|------|------|-------------|----------|--------|----------|
| NFR-{fr} | Fast | Performance | Responds within 200ms | Should Have | In Draft | Not Approved |
"""

PLAN_DOC = """# Software Development Plan

### Capability Template Structure:
<!-- START CAPABILITY TEMPLATE -->
# [Capability Name]

## Metadata
- **Name**: [Business Function Name]
- **Type**: Capability
- **ID**: CAP-XXXXXX
- **Owner**: [Team/Person]
- **Status**: [Current State]
- **Approval**: Not Approved
- **Priority**: [High/Medium/Low]
- **Created Date**: YYYY-MM-DD
- **Version**: X.Y

## Technical Overview
### Purpose
[Clear business value statement explaining what business problem this solves]

## Enablers

| Enabler ID | Description |
|------------|-------------|
| | |

# Development Plan

Steps for the team, not part of the document.
<!-- END CAPABILITY TEMPLATE -->

### Enabler Template Structure:
<!-- START ENABLER TEMPLATE -->
# [Enabler Name]

## Metadata
- **Name**: [Enabler Name]
- **Type**: Enabler
- **ID**: ENB-XXXXXX
- **Capability ID**: CAP-XXXXXX
- **Status**: In Draft
- **Approval**: Not Approved
- **Priority**: High
- **Version**: X.Y

## Technical Overview
### Purpose
[What is the purpose?]
<!-- END ENABLER TEMPLATE -->
"""


def _rows(pairs) -> str:
    rows = [f"| {left} | {right} |" for left, right in pairs]
    return "\n".join(rows) if rows else "| | |"


def capability_doc(
    cap_id: str,
    name: str = "Order Management",
    enablers=(),
    upstream=(),
    downstream=(),
) -> str:
    """Capability markdown; enablers/upstream/downstream are (id, description) pairs."""
    return CAPABILITY_DOC.format(
        id=cap_id,
        name=name,
        enabler_rows=_rows(enablers),
        upstream_rows=_rows(upstream),
        downstream_rows=_rows(downstream),
    )


def enabler_doc(
    enb_id: str,
    name: str = "Order Intake API",
    capability_id: str = "",
    description: str = "Accept orders over HTTP",
    status: str = "Implemented",
) -> str:
    return ENABLER_DOC.format(
        id=enb_id,
        name=name,
        capability_id=capability_id,
        description=description,
        status=status,
        fr=enb_id.split("-")[1],
    )


def write_capability(root: Path, cap_id: str, **kwargs) -> Path:
    path = root / f"{cap_id.split('-')[1]}-capability.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(capability_doc(cap_id, **kwargs), encoding="utf-8")
    return path


def write_enabler(root: Path, enb_id: str, **kwargs) -> Path:
    path = root / f"{enb_id.split('-')[1]}-enabler.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(enabler_doc(enb_id, **kwargs), encoding="utf-8")
    return path


# =============================================================================
# Store fixtures
# =============================================================================


@pytest.fixture
def content_root(tmp_path: Path) -> Path:
    """Empty content root."""
    root = tmp_path / "specifications"
    root.mkdir()
    return root


@pytest.fixture
def plan_path(tmp_path: Path) -> Path:
    path = tmp_path / "SOFTWARE_DEVELOPMENT_PLAN.md"
    path.write_text(PLAN_DOC, encoding="utf-8")
    return path


@pytest.fixture
def context(content_root: Path, plan_path: Path) -> StoreContext:
    return StoreContext(
        roots=(content_root,),
        plan_path=plan_path,
        defaults={"owner": "Platform Team", "version": "1.0"},
    )


@pytest.fixture
def graph(context: StoreContext) -> SpecGraph:
    """SpecGraph over the empty content root with a seeded id salt."""
    return SpecGraph(context, rng=random.Random(1234))
