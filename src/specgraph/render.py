"""
Render entities back to specification markdown.

Output follows the grammar the parser reads, so parse(render(e)) returns
the same field values. Enabler tables are written in the canonical
two-column form (id, description).
"""

from .models import Capability, Dependency, EnablerRef, Enabler, Requirement

ENABLER_TABLE_HEADER = "| Enabler ID | Description |"
ENABLER_TABLE_SEPARATOR = "|------------|-------------|"
DEPENDENCY_TABLE_HEADER = "| Capability ID | Description |"
DEPENDENCY_TABLE_SEPARATOR = "|---------------|-------------|"
FUNCTIONAL_TABLE_HEADER = "| ID | Name | Requirement | Priority | Status | Approval |"
FUNCTIONAL_TABLE_SEPARATOR = "|----|------|-------------|----------|--------|----------|"
NON_FUNCTIONAL_TABLE_HEADER = (
    "| ID | Name | Type | Requirement | Priority | Status | Approval |"
)
NON_FUNCTIONAL_TABLE_SEPARATOR = (
    "|----|------|------|-------------|----------|--------|----------|"
)


def cell(value: str | None) -> str:
    """Make a value safe to place inside a table cell."""
    if not value:
        return ""
    return value.replace("\n", " ").replace("|", "\\|").strip()


def table_row(*values: str | None) -> str:
    return "| " + " | ".join(cell(v) for v in values) + " |"


def enabler_row(ref: EnablerRef) -> str:
    return table_row(ref.id, ref.description)


def dependency_row(dep: Dependency) -> str:
    return table_row(dep.capability_id, dep.description)


def _metadata(fields: list[tuple[str, str | None]]) -> list[str]:
    lines = ["## Metadata"]
    for name, value in fields:
        if value is None:
            continue
        lines.append(f"- **{name}**: {value}")
    return lines


def _purpose(text: str) -> list[str]:
    lines = ["## Technical Overview", "### Purpose"]
    if text:
        lines.append(text)
    return lines


def _dependency_table(deps: list[Dependency]) -> list[str]:
    lines = [DEPENDENCY_TABLE_HEADER, DEPENDENCY_TABLE_SEPARATOR]
    if deps:
        lines.extend(dependency_row(d) for d in deps)
    else:
        lines.append("| | |")
    return lines


def _requirement_table(
    requirements: list[Requirement], non_functional: bool
) -> list[str]:
    if non_functional:
        lines = [NON_FUNCTIONAL_TABLE_HEADER, NON_FUNCTIONAL_TABLE_SEPARATOR]
        for req in requirements:
            lines.append(
                table_row(
                    req.id,
                    req.name,
                    req.type,
                    req.requirement,
                    req.priority,
                    req.status,
                    req.approval,
                )
            )
        if not requirements:
            lines.append("| | | | | | | |")
    else:
        lines = [FUNCTIONAL_TABLE_HEADER, FUNCTIONAL_TABLE_SEPARATOR]
        for req in requirements:
            lines.append(
                table_row(
                    req.id, req.name, req.requirement, req.priority, req.status, req.approval
                )
            )
        if not requirements:
            lines.append("| | | | | | |")
    return lines


def render_capability(
    capability: Capability, extra_metadata: dict[str, str] | None = None
) -> str:
    """
    Render a capability document.

    Args:
        capability: Capability to render
        extra_metadata: Additional metadata bullets (e.g. review settings)
                        written after Priority

    Returns:
        Markdown text
    """
    fields: list[tuple[str, str | None]] = [
        ("Name", capability.name),
        ("Type", "Capability"),
        ("System", capability.system),
        ("Component", capability.component),
        ("ID", capability.id),
        ("Owner", capability.owner),
        ("Status", capability.status),
        ("Approval", capability.approval),
        ("Priority", capability.priority),
    ]
    fields.extend((extra_metadata or {}).items())

    lines = [f"# {capability.name}", ""]
    lines += _metadata(fields) + [""]
    lines += _purpose(capability.purpose) + [""]

    lines += ["## Enablers", "", ENABLER_TABLE_HEADER, ENABLER_TABLE_SEPARATOR]
    if capability.enablers:
        lines.extend(enabler_row(ref) for ref in capability.enablers)
    else:
        lines.append("| | |")
    lines.append("")

    lines += ["## Dependencies", "", "### Internal Upstream Dependency", ""]
    lines += _dependency_table(capability.upstream_deps) + [""]
    lines += ["### Internal Downstream Impact", ""]
    lines += _dependency_table(capability.downstream_deps) + [""]
    lines += [
        "### External Dependencies",
        "",
        f"**External Upstream Dependencies**: {capability.external_upstream}",
        "",
        f"**External Downstream Impact**: {capability.external_downstream}",
        "",
    ]
    return "\n".join(lines)


def render_enabler(enabler: Enabler, extra_metadata: dict[str, str] | None = None) -> str:
    """
    Render an enabler document.

    Args:
        enabler: Enabler to render
        extra_metadata: Additional metadata bullets written after Priority

    Returns:
        Markdown text
    """
    fields: list[tuple[str, str | None]] = [
        ("Name", enabler.name),
        ("Type", "Enabler"),
        ("ID", enabler.id),
        ("Capability ID", enabler.capability_id),
        ("Owner", enabler.owner),
        ("Status", enabler.status),
        ("Approval", enabler.approval),
        ("Priority", enabler.priority),
    ]
    fields.extend((extra_metadata or {}).items())

    lines = [f"# {enabler.name}", ""]
    lines += _metadata(fields) + [""]
    lines += _purpose(enabler.description) + [""]
    lines += ["## Functional Requirements", ""]
    lines += _requirement_table(enabler.functional_requirements, False) + [""]
    lines += ["## Non-Functional Requirements", ""]
    lines += _requirement_table(enabler.non_functional_requirements, True) + [""]
    return "\n".join(lines)


def render(entity: Capability | Enabler, extra_metadata: dict[str, str] | None = None) -> str:
    if isinstance(entity, Capability):
        return render_capability(entity, extra_metadata)
    return render_enabler(entity, extra_metadata)
