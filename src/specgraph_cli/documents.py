"""Document commands: inspect, create, reparent, copy, delete and check."""

import json
import re
from pathlib import Path

import typer

from specgraph.exceptions import SpecGraphError
from specgraph.models import Capability, Enabler
from specgraph.operations import SpecGraph

from .console import console, create_table, print_error, print_success, print_warning

ENTITY_ID_RE = re.compile(r"^(CAP|ENB)-\d+$")


def _graph(ctx: typer.Context) -> SpecGraph:
    return SpecGraph.from_config(ctx.obj["config"])


def _locate(graph: SpecGraph, target: str) -> Path:
    """Accept either a CAP-/ENB- id or a document path."""
    match = ENTITY_ID_RE.match(target)
    if match is None:
        return graph.store.resolve(target)
    if match.group(1) == "CAP":
        return graph.store.require_capability(target)
    return graph.store.require_enabler(target)


def _fail(e: Exception) -> typer.Exit:
    print_error(str(e))
    return typer.Exit(1)


def _print_capability(capability: Capability) -> None:
    table = create_table(f"{capability.id}: {capability.name}", "Field", "Value")
    table.add_row("Status", capability.status)
    table.add_row("Approval", capability.approval)
    table.add_row("Priority", capability.priority)
    table.add_row("Owner", capability.owner)
    if capability.system:
        table.add_row("System", capability.system)
    if capability.component:
        table.add_row("Component", capability.component)
    console.print(table)

    if capability.enablers:
        enablers = create_table("Enablers", "Enabler ID", "Description")
        for ref in capability.enablers:
            enablers.add_row(ref.id, ref.description)
        console.print(enablers)

    for title, deps in (
        ("Upstream", capability.upstream_deps),
        ("Downstream", capability.downstream_deps),
    ):
        if deps:
            table = create_table(f"{title} Dependencies", "Capability ID", "Description")
            for dep in deps:
                table.add_row(dep.capability_id, dep.description)
            console.print(table)


def _print_enabler(enabler: Enabler) -> None:
    table = create_table(f"{enabler.id}: {enabler.name}", "Field", "Value")
    table.add_row("Capability ID", enabler.capability_id or "-")
    table.add_row("Status", enabler.status)
    table.add_row("Approval", enabler.approval)
    table.add_row("Priority", enabler.priority)
    table.add_row("Owner", enabler.owner)
    console.print(table)

    requirements = enabler.functional_requirements + enabler.non_functional_requirements
    if requirements:
        reqs = create_table("Requirements", "ID", "Name", "Priority", "Status")
        for req in requirements:
            reqs.add_row(req.id, req.name, req.priority, req.status)
        console.print(reqs)


def show_command(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="CAP-/ENB- id or document path"),
    as_json: bool = typer.Option(False, "--json", help="Print the parsed document as JSON"),
) -> None:
    """Show a parsed capability or enabler."""
    graph = _graph(ctx)
    try:
        entity = graph.read(_locate(graph, target)).parse()
    except (SpecGraphError, OSError) as e:
        raise _fail(e) from e

    if entity is None:
        raise _fail(SpecGraphError(f"Not a capability or enabler: {target}"))
    if as_json:
        typer.echo(json.dumps(entity.to_dict(), indent=2))
    elif isinstance(entity, Capability):
        _print_capability(entity)
    else:
        _print_enabler(entity)


def render_command(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="CAP-/ENB- id or document path"),
) -> None:
    """Print a document with enabler tables joined against live enabler files."""
    graph = _graph(ctx)
    try:
        text = graph.render_document(_locate(graph, target))
    except (SpecGraphError, OSError) as e:
        raise _fail(e) from e
    typer.echo(text, nl=False)


def allocate_id_command(
    ctx: typer.Context,
    prefix: str = typer.Argument(..., help="CAP-, ENB-, FR- or NFR-"),
    count: int = typer.Option(1, "--count", "-n", help="Number of ids"),
) -> None:
    """Allocate ids unused anywhere in the content roots."""
    graph = _graph(ctx)
    try:
        ids = graph.ids.allocate_many(prefix, count)
    except ValueError as e:
        raise _fail(e) from e
    for entity_id in ids:
        typer.echo(entity_id)


def new_capability_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Capability name"),
    purpose: str = typer.Option("", "--purpose", "-p", help="Business value statement"),
    priority: str = typer.Option("High", "--priority", help="High, Medium or Low"),
    owner: str = typer.Option("", "--owner", help="Owning team or person"),
    system: str | None = typer.Option(None, "--system"),
    component: str | None = typer.Option(None, "--component"),
) -> None:
    """Create a capability document from the plan template."""
    graph = _graph(ctx)
    try:
        path = graph.create_capability(
            name,
            purpose=purpose,
            priority=priority,
            owner=owner,
            system=system,
            component=component,
        )
    except (SpecGraphError, OSError) as e:
        raise _fail(e) from e
    print_success(f"Created {graph.read(path).id}: {path}")


def new_enabler_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Enabler name"),
    capability_id: str | None = typer.Option(
        None, "--capability", "-C", help="Parent capability id"
    ),
    description: str = typer.Option("", "--description", "-d"),
    priority: str = typer.Option("High", "--priority", help="High, Medium or Low"),
    owner: str = typer.Option("", "--owner", help="Owning team or person"),
) -> None:
    """Create an enabler document and list it in its parent capability."""
    graph = _graph(ctx)
    try:
        path = graph.create_enabler(
            name,
            capability_id=capability_id,
            description=description,
            priority=priority,
            owner=owner,
        )
    except (SpecGraphError, OSError) as e:
        raise _fail(e) from e
    print_success(f"Created {graph.read(path).id}: {path}")


def reparent_command(
    ctx: typer.Context,
    enabler_id: str = typer.Argument(..., help="Enabler to move"),
    capability_id: str | None = typer.Argument(
        None, help="New parent capability (omit to orphan the enabler)"
    ),
) -> None:
    """Move an enabler to another capability."""
    graph = _graph(ctx)
    try:
        path = graph.reparent_enabler(enabler_id, capability_id)
    except (SpecGraphError, OSError) as e:
        raise _fail(e) from e
    print_success(f"{enabler_id} now belongs to {capability_id or 'no capability'}: {path}")


def sync_deps_command(
    ctx: typer.Context,
    capability_id: str = typer.Argument(..., help="Capability whose tables are mirrored"),
) -> None:
    """Mirror a capability's dependency tables into the other capabilities."""
    graph = _graph(ctx)
    try:
        updated = graph.sync_dependencies(capability_id)
    except (SpecGraphError, OSError) as e:
        raise _fail(e) from e
    if not updated:
        console.print("[dim]Dependencies already symmetric.[/dim]")
    for path in updated:
        print_success(f"Updated {path.name}")


def copy_command(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="CAP-/ENB- id or document path"),
) -> None:
    """Copy a capability (with its enablers) or an enabler under new ids."""
    graph = _graph(ctx)
    try:
        path = graph.copy_document(_locate(graph, target))
    except (SpecGraphError, OSError) as e:
        raise _fail(e) from e
    print_success(f"Copied to {graph.read(path).id}: {path}")


def delete_command(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="CAP-/ENB- id or document path"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a document and detach it from the rest of the graph."""
    graph = _graph(ctx)
    try:
        path = _locate(graph, target)
    except SpecGraphError as e:
        raise _fail(e) from e

    if not yes and not typer.confirm(f"Delete {path.name}?"):
        raise typer.Exit(1)
    try:
        graph.delete_document(path)
    except (SpecGraphError, OSError) as e:
        raise _fail(e) from e
    print_success(f"Deleted {path.name}")


def check_command(ctx: typer.Context) -> None:
    """Check enabler references and dependency symmetry.

    Exits with status 1 when any issue is found.
    """
    issues = _graph(ctx).check_integrity()
    if not issues:
        print_success("No integrity issues found")
        return

    table = create_table("Integrity Issues", "Kind", "Document", "Problem")
    for issue in issues:
        table.add_row(issue.kind, issue.document_id, issue.message)
    console.print(table)
    print_warning(f"{len(issues)} issue(s) found")
    raise typer.Exit(1)

