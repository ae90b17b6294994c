"""CLI interface for the family graph engine."""

import asyncio
from datetime import date

import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from .config import EngineConfig
from .engine import FamilyGraphEngine
from .exceptions import FamilyGraphError
from .models import FamilyMember, FamilyTreeNode, Gender, RelationType
from .repository import FamilyRepository

app = typer.Typer(
    name="family-graph",
    help="Family relationship graph: trees, members, relations and queries",
    add_completion=False,
)
console = Console()


def get_config() -> EngineConfig:
    """Load configuration from environment."""
    from dotenv import load_dotenv

    from .logging import configure_logging

    load_dotenv()
    config = EngineConfig.from_env()
    configure_logging(config.log_level)
    return config


def get_repository(config: EngineConfig) -> FamilyRepository:
    from .store.sqlite import SQLiteDocumentStore

    store = SQLiteDocumentStore(config.db_path, max_batch_size=config.batch_limit)
    return FamilyRepository(store)


def _fail(error: Exception) -> None:
    console.print(f"[red]Error: {error}[/red]")
    raise typer.Exit(1)


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        console.print(f"[red]Error: Invalid date '{value}', expected YYYY-MM-DD[/red]")
        raise typer.Exit(1)


def _parse_relation(value: str) -> RelationType:
    try:
        return RelationType(value.lower().replace("-", "_"))
    except ValueError:
        console.print(f"[red]Invalid relation. Choose from: {[r.value for r in RelationType]}[/red]")
        raise typer.Exit(1)


def _parse_gender(value: str) -> Gender:
    try:
        return Gender(value.lower())
    except ValueError:
        console.print(f"[red]Invalid gender. Choose from: {[g.value for g in Gender]}[/red]")
        raise typer.Exit(1)


# =============================================================================
# Trees and members
# =============================================================================


@app.command("create-tree")
def create_tree(
    name: str = typer.Argument(..., help="Name of the family tree"),
    first_name: str = typer.Option(..., "--first-name", help="Root member's first name"),
    last_name: str = typer.Option(..., "--last-name", help="Root member's last name"),
    owner: str = typer.Option(..., "--owner", help="Owning user id"),
    description: str = typer.Option(None, "--description", "-d", help="Tree description"),
    gender: str = typer.Option("male", "--gender", help="Root member's gender"),
    born: str = typer.Option(None, "--born", help="Root member's birth date (YYYY-MM-DD)"),
    public: bool = typer.Option(False, "--public", help="Make the tree publicly listed"),
):
    """Create a family tree together with its root member."""
    repository = get_repository(get_config())

    root = FamilyMember(
        first_name=first_name,
        last_name=last_name,
        gender=_parse_gender(gender),
        date_of_birth=_parse_date(born),
        created_by=owner,
    )
    try:
        tree_id = repository.create_tree(name, description, root, owner_id=owner, is_public=public)
        tree = repository.get_tree(tree_id)
    except FamilyGraphError as e:
        _fail(e)

    console.print(f"[green]Created tree '{name}'[/green]")
    console.print(f"Tree: {tree_id}")
    console.print(f"Root: {tree.root_member_id}")


@app.command("add-member")
def add_member(
    tree_id: str = typer.Argument(..., help="Family tree id"),
    first_name: str = typer.Option(..., "--first-name", help="First name"),
    last_name: str = typer.Option(..., "--last-name", help="Last name"),
    created_by: str = typer.Option(..., "--by", help="User adding the member"),
    generation: int = typer.Option(0, "--generation", "-g", help="Offset from the root (negative for ancestors)"),
    gender: str = typer.Option("male", "--gender", help="Gender"),
    born: str = typer.Option(None, "--born", help="Birth date (YYYY-MM-DD)"),
    deceased: bool = typer.Option(False, "--deceased", help="Record the member as no longer living"),
    parent: str = typer.Option(None, "--from", help="Existing member the new relation starts from"),
    relation: str = typer.Option(None, "--relation", "-r", help="Relation type from --from to the new member"),
):
    """Add a member, optionally linked to an existing member."""
    repository = get_repository(get_config())

    member = FamilyMember(
        family_tree_id=tree_id,
        first_name=first_name,
        last_name=last_name,
        gender=_parse_gender(gender),
        date_of_birth=_parse_date(born),
        is_alive=not deceased,
        generation=generation,
        created_by=created_by,
    )
    relation_type = _parse_relation(relation) if relation else None
    try:
        member_id = repository.add_member(member, parent_id=parent, relation_type=relation_type)
    except FamilyGraphError as e:
        _fail(e)

    console.print(f"[green]Added {member.display_name}[/green]")
    console.print(f"Member: {member_id}")


@app.command()
def relate(
    tree_id: str = typer.Argument(..., help="Family tree id"),
    from_member: str = typer.Argument(..., help="Member the relation starts from"),
    to_member: str = typer.Argument(..., help="Member the relation points to"),
    relation: str = typer.Argument(..., help="Relation type, e.g. spouse, son, father"),
    created_by: str = typer.Option(..., "--by", help="User creating the relation"),
):
    """Create a relation between two existing members."""
    repository = get_repository(get_config())
    relation_type = _parse_relation(relation)
    try:
        relation_id = repository.create_relation(tree_id, from_member, to_member, relation_type, created_by)
    except FamilyGraphError as e:
        _fail(e)

    console.print(f"[green]Related as {relation_type.value.replace('_', ' ')}[/green]")
    console.print(f"Relation: {relation_id}")


def _member_table(title: str, members: list[FamilyMember]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Gen")
    table.add_column("Born")
    table.add_column("Alive")

    for member in members:
        table.add_row(
            member.id[:8] + "...",
            member.display_name,
            str(member.generation),
            member.date_of_birth.isoformat() if member.date_of_birth else "",
            "yes" if member.is_alive else "no",
        )
    return table


@app.command("members")
def list_members(
    tree_id: str = typer.Argument(..., help="Family tree id"),
):
    """List the members of a tree by generation."""
    repository = get_repository(get_config())
    try:
        tree = repository.get_tree(tree_id)
        members = repository.list_tree_members(tree_id)
    except FamilyGraphError as e:
        _fail(e)

    console.print(_member_table(tree.name, members))
    console.print(f"[dim]Showing {len(members)} members[/dim]")


@app.command()
def search(
    tree_id: str = typer.Argument(..., help="Family tree id"),
    term: str = typer.Argument(..., help="Search term"),
):
    """Search members by name."""
    repository = get_repository(get_config())
    try:
        members = repository.search_members(tree_id, term)
    except FamilyGraphError as e:
        _fail(e)

    if not members:
        console.print(f"[yellow]No members found matching '{term}'[/yellow]")
        return

    console.print(_member_table(f"Search Results for '{term}'", members))


@app.command("delete-member")
def delete_member(
    member_id: str = typer.Argument(..., help="Member id"),
):
    """Delete a member and every relation touching it."""
    repository = get_repository(get_config())
    try:
        repository.delete_member(member_id)
    except FamilyGraphError as e:
        _fail(e)

    console.print(f"[green]Deleted member {member_id}[/green]")


@app.command("delete-tree")
def delete_tree(
    tree_id: str = typer.Argument(..., help="Family tree id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a tree with all its members, relations and events."""
    repository = get_repository(get_config())
    if not yes:
        typer.confirm(f"Delete tree {tree_id} and everything in it?", abort=True)
    try:
        repository.delete_tree(tree_id)
    except FamilyGraphError as e:
        _fail(e)

    console.print(f"[green]Deleted tree {tree_id}[/green]")


# =============================================================================
# Graph queries
# =============================================================================


def _label(member: FamilyMember) -> str:
    dates = ""
    if member.date_of_birth:
        dates = f" (b. {member.date_of_birth.year})"
    return f"[bold]{member.display_name}[/bold]{dates}"


def _render(node: FamilyTreeNode, branch: Tree) -> None:
    for child in node.children:
        label = _label(child.member)
        if child.spouse is not None:
            label += f" + {child.spouse.display_name}"
        _render(child, branch.add(label))


@app.command()
def show(
    tree_id: str = typer.Argument(..., help="Family tree id"),
    mermaid: bool = typer.Option(False, "--mermaid", help="Print a mermaid flowchart"),
    as_json: bool = typer.Option(False, "--json", help="Print the assembled tree as JSON"),
):
    """Show the assembled family tree."""
    engine = FamilyGraphEngine(get_repository(get_config()))
    try:
        node = asyncio.run(engine.build_family_tree(tree_id))
    except FamilyGraphError as e:
        _fail(e)

    if as_json:
        from .export import export_json

        typer.echo(export_json(node))
        return
    if mermaid:
        from .export import export_mermaid

        typer.echo(export_mermaid(node))
        return

    label = _label(node.member)
    if node.spouse is not None:
        label += f" + {node.spouse.display_name}"
    root = Tree(label)
    _render(node, root)
    console.print(root)


@app.command()
def connection(
    tree_id: str = typer.Argument(..., help="Family tree id"),
    member_a: str = typer.Argument(..., help="First member id"),
    member_b: str = typer.Argument(..., help="Second member id"),
):
    """Show the shortest chain of relations between two members."""
    engine = FamilyGraphEngine(get_repository(get_config()))
    try:
        path = asyncio.run(engine.find_connection(tree_id, member_a, member_b))
    except FamilyGraphError as e:
        _fail(e)

    if not path:
        console.print("[yellow]No connection found[/yellow]")
        return

    console.print(" -> ".join(member.display_name for member in path))
    console.print(f"[dim]{len(path) - 1} steps[/dim]")


@app.command()
def stats(
    tree_id: str = typer.Argument(..., help="Family tree id"),
):
    """Show statistics for a family tree."""
    engine = FamilyGraphEngine(get_repository(get_config()))
    try:
        statistics = asyncio.run(engine.get_tree_statistics(tree_id))
    except FamilyGraphError as e:
        _fail(e)

    table = Table(title="Tree Statistics")
    table.add_column("Metric")
    table.add_column("Value")

    table.add_row("Total Members", str(statistics.total_members))
    table.add_row("Living Members", str(statistics.living_members))
    table.add_row("Generations", str(statistics.generations))
    table.add_row("Marriages", str(statistics.marriages))
    table.add_row("Average Age", str(statistics.average_age))

    console.print(table)


if __name__ == "__main__":
    app()
