import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.traceback import install

from .config import get_config_path, load_config, save_config, update_config
from .decorators import handle_cli_errors
from .facets import FACETS, JOIN_AND, JOIN_OR, SORT_MODES, derive_facets
from .models import MagicShelf, ReadStatus
from .pipeline import BrowserSession, QueryState, parse_filter_param
from .repository import BookRepository
from .rules.fields import FIELD_SPECS, OPERATOR_LABELS, resolve_field
from .rules.tree import find_issues, from_yaml, loads, to_yaml
from .scope import Scope, ScopeKind, ScopeSelector
from .sorting import SORT_OPTIONS, SortDirection, SortPreference, find_option, resolve_sort

# Initialize Rich Traceback for better error messages
install(show_locals=False)

console = Console()

logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True)]
)
logger = logging.getLogger(__name__)

app = typer.Typer()

shelf_app = typer.Typer(help="Manage magic shelves (saved rule trees)")
config_app = typer.Typer(help="View or edit bookview configuration")

app.add_typer(shelf_app, name="shelf")
app.add_typer(config_app, name="config")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose mode"),
):
    """
    bookview - browse a book collection through scopes, facets and magic shelves.
    """
    if verbose or load_config().cli.verbose:
        logging.getLogger("bookview").setLevel(logging.DEBUG)


def _library_path(library_path: Optional[Path]) -> Path:
    if library_path is not None:
        return library_path
    default = load_config().library.default_path
    if not default:
        raise ValueError("No library file given and no default set (bookview config set --library-path)")
    return Path(default).expanduser()


def _open(library_path: Optional[Path]) -> BookRepository:
    return BookRepository.open(_library_path(library_path))


def _magic_shelf(repo: BookRepository, ref: str) -> MagicShelf:
    """Find a magic shelf by id or by name."""
    shelf = repo.get_magic_shelf(int(ref)) if ref.isdigit() else repo.find_magic_shelf(ref)
    if shelf is None:
        raise ValueError(f"Magic shelf '{ref}' not found")
    return shelf


# ============================================================================
# Browsing
# ============================================================================

@app.command()
@handle_cli_errors
def browse(
    library_path: Optional[Path] = typer.Argument(None, help="Library file (JSON or YAML)"),
    scope: str = typer.Option("all", "--scope", "-s", help="all, unshelved, library:ID, shelf:ID or magic:ID"),
    search: str = typer.Option("", "--search", "-q", help="Free-text search term"),
    filters: str = typer.Option("", "--filter", "-f", help="Facet filter, e.g. 'author:A|B,series:X'"),
    join: Optional[str] = typer.Option(None, "--join", help="Combine facets with 'and' or 'or'"),
    sort: Optional[str] = typer.Option(None, "--sort", help="Sort field (see 'bookview fields --sorts')"),
    direction: Optional[str] = typer.Option(None, "--dir", help="asc or desc"),
    collapse: Optional[bool] = typer.Option(None, "--collapse-series/--expand-series", help="Show one book per series"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum number of books to show"),
    output_json: bool = typer.Option(False, "--json", help="Print books as JSON"),
):
    """
    List the books a view shows.

    Examples:
        bookview browse library.json --scope magic:1
        bookview browse library.json --search dune --sort title --dir asc
        bookview browse library.json --filter "author:Frank Herbert,readStatus:READ"
    """
    config = load_config()
    repo = _open(library_path)
    target = Scope.parse(scope)

    if sort is not None:
        option = find_option(sort)
        if option is None:
            raise ValueError(f"Unknown sort field '{sort}'")
        option = option.with_direction(SortDirection.parse(direction, SortDirection.ASCENDING))
    else:
        option = resolve_sort(config.sort.view_preferences, target.kind.value, target.entity_id)

    state = QueryState(
        scope=target,
        sort=option,
        search_term=search,
        selections=parse_filter_param(filters),
        join_mode=join or config.browser.join_mode,
        series_collapsed=config.browser.series_collapsed if collapse is None else collapse,
        facet_sort_mode=config.browser.facet_sort_mode,
        search_fields=tuple(config.browser.search_fields),
    )
    if state.join_mode not in (JOIN_AND, JOIN_OR):
        raise ValueError("--join must be 'and' or 'or'")

    result = BrowserSession(repo, state=state).result

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    page_size = limit if limit is not None else config.cli.page_size
    books = result.books[:page_size]

    if output_json:
        typer.echo(json.dumps([book.to_dict() for book in books], indent=2))
        return

    if not books:
        console.print("[yellow]No books found[/yellow]")
        return

    table = Table(title=f"{result.scope_label} (sorted by {result.sort.label}, {result.sort.direction.value})")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("Authors", style="blue")
    table.add_column("Series", style="magenta")
    table.add_column("Status", style="yellow")

    for book in books:
        authors = ", ".join(book.authors[:2])
        if len(book.authors) > 2:
            authors += f" +{len(book.authors) - 2}"
        series = book.series_name or ""
        if series and book.series_number is not None:
            series += f" #{book.series_number:g}"
        table.add_row(str(book.id), book.title[:50], authors[:30], series, ReadStatus.coerce(book.read_status).label)

    console.print(table)
    console.print(
        f"\n[dim]Showing {len(books)} of {len(result.books)} books "
        f"({result.total_in_scope} in scope)[/dim]"
    )


@app.command()
@handle_cli_errors
def facets(
    library_path: Optional[Path] = typer.Argument(None, help="Library file (JSON or YAML)"),
    scope: str = typer.Option("all", "--scope", "-s", help="all, unshelved, library:ID, shelf:ID or magic:ID"),
    names: Optional[List[str]] = typer.Option(None, "--facet", help="Facet to show (repeatable)"),
    sort_mode: Optional[str] = typer.Option(None, "--sort-mode", help="count, alphabetical or sort_index"),
):
    """
    Show facet values and book counts for a scope.

    Example:
        bookview facets library.json --facet author --facet readStatus
    """
    config = load_config()
    mode = sort_mode or config.browser.facet_sort_mode
    if mode not in SORT_MODES:
        raise ValueError(f"--sort-mode must be one of: {', '.join(SORT_MODES)}")

    unknown = [name for name in names or [] if name not in FACETS]
    if unknown:
        raise ValueError(f"Unknown facet(s): {', '.join(unknown)}")

    repo = _open(library_path)
    selector = ScopeSelector(repo)
    scoped = selector.select(repo.books, Scope.parse(scope))
    for warning in scoped.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    for name, counts in derive_facets(scoped.books, mode, names or None).items():
        if not counts:
            continue
        table = Table(title=FACETS[name].label)
        table.add_column("Value", style="green")
        table.add_column("Key", style="dim")
        table.add_column("Books", style="cyan", justify="right")
        for count in counts:
            table.add_row(count.label, count.key, str(count.book_count))
        console.print(table)


@app.command()
def fields(
    field_name: Optional[str] = typer.Argument(None, help="Show operators for one field"),
    sorts: bool = typer.Option(False, "--sorts", help="List sort options instead"),
):
    """List rule fields with their legal operators, or the sort options."""
    if sorts:
        table = Table(title="Sort Options")
        table.add_column("Field", style="cyan")
        table.add_column("Label", style="green")
        for option in SORT_OPTIONS:
            table.add_row(option.field, option.label)
        console.print(table)
        return

    specs = list(FIELD_SPECS.values())
    if field_name is not None:
        spec = resolve_field(field_name)
        if spec is None:
            console.print(f"[bold red]Error:[/bold red] Unknown field '{field_name}'")
            raise typer.Exit(code=1)
        specs = [spec]

    table = Table(title="Rule Fields")
    table.add_column("Field", style="cyan")
    table.add_column("Label", style="green")
    table.add_column("Kind", style="magenta")
    table.add_column("Operators", style="blue")
    for spec in specs:
        table.add_row(
            spec.field.value,
            spec.label,
            spec.kind.value if spec.kind else "value",
            ", ".join(op.value for op in spec.operators),
        )
    console.print(table)

    if field_name is not None:
        for op in specs[0].operators:
            console.print(f"  {op.value}: {OPERATOR_LABELS[op]}")


# ============================================================================
# Magic shelves
# ============================================================================

@shelf_app.command(name="list")
@handle_cli_errors
def shelf_list(
    library_path: Optional[Path] = typer.Argument(None, help="Library file (JSON or YAML)"),
):
    """List magic shelves and how many books each matches."""
    repo = _open(library_path)
    selector = ScopeSelector(repo)

    if not repo.magic_shelves:
        console.print("[yellow]No magic shelves[/yellow]")
        return

    table = Table(title="Magic Shelves")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Books", style="blue", justify="right")
    table.add_column("State", style="magenta")
    for shelf in repo.magic_shelves:
        scoped = selector.select(repo.books, Scope(ScopeKind.MAGIC_SHELF, shelf.id))
        state = "broken" if scoped.broken else ("warnings" if scoped.warnings else "ok")
        table.add_row(str(shelf.id), shelf.name, str(len(scoped.books)), state)
    console.print(table)


@shelf_app.command(name="check")
@handle_cli_errors
def shelf_check(
    shelf: str = typer.Argument(..., help="Magic shelf id or name"),
    library_path: Optional[Path] = typer.Option(None, "--library", "-l", help="Library file (JSON or YAML)"),
):
    """
    Report configuration problems in a magic shelf's rule tree.

    Exits with code 1 when problems are found.
    """
    repo = _open(library_path)
    magic = _magic_shelf(repo, shelf)
    issues = find_issues(loads(magic.filter_json))

    if not issues:
        console.print(f"[green]✓ Magic shelf '{magic.name}' has no problems[/green]")
        return

    console.print(f"[yellow]Magic shelf '{magic.name}' has {len(issues)} problem(s):[/yellow]")
    for issue in issues:
        console.print(f"  • {issue}")
    raise typer.Exit(code=1)


@shelf_app.command(name="export")
@handle_cli_errors
def shelf_export(
    shelf: str = typer.Argument(..., help="Magic shelf id or name"),
    library_path: Optional[Path] = typer.Option(None, "--library", "-l", help="Library file (JSON or YAML)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write YAML to this file"),
):
    """Export a magic shelf's rule tree as YAML."""
    repo = _open(library_path)
    magic = _magic_shelf(repo, shelf)
    content = to_yaml(loads(magic.filter_json))

    if output is None:
        typer.echo(content, nl=False)
        return

    output.write_text(content)
    console.print(f"[green]✓ Exported '{magic.name}' to {output}[/green]")


@shelf_app.command(name="import")
@handle_cli_errors
def shelf_import(
    rules_file: Path = typer.Argument(..., help="YAML or JSON rule tree"),
    name: str = typer.Option(..., "--name", help="Magic shelf name"),
    library_path: Optional[Path] = typer.Option(None, "--library", "-l", help="Library file (JSON or YAML)"),
    icon: Optional[str] = typer.Option(None, "--icon", help="Icon name"),
    replace_id: Optional[int] = typer.Option(None, "--replace", help="Update this magic shelf id instead of creating"),
):
    """
    Save a rule tree as a magic shelf.

    YAML is a superset of JSON, so both formats are accepted.
    """
    repo = _open(library_path)
    group = from_yaml(rules_file.read_text())

    for issue in find_issues(group):
        console.print(f"[yellow]Warning:[/yellow] {issue}")

    magic = repo.save_magic_shelf(name, group, icon=icon, shelf_id=replace_id)
    repo.save()
    console.print(f"[green]✓ Saved magic shelf '{magic.name}' (id {magic.id})[/green]")


@shelf_app.command(name="delete")
@handle_cli_errors
def shelf_delete(
    shelf: str = typer.Argument(..., help="Magic shelf id or name"),
    library_path: Optional[Path] = typer.Option(None, "--library", "-l", help="Library file (JSON or YAML)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a magic shelf."""
    repo = _open(library_path)
    magic = _magic_shelf(repo, shelf)

    if not yes and not typer.confirm(f"Delete magic shelf '{magic.name}'?"):
        console.print("[red]Operation cancelled[/red]")
        raise typer.Exit(code=0)

    repo.delete_magic_shelf(magic.id)
    repo.save()
    console.print(f"[green]✓ Deleted magic shelf '{magic.name}'[/green]")


# ============================================================================
# Configuration
# ============================================================================

@config_app.command(name="show")
def config_show():
    """Show the current configuration."""
    config = load_config()
    config_path = get_config_path()

    console.print("\n[bold]bookview Configuration[/bold]")
    console.print(f"[dim]Location: {config_path}[/dim]\n")

    console.print("[bold cyan]Library Settings:[/bold cyan]")
    console.print(f"  Default Path:     {config.library.default_path or '[dim]not set[/dim]'}")

    console.print("\n[bold cyan]Browser Settings:[/bold cyan]")
    console.print(f"  Series Collapsed: {config.browser.series_collapsed}")
    console.print(f"  Facet Sort Mode:  {config.browser.facet_sort_mode}")
    console.print(f"  Join Mode:        {config.browser.join_mode}")
    console.print(f"  Search Fields:    {', '.join(config.browser.search_fields)}")

    preferences = config.sort.view_preferences
    console.print("\n[bold cyan]Sort Preferences:[/bold cyan]")
    if preferences.global_preference:
        pref = preferences.global_preference
        console.print(f"  Global:           {pref.sort_key} {pref.sort_dir.value}")
    else:
        console.print("  Global:           [dim]not set[/dim]")
    for (entity_type, entity_id), pref in preferences.overrides.items():
        console.print(f"  {entity_type}:{entity_id}: {pref.sort_key} {pref.sort_dir.value}")

    console.print("\n[bold cyan]CLI Settings:[/bold cyan]")
    console.print(f"  Verbose:          {config.cli.verbose}")
    console.print(f"  Color:            {config.cli.color}")
    console.print(f"  Page Size:        {config.cli.page_size}")


@config_app.command(name="set")
@handle_cli_errors
def config_set(
    library_path: Optional[str] = typer.Option(None, "--library-path", help="Set default library file"),
    series_collapsed: Optional[bool] = typer.Option(None, "--series-collapsed/--series-expanded", help="Collapse series by default"),
    facet_sort_mode: Optional[str] = typer.Option(None, "--facet-sort", help="count, alphabetical or sort_index"),
    join_mode: Optional[str] = typer.Option(None, "--join", help="Default facet join: and / or"),
    search_fields: Optional[str] = typer.Option(None, "--search-fields", help="Comma-separated search fields"),
    sort: Optional[str] = typer.Option(None, "--sort", help="Stored sort field"),
    direction: str = typer.Option("asc", "--dir", help="Stored sort direction"),
    scope: Optional[str] = typer.Option(None, "--scope", help="Store the sort for this scope instead of globally"),
    page_size: Optional[int] = typer.Option(None, "--page-size", help="Books shown by browse"),
    verbose: Optional[bool] = typer.Option(None, "--cli-verbose/--no-cli-verbose", help="Enable verbose output by default"),
):
    """
    Change configuration values.

    Examples:
        bookview config set --library-path ~/books/library.json
        bookview config set --sort title --dir asc --scope magic:1
        bookview config set --join or --facet-sort alphabetical
    """
    config = update_config(
        series_collapsed=series_collapsed,
        facet_sort_mode=facet_sort_mode,
        join_mode=join_mode,
        search_fields=[f.strip() for f in search_fields.split(",") if f.strip()] if search_fields else None,
        cli_verbose=verbose,
        cli_page_size=page_size,
        library_default_path=library_path,
    )

    if sort is not None:
        if find_option(sort) is None:
            raise ValueError(f"Unknown sort field '{sort}'")
        preference = SortPreference(sort, SortDirection.parse(direction, SortDirection.ASCENDING))
        preferences = config.sort.view_preferences
        if scope:
            target = Scope.parse(scope)
            preferences.set_override(target.kind.value, target.entity_id, preference)
        else:
            preferences.global_preference = preference
        config.sort.view_preferences = preferences
        save_config(config)

    console.print(f"[green]✓ Configuration saved to {get_config_path()}[/green]")


if __name__ == "__main__":
    app()
