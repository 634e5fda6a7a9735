"""
CLI Main - Typer command-line interface.
========================================

Commands:
- serve: Run the chat API server
- ask: Ask one question and render the streamed answer
- resolve: Show which institutions a message mentions
- compare: Compare stored CDS metrics side by side
- scholarships: List stored scholarships for an institution
- info: Show configuration and data status
"""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from unipreply.shared.logging import get_logger

logger = get_logger(__name__)

app = typer.Typer(
    name="unipreply",
    help="""🎓 UniPreply Advisor - College admissions chat grounded in Common Data Set records

Answers questions about colleges using stored CDS digests and scholarship
records, streamed from Gemini.

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

COMMANDS OVERVIEW:

  serve          Run the HTTP API (POST /api/gemini/chat)
                 --host, --port   Bind address (default from config)

  ask            Ask a question and render the answer
                 -c, --college    Institution page being viewed
                 -u, --url        Send to a running server instead of in-process

  resolve        Show candidate institutions found in a message
  compare        Side-by-side CDS metrics for two or more institutions
  scholarships   Stored scholarships for one institution
                 -t, --student-type   first-year, transfer or both

  info           Show configuration and data file status

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

QUICK START:

  unipreply ask "Compare Yale vs Brown tuition"
  unipreply compare Yale Brown
  unipreply serve
""",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable debug logging.",
    ),
):
    """Configure logging before any command runs."""
    from unipreply.shared.logging import setup_logging, setup_logging_from_settings

    if verbose:
        setup_logging(level="DEBUG", force=True)
    else:
        setup_logging_from_settings()


# ─────────────────────────────────────────────────────────────────────────────
# Rendering
# ─────────────────────────────────────────────────────────────────────────────


def print_blocks(text: str) -> None:
    """Render assistant text as prose, tables and scholarship cards."""
    from unipreply.chat.renderer import render_blocks
    from unipreply.shared.schemas import ProseBlock, TableBlock

    for block in render_blocks(text):
        if isinstance(block, ProseBlock):
            if block.preformatted:
                console.print(Panel(escape(block.text), border_style="dim"))
            else:
                console.print(block.text, markup=False)
        elif isinstance(block, TableBlock):
            table = Table(show_header=True)
            for header in block.headers:
                table.add_column(header)
            for row in block.rows:
                table.add_row(*row)
            console.print(table)
        else:
            body = "\n".join(f"[bold]{label}:[/bold] {escape(value)}" for label, value in block.fields())
            if block.link:
                body += f"\n[link={block.link}]More Info →[/link]"
            console.print(Panel(body, title=f"🎓 {escape(block.name or 'Scholarship')}", border_style="green"))


def _load_service():
    from unipreply.chat.session import ChatService
    from unipreply.store.catalog import load_catalog
    from unipreply.store.documents import get_document_store

    return ChatService(load_catalog(), get_document_store())


# ─────────────────────────────────────────────────────────────────────────────
# Serve Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind host (default from config)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port (default from config)."),
):
    """
    🚀 Run the chat API server.

    Examples:
        unipreply serve
        unipreply serve --host 0.0.0.0 --port 8080
    """
    import uvicorn

    from unipreply.api.server import create_app
    from unipreply.shared.config import get_settings

    settings = get_settings()
    host = host or settings.server.host
    port = port or settings.server.port

    console.print(f"[bold]🚀 Serving UniPreply Advisor on http://{host}:{port}[/bold]")
    uvicorn.run(create_app(), host=host, port=port, log_config=None)


# ─────────────────────────────────────────────────────────────────────────────
# Ask Command
# ─────────────────────────────────────────────────────────────────────────────


async def _ask_local(payload: dict) -> str:
    from unipreply.chat.session import accumulate_stream
    from unipreply.shared.schemas import ChatRequest

    service = _load_service()
    session = await service.open_session(ChatRequest.model_validate(payload))
    lines = [line async for line in session.sse()]
    return accumulate_stream("".join(lines).splitlines())


def _ask_remote(url: str, payload: dict) -> str:
    import httpx

    from unipreply.chat.session import accumulate_stream

    endpoint = url.rstrip("/") + "/api/gemini/chat"
    with httpx.stream("POST", endpoint, json=payload, timeout=120.0) as response:
        if response.status_code != 200:
            response.read()
            try:
                message = response.json().get("error", response.text)
            except ValueError:
                message = response.text
            raise RuntimeError(f"HTTP {response.status_code}: {message}")
        return accumulate_stream(response.iter_lines())


@app.command()
def ask(
    question: str = typer.Argument(
        ...,
        help="Question about one or more colleges (wrap in quotes).",
    ),
    college: Optional[str] = typer.Option(
        None,
        "--college", "-c",
        help="Institution whose page is being viewed.",
    ),
    url: Optional[str] = typer.Option(
        None,
        "--url", "-u",
        help="Base URL of a running server (e.g. http://127.0.0.1:8000).",
    ),
):
    """
    💬 Ask a question and render the streamed answer.

    Examples:
        unipreply ask "Compare Yale vs Brown tuition"
        unipreply ask "What scholarships are there?" -c "Brown University"
        unipreply ask "Is Yale need-blind?" --url http://127.0.0.1:8000
    """
    import httpx

    from unipreply.chat.session import ChatSessionError, StreamError

    payload: dict = {"messages": [{"role": "user", "content": question}]}
    if college:
        payload["context"] = {"collegeName": college, "pageType": "college page"}

    console.print(f"\n[bold]Question:[/bold] {escape(question)}\n")

    try:
        with console.status("Thinking..."):
            if url:
                text = _ask_remote(url, payload)
            else:
                text = asyncio.run(_ask_local(payload))
    except ChatSessionError as e:
        console.print(f"[red]Error ({e.status_code}):[/red] {e.message}")
        raise typer.Exit(1)
    except (StreamError, RuntimeError, httpx.HTTPError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    print_blocks(text)


# ─────────────────────────────────────────────────────────────────────────────
# Resolve Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def resolve(
    message: str = typer.Argument(..., help="Free-text message to scan."),
    college: Optional[str] = typer.Option(
        None,
        "--college", "-c",
        help="Institution whose page is being viewed.",
    ),
):
    """
    🔎 Show candidate institutions in a message and their catalog matches.

    Examples:
        unipreply resolve "Compare Yale vs Brown tuition"
        unipreply resolve "Is it hard to get in?" -c "Duke University"
    """
    from unipreply.chat.resolver import EntityResolver
    from unipreply.store.catalog import load_catalog

    resolver = EntityResolver(load_catalog())
    resolved = resolver.resolve_message(message, page_institution=college)

    if not resolved:
        console.print("[yellow]No institutions mentioned.[/yellow]")
        raise typer.Exit(0)

    table = Table(show_header=True)
    table.add_column("Candidate", style="cyan")
    table.add_column("Key")
    table.add_column("Label")
    for candidate in resolved:
        if candidate.entry:
            table.add_row(candidate.name, candidate.entry.key, candidate.entry.label)
        else:
            table.add_row(candidate.name, "[red]✗[/red]", "[dim]no data[/dim]")
    console.print(table)


# ─────────────────────────────────────────────────────────────────────────────
# Compare Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def compare(
    names: list[str] = typer.Argument(..., help="Two or more institution names."),
):
    """
    📊 Compare stored CDS metrics side by side.

    Examples:
        unipreply compare Yale Brown
        unipreply compare "University of Pennsylvania" Harvard Princeton
    """
    from unipreply.chat.fetcher import RecordFetcher
    from unipreply.chat.prompts import comparison_rows
    from unipreply.chat.resolver import ResolvedCandidate
    from unipreply.store.catalog import load_catalog
    from unipreply.store.documents import get_document_store

    catalog = load_catalog()
    resolved = [ResolvedCandidate(name=n, entry=catalog.resolve(n)) for n in names]
    result = asyncio.run(RecordFetcher(get_document_store(), catalog).fetch(resolved))

    if result.missing:
        console.print(f"[yellow]No CDS data for: {', '.join(result.missing)}[/yellow]")
    records = result.records
    if not records:
        raise typer.Exit(1)

    table = Table(show_header=True, title="📊 CDS Comparison")
    table.add_column("Metric", style="cyan")
    for name in records:
        table.add_column(name)
    for label, values in comparison_rows(records):
        table.add_row(label, *values)
    console.print(table)


# ─────────────────────────────────────────────────────────────────────────────
# Scholarships Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def scholarships(
    name: str = typer.Argument(..., help="Institution name."),
    student_type: Optional[str] = typer.Option(
        None,
        "--student-type", "-t",
        help="Audience filter: first-year, transfer or both.",
    ),
):
    """
    🎓 List stored scholarships for an institution.

    Examples:
        unipreply scholarships Brown
        unipreply scholarships "Yale University" -t transfer
    """
    from unipreply.chat.fetcher import RecordFetcher
    from unipreply.shared.schemas import StudentType
    from unipreply.store.catalog import load_catalog
    from unipreply.store.documents import get_document_store

    audience = None
    if student_type:
        try:
            audience = StudentType(student_type.lower())
        except ValueError:
            console.print(f"[red]Unknown student type: {student_type}[/red]")
            raise typer.Exit(2)

    catalog = load_catalog()
    entry = catalog.resolve(name)
    if entry is None:
        console.print(f"[yellow]'{name}' is not in the catalog.[/yellow]")
        raise typer.Exit(1)

    fetcher = RecordFetcher(get_document_store(), catalog)
    found = asyncio.run(fetcher.fetch_scholarships(entry, student_type=audience))
    if not found:
        console.print(f"No scholarships found in our database for {entry.label}.")
        raise typer.Exit(0)

    table = Table(show_header=True, title=f"🎓 Scholarships at {entry.label}")
    table.add_column("Name", style="cyan")
    table.add_column("Amount")
    table.add_column("Deadline")
    table.add_column("For")
    table.add_column("Type")
    for s in found:
        table.add_row(
            s.name,
            s.amount or "-",
            s.deadline or "-",
            s.student_type.value,
            s.category or "-",
        )
    console.print(table)


# ─────────────────────────────────────────────────────────────────────────────
# Info Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def info():
    """
    ℹ️ Show system information and configuration.

    Displays:
      • Version and model configuration
      • Whether the Gemini API key is set
      • Data paths and their existence status
    """
    from unipreply import __version__
    from unipreply.shared.config import config_file, get_settings
    from unipreply.store.catalog import load_catalog

    settings = get_settings()

    console.print(Panel(
        f"[bold]UniPreply Advisor[/bold]\n"
        f"Version: {__version__}\n"
        f"Config: {config_file()}",
        title="ℹ️ Info",
    ))

    table = Table()
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("Model", settings.get_effective_model())
    table.add_row("API key", "✓ set" if settings.gemini_api_key else "✗ missing")
    table.add_row("Persona", settings.persona.assistant_name)
    table.add_row("Max candidates", str(settings.resolver.max_candidates))
    table.add_row("Catalog entries", str(len(load_catalog())))
    console.print(table)

    console.print("\n[bold]Data Paths:[/bold]")
    resolved_paths = settings.resolved_paths
    path_dict = {
        "data_dir": resolved_paths.data_dir,
        "catalog_file": resolved_paths.catalog_file,
        "institutions_file": resolved_paths.institutions_file,
        "scholarships_file": resolved_paths.scholarships_file,
    }
    for name, path in path_dict.items():
        exists = "✓" if path.exists() else "✗"
        console.print(f"  {name}: {path} [{exists}]")


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def cli():
    """CLI entry point."""
    app()


if __name__ == "__main__":
    cli()
