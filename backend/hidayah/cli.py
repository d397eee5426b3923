"""
Command-line interface for the Quran RAG service.

Usage:
    hidayah ask "What does the Quran say about patience?"
    hidayah ask "patience" --stream --top-k 5
    hidayah verse 2 255
    hidayah serve --port 8000
    hidayah health
"""

import asyncio
import sys
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
import typer
from loguru import logger

from .config.settings import settings
from .core.exceptions import HidayahError
from .core.rag_engine import QuranRAGEngine


app = typer.Typer(help="Ask the Quran RAG service from the command line")
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show pipeline logs"),
):
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else settings.log_level)


def _run(coro):
    try:
        return asyncio.run(coro)
    except HidayahError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question to answer"),
    stream: bool = typer.Option(False, "--stream", help="Stream the answer as it is generated"),
    top_k: int = typer.Option(None, "--top-k", help="Number of anchor verses (overrides config)"),
    provider: str = typer.Option(None, help="LLM provider: openai or gemini"),
):
    """Answer a question from the Quran with citations."""

    async def _ask():
        engine = await QuranRAGEngine.from_settings(provider)

        if stream:
            async for event in engine.answer_stream(question, top_k=top_k):
                if event.type == "context":
                    console.print(f"[dim]Retrieved {len(event.data)} verses[/dim]\n")
                elif event.type == "text":
                    console.print(event.data, end="", markup=False)
                elif event.type == "done":
                    console.print()
                    _print_citations(event.data["citations"])
                elif event.type == "error":
                    console.print(f"\n[bold red]Error:[/bold red] {event.data}")
            return

        result = await engine.answer(question, top_k=top_k)
        response = result.response

        if result.retrieval_query != question:
            console.print(f"Searched for: {result.retrieval_query}\n", style="dim", markup=False)

        console.print(Markdown(response.answer_markdown))
        if response.uncertainty:
            console.print(f"\n[yellow]Note:[/yellow] {response.uncertainty}")

        _print_citations([c.to_dict() for c in response.citations])

        if result.context:
            table = Table(title="Retrieved Verses")
            table.add_column("Ref", style="cyan")
            table.add_column("Relevance", style="green")
            table.add_column("English")
            for verse in result.context:
                table.add_row(
                    f"{verse.surah}:{verse.ayah}",
                    f"{verse.similarity * 100:.1f}%",
                    verse.english[:100],
                )
            console.print(table)

    _run(_ask())


def _print_citations(citations: list[dict]):
    if not citations:
        return
    refs = ", ".join(f"{c['surah']}:{c['ayah']}" for c in citations)
    console.print(f"\n[bold]Citations:[/bold] {refs}")


@app.command()
def verse(
    surah: int = typer.Argument(..., min=1, max=114, help="Surah number"),
    ayah: int = typer.Argument(..., min=1, help="Ayah number"),
):
    """Show one verse in Arabic and English."""

    async def _verse():
        from .storage.verse_store import SupabaseVerseStore

        store = await SupabaseVerseStore.connect()
        return await store.fetch_verse(surah, ayah)

    data = _run(_verse())
    if data is None:
        console.print(f"[yellow]Verse {surah}:{ayah} not found.[/yellow]")
        raise typer.Exit(code=1)

    console.print(f"\n[bold cyan]({surah}:{ayah})[/bold cyan]")
    console.print(data["arabic"], justify="right")
    console.print(data["english"])


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the HTTP API."""
    import uvicorn

    console.print(f"[bold blue]Serving Hidayah API on http://{host}:{port}[/bold blue]")
    uvicorn.run(
        "hidayah.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def health(
    provider: str = typer.Option(None, help="LLM provider: openai or gemini"),
):
    """Check provider and verse store availability."""

    async def _health():
        engine = await QuranRAGEngine.from_settings(provider)
        return await engine.health_check()

    status = _run(_health())

    table = Table(title="Health")
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_row(
        f"Provider ({status['provider']['name']}, {status['provider']['model']})",
        _status_label(status["provider"]["healthy"]),
    )
    table.add_row("Verse store", _status_label(status["verse_store"]["healthy"]))
    console.print(table)

    if not status["healthy"]:
        raise typer.Exit(code=1)


def _status_label(ok: bool) -> str:
    return "[green]✓ healthy[/green]" if ok else "[red]✗ unavailable[/red]"


if __name__ == "__main__":
    app()
