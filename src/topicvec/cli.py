"""CLI entry point for topicvec."""

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress
from rich.table import Table

from .config import DEFAULT_CONFIG, load_config
from .errors import EmbeddingError
from .models import BatchEmbedResult

console = Console()


@click.group()
@click.option("--config", "-c", "config_path", default=None, help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, config_path, verbose):
    """topicvec - Keep topic trees embedded and searchable."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _get_config(ctx) -> dict:
    try:
        return load_config(ctx.obj.get("config_path"))
    except EmbeddingError as e:
        console.print(f"[red]{e}[/]")
        ctx.exit(1)


def _get_engine(ctx, load_model: bool = True, **scheduler_kwargs):
    from .engine import build_engine

    config = _get_config(ctx)
    try:
        engine = build_engine(config, **scheduler_kwargs)
        if load_model:
            with console.status(f"Loading model {config.get('model_path') or config['model_identifier']}..."):
                engine.generator.initialize()
    except EmbeddingError as e:
        console.print(f"[red]{e}[/]")
        ctx.exit(1)
    return engine


@cli.command()
@click.option("--path", default=None, help="Custom topicvec home")
@click.pass_context
def init(ctx, path):
    """Initialize a topicvec home directory and configuration."""
    import yaml

    if path:
        home = Path(path).expanduser().resolve()
    else:
        home = Path("~/.topicvec").expanduser()

    console.print(f"[bold green]Initializing topicvec at {home}[/]")

    for d in ["topics", "chroma"]:
        (home / d).mkdir(parents=True, exist_ok=True)

    config_file = home / "config.yaml"
    if not config_file.exists():
        cfg = dict(DEFAULT_CONFIG)
        cfg["topics_path"] = str(home / "topics")
        cfg["chroma_path"] = str(home / "chroma")
        cfg["failures_path"] = str(home / "failures.yaml")
        config_text = yaml.dump(cfg, default_flow_style=False, sort_keys=False)
        header = (
            "# Local model directory (or set TOPICVEC_MODEL_PATH env var)\n"
            "# model_path: /models/bge-small-en-v1.5\n\n"
            "# Storage backend: chromadb (persistent) or memory (in-process)\n\n"
        )
        config_file.write_text(header + config_text)
        console.print(f"  Created config: {config_file}")

    console.print("[bold green]✓ topicvec initialized![/]")
    console.print(f"  Put topic files in: {home / 'topics'}")
    console.print("  Run: topicvec embed --all")


@cli.command()
@click.argument("topic_ids", nargs=-1)
@click.option("--all", "embed_all", is_flag=True, help="Embed every topic in the topics directory")
@click.pass_context
def embed(ctx, topic_ids, embed_all):
    """Embed the given topics (or all of them)."""
    if not topic_ids and not embed_all:
        console.print("[yellow]Pass one or more topic ids, or --all.[/]")
        return

    engine = _get_engine(ctx)
    ids = list(topic_ids) or engine.source.list_topic_ids()
    if not ids:
        console.print("[yellow]No topics found. Add files to the topics directory.[/]")
        return

    console.print(f"[blue]Embedding {len(ids)} topic(s)...[/]")
    batch = BatchEmbedResult()
    with Progress(console=console) as progress:
        task = progress.add_task("Embedding...", total=len(ids))
        for topic_id in ids:
            try:
                batch.results.append(engine.orchestrator.embed_topic(topic_id))
                batch.success_count += 1
            except Exception as e:
                batch.failed.append((topic_id, str(e)))
            progress.advance(task)

    for r in batch.results:
        console.print(
            f"  [green]✓ {r.topic_id}[/] [dim]{r.strategy.value}, {r.total_tokens} tokens, "
            f"{r.units_written} unit(s), {r.orphans_removed} orphan(s) removed[/]"
        )
    for topic_id, message in batch.failed:
        failure = engine.orchestrator.failure(topic_id)
        attempts = f" [dim](failed {failure.error_count} time(s))[/]" if failure else ""
        console.print(f"  [red]✗ {topic_id}: {message}[/]{attempts}")
    console.print(f"[green]✓ Embedded {batch.success_count}/{len(ids)} topic(s)[/]")


def _hits_table(title: str, hits) -> Table:
    table = Table(title=title)
    table.add_column("#", style="dim", width=3)
    table.add_column("Topic", style="cyan")
    table.add_column("Node")
    table.add_column("Role", style="magenta")
    table.add_column("Score", justify="right", style="green")
    for i, hit in enumerate(hits, 1):
        table.add_row(str(i), hit.metadata.topic_id, hit.node_id, hit.role, f"{hit.similarity:.3f}")
    return table


@cli.command()
@click.argument("query")
@click.option("--threshold", "-t", type=float, default=None, help="Maximum cosine distance")
@click.option("--limit", "-n", type=int, default=None, help="Number of results")
@click.option("--exact", is_flag=True, help="Scan every vector instead of using the ANN index")
@click.option("--type", "node_type", default=None, help="Only match units from nodes of this type")
@click.pass_context
def search(ctx, query, threshold, limit, exact, node_type):
    """Similarity search over embedded topic units."""
    engine = _get_engine(ctx)
    cfg = engine.config["search"]
    console.print(f"[blue]Searching for: '{query}'[/]\n")

    try:
        hits = engine.search.search_text(
            query,
            threshold=cfg["threshold"] if threshold is None else threshold,
            limit=limit or cfg["limit"],
            exact=exact,
            node_type=node_type,
        )
    except EmbeddingError as e:
        console.print(f"[red]{e}[/]")
        ctx.exit(1)

    if not hits:
        console.print("[yellow]No results found. Have you run 'topicvec embed'?[/]")
        return
    console.print(_hits_table("Search Results", hits))


@cli.command()
@click.argument("query")
@click.option("--threshold", "-t", type=float, default=None, help="Maximum cosine distance")
@click.option("--limit", "-n", type=int, default=None, help="Number of topics")
@click.option("--exact", is_flag=True, help="Scan every vector instead of using the ANN index")
@click.option("--type", "node_type", default=None, help="Only match units from nodes of this type")
@click.pass_context
def topics(ctx, query, threshold, limit, exact, node_type):
    """Find the topics that best match a query."""
    engine = _get_engine(ctx)
    cfg = engine.config["search"]

    try:
        matches = engine.search.search_topics(
            query,
            threshold=cfg["threshold"] if threshold is None else threshold,
            limit=limit or cfg["limit"],
            exact=exact,
            node_type=node_type,
        )
    except EmbeddingError as e:
        console.print(f"[red]{e}[/]")
        ctx.exit(1)

    if not matches:
        console.print("[yellow]No matching topics.[/]")
        return

    table = Table(title="Matching Topics")
    table.add_column("#", style="dim", width=3)
    table.add_column("Topic", style="cyan")
    table.add_column("Best unit")
    table.add_column("Score", justify="right", style="green")
    for i, m in enumerate(matches, 1):
        table.add_row(str(i), m.topic_id, f"{m.node_id} ({m.role})", f"{1 - m.distance:.3f}")
    console.print(table)


@cli.command()
@click.pass_context
def stale(ctx):
    """List topics whose embeddings are missing or out of date."""
    engine = _get_engine(ctx, load_model=False)
    ids = engine.orchestrator.stale_topics()
    if not ids:
        console.print("[green]✓ All topics are up to date.[/]")
        return
    console.print(f"[yellow]{len(ids)} stale topic(s):[/]")
    for topic_id in ids:
        failure = engine.orchestrator.failure(topic_id)
        if failure:
            console.print(f"  • {topic_id} [red](failed {failure.error_count} time(s): {escape(failure.last_error)})[/]")
        else:
            console.print(f"  • {topic_id}")


@cli.command()
@click.pass_context
def sync(ctx):
    """Re-embed every stale topic."""
    engine = _get_engine(ctx)
    result = engine.orchestrator.sync_stale()
    if not result.results and not result.failed:
        console.print("[green]✓ Nothing to do, all topics are up to date.[/]")
        return
    console.print(f"[green]✓ Re-embedded {result.success_count} topic(s)[/]")
    for topic_id, message in result.failed:
        console.print(f"  [red]✗ {topic_id}: {message}[/]")


@cli.command()
@click.pass_context
def stats(ctx):
    """Show index statistics."""
    from .maintenance.heartbeat import index_stats

    engine = _get_engine(ctx, load_model=False)
    s = index_stats(engine)

    console.print("\n[bold]📊 Index Statistics[/]")
    console.print(f"  Storage backend: {s['storage_backend']}")
    console.print(f"  Stored embeddings: {s['stored_embeddings']}")
    console.print(f"  Embedded topics: {s['embedded_topics']}/{s.get('source_topics', 0)}")
    console.print(f"  Stale topics: {s.get('stale_topics', 0)}")
    console.print(f"  Model: {s['model']} [dim]({s['device']})[/]")
    if s.get("roles"):
        console.print("\n  [bold]Units by role:[/]")
        for role, count in sorted(s["roles"].items()):
            console.print(f"    {role}: {count}")
    if s.get("failed_topics"):
        console.print("\n  [bold red]Failed topics:[/]")
        for f in s["failed_topics"]:
            console.print(f"    {f['topic_id']}: {f['error_count']} failure(s), last: {escape(f['last_error'])}")


@cli.command()
@click.option("--debounce", default=None, type=float, help="Seconds to wait after last change before re-embedding")
@click.pass_context
def watch(ctx, debounce):
    """Watch the topics directory and re-embed topics as they change."""
    from .watcher import TopicWatcher

    def report(topic_id, exc):
        console.print(f"  [red]✗ Re-embed of {topic_id} failed: {exc}[/]")

    engine = _get_engine(ctx, on_error=report)
    if debounce is not None:
        engine.scheduler.quiet_period = debounce
    watcher = TopicWatcher(engine)
    watcher.run()


if __name__ == "__main__":
    cli()
