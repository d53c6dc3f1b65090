import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console()
app = typer.Typer(name="blogmail", help="Blog newsletter dispatcher")


def _setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _open_store():
    from blogmail.config import get_settings
    from blogmail.database import get_engine
    from blogmail.store import Store

    return Store(get_engine(get_settings().database_url))


def _init_store():
    """Open the database and create the tables, exiting on failure."""
    from blogmail.store import StoreError

    store = _open_store()
    try:
        store.create_tables()
    except StoreError as e:
        console.print(f"[red]Cannot initialise database:[/red] {e}")
        raise typer.Exit(code=1)
    return store


@app.command()
def serve(
    host: Optional[str] = typer.Option(None),
    port: Optional[int] = typer.Option(None),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Start the HTTP API server."""
    _setup_logging(verbose)
    import uvicorn
    from blogmail.config import get_settings
    from blogmail.web.app import create_app

    settings = get_settings()
    web_app = create_app(settings, store=_init_store())
    uvicorn.run(
        web_app,
        host=host or settings.web_host,
        port=port or settings.port,
        log_config=None,
    )


@app.command("init-db")
def init_db(verbose: bool = typer.Option(False, "--verbose", "-v")) -> None:
    """Create the database tables if they do not exist."""
    _setup_logging(verbose)
    _init_store()
    console.print("[green]Tables successfully created![/green]")


@app.command("drop-db")
def drop_db(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Drop all tables. Every subscriber, article and sent record is lost."""
    _setup_logging(verbose)
    from blogmail.store import StoreError

    if not yes:
        typer.confirm("Drop all tables?", abort=True)
    try:
        _open_store().drop_tables()
    except StoreError as e:
        console.print(f"[red]Cannot drop tables:[/red] {e}")
        raise typer.Exit(code=1)
    console.print("[yellow]All tables dropped[/yellow]")


@app.command()
def send(
    article_id: int = typer.Argument(..., help="Article to email"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Email an article to every subscriber who has not received it."""
    _setup_logging(verbose)
    from blogmail.delivery.dispatcher import Dispatcher
    from blogmail.delivery.email import Mailer

    report = Dispatcher(_init_store(), Mailer()).dispatch(article_id)
    if not report.found:
        console.print(f"[red]Article #{article_id} could not be loaded[/red]")
        raise typer.Exit(code=1)
    console.print(
        f"[green]Dispatch complete:[/green] {report.sent} sent, "
        f"{report.skipped} skipped, {report.failed} failed"
    )


@app.command()
def stats(verbose: bool = typer.Option(False, "--verbose", "-v")) -> None:
    """Show stored subscribers, articles and sent emails."""
    _setup_logging(verbose)
    data = _init_store().stats()

    subscribers = Table(title=f"Subscribers ({len(data.subscribers)})")
    for column in ("id", "email", "name", "subscribed_at"):
        subscribers.add_column(column)
    for s in data.subscribers:
        subscribers.add_row(str(s.id), s.email, s.name or "", str(s.subscribed_at))

    articles = Table(title=f"Articles ({len(data.articles)})")
    for column in ("id", "title", "published_at"):
        articles.add_column(column)
    for a in data.articles:
        articles.add_row(str(a.id), a.title, str(a.published_at))

    sent = Table(title=f"Sent emails ({len(data.sent_emails)})")
    for column in ("id", "subscriber_id", "article_id", "sent_at"):
        sent.add_column(column)
    for e in data.sent_emails:
        sent.add_row(str(e.id), str(e.subscriber_id), str(e.article_id), str(e.sent_at))

    console.print(subscribers)
    console.print(articles)
    console.print(sent)


if __name__ == "__main__":
    app()
