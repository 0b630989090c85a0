"""``docxgit post-commit``: anchor the trees of freshly committed documents.

Runs from the repository's post-commit hook. Results are shown as a Rich
table on stderr.
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.table import Table

from docxgit.config import settings
from docxgit.cli.commands._store import open_store
from docxgit.core.anchor import AnchorRefManager
from docxgit.errors import DocxGitError
from docxgit.models.objects import AnchorState

logger = logging.getLogger(__name__)

console = Console(stderr=True)

_STATE_STYLE = {
    AnchorState.ANCHORED: "[green]anchored[/green]",
    AnchorState.STAGED: "[yellow]staged[/yellow]",
    AnchorState.FAILED: "[red]failed[/red]",
    AnchorState.UNTRACKED: "[dim]untracked[/dim]",
}


def post_commit_cmd(ctx: typer.Context) -> None:
    """Create anchor commits and refs for documents touched by HEAD."""
    logger.info("Running post-commit")
    try:
        manager = AnchorRefManager(open_store(ctx), config=settings)
        results = manager.anchor_head()
    except (DocxGitError, OSError) as exc:
        logger.error("post-commit failed: %s", exc)
        raise typer.Exit(code=1) from exc

    if not results:
        console.print("[dim]No tracked documents added or modified in last commit.[/dim]")
        return

    table = Table(title="Document anchors")
    table.add_column("Document", style="cyan")
    table.add_column("State", justify="center")
    table.add_column("Reference")
    table.add_column("Commit / detail")
    for result in results:
        table.add_row(
            result.path,
            _STATE_STYLE[result.state],
            result.refname or "-",
            result.commit_id or result.detail or "-",
        )
    console.print(table)

    if any(r.state in (AnchorState.FAILED, AnchorState.STAGED) for r in results):
        raise typer.Exit(code=1)
