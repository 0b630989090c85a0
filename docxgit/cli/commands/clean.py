"""``docxgit clean``: git clean filter.

Reads the document from stdin, stores its parts as a tree, and writes the
pointer record to stdout.
"""

from __future__ import annotations

import logging

import typer

from docxgit.config import settings
from docxgit.cli.commands._store import open_store
from docxgit.core.pipeline import decompose
from docxgit.errors import DocxGitError

logger = logging.getLogger(__name__)


def clean_cmd(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Repository path of the document (git's %f)."),
) -> None:
    """Decompose a document into a tree and emit its pointer record."""
    raw = typer.get_binary_stream("stdin").read()
    try:
        store = open_store(ctx)
        pointer = decompose(raw, path, store, config=settings)
    except (DocxGitError, OSError) as exc:
        logger.error("clean failed for %s: %s", path, exc)
        raise typer.Exit(code=1) from exc

    stdout = typer.get_binary_stream("stdout")
    stdout.write(pointer.encode("utf-8"))
    stdout.flush()
