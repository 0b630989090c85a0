"""``docxgit smudge``: git smudge filter.

Reads a pointer record from stdin and writes the rebuilt document to stdout.
Input that is not a pointer record is written back unchanged.
"""

from __future__ import annotations

import logging

import typer

from docxgit.config import settings
from docxgit.cli.commands._store import open_store
from docxgit.core.pipeline import recompose
from docxgit.errors import DocxGitError

logger = logging.getLogger(__name__)


def smudge_cmd(ctx: typer.Context) -> None:
    """Rebuild a document from the tree named by its pointer record."""
    logger.info("Running smudge filter")
    pointer = typer.get_binary_stream("stdin").read()
    try:
        store = open_store(ctx)
        document = recompose(pointer, store, config=settings)
    except (DocxGitError, OSError) as exc:
        logger.error("smudge failed: %s", exc)
        raise typer.Exit(code=1) from exc

    stdout = typer.get_binary_stream("stdout")
    stdout.write(document)
    stdout.flush()
