"""Shared helpers for opening the repository from CLI commands."""

from __future__ import annotations

from pathlib import Path

import typer

from docxgit.config import settings
from docxgit.core.git_store import GitObjectStore


def open_store(ctx: typer.Context) -> GitObjectStore:
    """Open the repository selected by the global ``--repo`` option."""
    repo: Path | None = (ctx.obj or {}).get("repo")
    return GitObjectStore.discover(
        repo,
        git_binary=settings.git_binary,
        author_name=settings.anchor_author_name,
        author_email=settings.anchor_author_email,
    )
