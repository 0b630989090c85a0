"""Main Typer application; registers all CLI commands.

Entry point: ``docxgit`` (configured via pyproject.toml console_scripts).

Commands: clean, smudge, post-commit, install.
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from docxgit.config import settings
from docxgit.cli.commands.clean import clean_cmd
from docxgit.cli.commands.install import install_cmd
from docxgit.cli.commands.post_commit import post_commit_cmd
from docxgit.cli.commands.smudge import smudge_cmd

app = typer.Typer(
    name="docxgit",
    help="Track office documents in git as diffable, content-addressed trees.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="clean", help="Git clean filter: document on stdin, pointer on stdout.")(clean_cmd)
app.command(name="smudge", help="Git smudge filter: pointer on stdin, document on stdout.")(smudge_cmd)
app.command(name="post-commit", help="Anchor trees of documents in the last commit.")(post_commit_cmd)
app.command(name="install", help="Configure filters, attributes, and hooks.")(install_cmd)


def configure_logging(level: str, log_file: Path | None = None) -> None:
    """Send log records to *log_file*, or to stderr through Rich.

    Never stdout: the filters' stdout carries document bytes.
    """
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    else:
        handler = RichHandler(console=Console(stderr=True), show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    repo: Path = typer.Option(
        None, "--repo", "-C", help="Run as if started in this directory."
    ),
    log_level: str = typer.Option(
        None, "--log-level", help="Log level (default: DOCXGIT_LOG_LEVEL or INFO)."
    ),
    log_file: Path = typer.Option(
        None, "--log-file", help="Write logs to this file instead of stderr."
    ),
) -> None:
    """Global options shared by every command."""
    configure_logging(log_level or settings.log_level, log_file or settings.log_file)
    ctx.obj = {"repo": repo}


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
