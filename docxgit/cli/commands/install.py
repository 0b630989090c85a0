"""``docxgit install``: wire the filters and hook into a repository.

Sets ``filter.<name>.clean/smudge/required``, registers the tracked suffixes
in ``.gitattributes``, appends the anchor command to the post-commit hook,
and adds ``refs/docx/*`` fetch/push refspecs for ``origin`` when it exists.
"""

from __future__ import annotations

import stat
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from docxgit.config import settings
from docxgit.cli.commands._store import open_store
from docxgit.core.git_store import GitObjectStore
from docxgit.errors import DocxGitError

console = Console()

_HOOK_SHEBANG = "#!/bin/sh\n"


def _append_missing_lines(path: Path, lines: list[str]) -> list[str]:
    existing = path.read_text(encoding="utf-8").splitlines() if path.exists() else []
    missing = [line for line in lines if line not in existing]
    if missing:
        with path.open("a", encoding="utf-8") as fh:
            if existing and not path.read_text(encoding="utf-8").endswith("\n"):
                fh.write("\n")
            fh.write("\n".join(missing) + "\n")
    return missing


def _install_hook(store: GitObjectStore, command: str) -> Path:
    hook = store.metadata_dir / "hooks" / "post-commit"
    hook.parent.mkdir(parents=True, exist_ok=True)
    if not hook.exists():
        hook.write_text(_HOOK_SHEBANG, encoding="utf-8")
    _append_missing_lines(hook, [f"{command} post-commit"])
    hook.chmod(hook.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return hook


def _add_refspecs(store: GitObjectStore, remote: str) -> list[str]:
    if not store.config_get_all(f"remote.{remote}.url"):
        return []
    namespace = settings.ref_namespace.rstrip("/")
    added = []
    if store.config_add(f"remote.{remote}.fetch", f"+{namespace}/*:{namespace}/*"):
        added.append("fetch")
    for refspec in ("refs/heads/*:refs/heads/*", f"{namespace}/*:{namespace}/*"):
        if store.config_add(f"remote.{remote}.push", refspec):
            added.append(f"push {refspec}")
    return added


def install_cmd(
    ctx: typer.Context,
    command: str = typer.Option(
        "docxgit", "--command", "-c", help="Command git should run for the filters."
    ),
    filter_name: str = typer.Option(
        "docx", "--filter", "-f", help="Name of the git filter driver."
    ),
    remote: str = typer.Option(
        "origin", "--remote", "-r", help="Remote that should carry the anchor refs."
    ),
) -> None:
    """Configure the current repository to use docxgit."""
    try:
        store = open_store(ctx)
        store.config_set(f"filter.{filter_name}.clean", f"{command} clean %f")
        store.config_set(f"filter.{filter_name}.smudge", f"{command} smudge")
        store.config_set(f"filter.{filter_name}.required", "true")
        attributes = store.work_tree / ".gitattributes"
        patterns = [f"*{suffix} filter={filter_name}" for suffix in settings.tracked_suffixes]
        _append_missing_lines(attributes, patterns)
        hook = _install_hook(store, command)
        refspecs = _add_refspecs(store, remote)
    except (DocxGitError, OSError) as exc:
        console.print(f"[red]Install failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(
        Panel(
            "\n".join([
                f"[bold]Filter:[/bold]      {filter_name} ({command} clean %f / {command} smudge)",
                f"[bold]Attributes:[/bold]  {', '.join(patterns)}",
                f"[bold]Hook:[/bold]        {hook}",
                f"[bold]Refspecs:[/bold]    {', '.join(refspecs) if refspecs else 'unchanged'}",
            ]),
            title="[bold]docxgit installed[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
