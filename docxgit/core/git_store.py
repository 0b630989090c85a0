"""Git-backed object store driving the git plumbing commands.

Every operation shells out to ``git`` in the repository directory. Object
writes go through ``hash-object -w`` and ``mktree``, which are content
addressed and safe to run from several filter processes at once.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Iterable
from pathlib import Path

from docxgit.core.object_store import validate_refname
from docxgit.errors import ObjectNotFoundError, ObjectStoreError
from docxgit.models.objects import ChangedPath, ChangeStatus, ObjectKind, TreeEntry

logger = logging.getLogger(__name__)

_STATUS_CODES = {
    "A": ChangeStatus.ADDED,
    "M": ChangeStatus.MODIFIED,
    "D": ChangeStatus.DELETED,
}


class GitObjectStore:
    """``ObjectStore`` implementation for a git repository.

    Parameters
    ----------
    repo_path:
        Any directory inside the repository (or the git dir of a bare one).
    git_binary:
        Name or path of the git executable.
    author_name, author_email:
        Identity for commits created by ``create_commit``. When empty, git's
        own configuration applies.
    """

    def __init__(
        self,
        repo_path: Path | None = None,
        *,
        git_binary: str = "git",
        author_name: str = "",
        author_email: str = "",
    ) -> None:
        self._cwd = Path(repo_path) if repo_path is not None else Path.cwd()
        self._git = git_binary
        self._env = dict(os.environ)
        if author_name:
            self._env["GIT_AUTHOR_NAME"] = author_name
            self._env["GIT_COMMITTER_NAME"] = author_name
        if author_email:
            self._env["GIT_AUTHOR_EMAIL"] = author_email
            self._env["GIT_COMMITTER_EMAIL"] = author_email
        self._git_dir: Path | None = None

    @classmethod
    def discover(cls, path: Path | None = None, **kwargs) -> GitObjectStore:
        """Open the repository containing *path*, failing if there is none."""
        store = cls(path, **kwargs)
        # Raises ObjectStoreError outside a repository
        _ = store.metadata_dir
        return store

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _run(self, *args: str, input: bytes | None = None) -> bytes:
        proc = self._run_unchecked(*args, input=input)
        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", errors="replace").strip()
            raise ObjectStoreError(f"git {args[0]} failed ({proc.returncode}): {stderr}")
        return proc.stdout

    def _run_unchecked(self, *args: str, input: bytes | None = None) -> subprocess.CompletedProcess[bytes]:
        logger.debug("git %s", " ".join(args))
        try:
            return subprocess.run(
                [self._git, *args],
                cwd=self._cwd,
                input=input,
                capture_output=True,
                env=self._env,
            )
        except OSError as exc:
            raise ObjectStoreError(f"Cannot run {self._git}: {exc}") from exc

    def _run_text(self, *args: str) -> str:
        return self._run(*args).decode("utf-8").strip()

    @property
    def metadata_dir(self) -> Path:
        if self._git_dir is None:
            self._git_dir = Path(self._run_text("rev-parse", "--absolute-git-dir"))
        return self._git_dir

    @property
    def work_tree(self) -> Path:
        return Path(self._run_text("rev-parse", "--show-toplevel"))

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def write_blob(self, data: bytes) -> str:
        return self._run("hash-object", "-w", "--stdin", input=data).decode().strip()

    def write_tree(self, entries: Iterable[TreeEntry]) -> str:
        listing = b"".join(
            f"{e.mode} {e.kind.value} {e.oid}\t{e.name}".encode("utf-8") + b"\0"
            for e in sorted(entries, key=lambda e: e.name)
        )
        return self._run("mktree", "-z", input=listing).decode().strip()

    def read_blob(self, oid: str) -> bytes:
        return self._run("cat-file", "blob", oid)

    def read_tree(self, oid: str) -> list[TreeEntry]:
        entries: list[TreeEntry] = []
        for record in self._run("ls-tree", "-z", oid).split(b"\0"):
            if not record:
                continue
            meta, _, name = record.decode("utf-8").partition("\t")
            mode, kind, entry_oid = meta.split(" ")
            entries.append(
                TreeEntry(name=name, kind=ObjectKind(kind), oid=entry_oid, mode=mode)
            )
        return entries

    def object_kind(self, oid: str) -> ObjectKind:
        proc = self._run_unchecked("cat-file", "-t", oid)
        if proc.returncode != 0:
            raise ObjectNotFoundError(f"Object not found: {oid}")
        return ObjectKind(proc.stdout.decode().strip())

    # ------------------------------------------------------------------
    # Commits
    # ------------------------------------------------------------------

    def commit_tree(self, commit_id: str) -> str:
        return self._run_text("rev-parse", "--verify", f"{commit_id}^{{tree}}")

    def commit_parents(self, commit_id: str) -> list[str]:
        line = self._run_text("rev-list", "--parents", "-n", "1", commit_id)
        return line.split()[1:]

    def create_commit(self, tree_id: str, parents: list[str], message: str) -> str:
        args = ["commit-tree", tree_id]
        for parent in parents:
            args += ["-p", parent]
        args += ["-m", message]
        return self._run_text(*args)

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def resolve_ref(self, name: str) -> str:
        validate_refname(name)
        proc = self._run_unchecked("rev-parse", "--verify", "--quiet", name)
        if proc.returncode != 0:
            raise ObjectNotFoundError(f"Reference not found: {name}")
        return proc.stdout.decode().strip()

    def update_ref(self, name: str, oid: str) -> None:
        validate_refname(name)
        self._run("update-ref", name, oid)

    def delete_ref(self, name: str) -> None:
        self.resolve_ref(name)
        self._run("update-ref", "-d", name)

    def list_refs(self, prefix: str = "refs/") -> list[str]:
        out = self._run_text("for-each-ref", "--format=%(refname)", prefix)
        return [line for line in out.splitlines() if line]

    def current_head(self) -> str:
        return self.resolve_ref("HEAD")

    # ------------------------------------------------------------------
    # Diff
    # ------------------------------------------------------------------

    def diff(self, old_commit: str | None, new_commit: str) -> list[ChangedPath]:
        args = ["diff-tree", "-r", "-z", "--no-commit-id", "--no-renames", "--name-status"]
        if old_commit is None:
            args += ["--root", new_commit]
        else:
            args += [old_commit, new_commit]
        fields = self._run(*args).decode("utf-8").split("\0")
        changes: list[ChangedPath] = []
        for status, path in zip(fields[0::2], fields[1::2]):
            if not status:
                continue
            changes.append(
                ChangedPath(path=path, status=_STATUS_CODES.get(status[0], ChangeStatus.OTHER))
            )
        return changes

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def config_get_all(self, key: str) -> list[str]:
        proc = self._run_unchecked("config", "--get-all", key)
        if proc.returncode != 0:
            return []
        return proc.stdout.decode("utf-8").splitlines()

    def config_set(self, key: str, value: str) -> None:
        self._run("config", key, value)

    def config_add(self, key: str, value: str) -> bool:
        """Append a multi-valued entry unless it is already present."""
        if value in self.config_get_all(key):
            return False
        self._run("config", "--add", key, value)
        return True
