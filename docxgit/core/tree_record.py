"""Side records handing tree ids from the clean filter to the post-commit hook.

Decomposition runs before the host commit exists, so the tree it writes is
recorded here and picked up by anchoring afterwards. The store is a small
key-value map plus a single ``latest`` record, all one-line files replaced
atomically:

    {metadata_dir}/docx-tree-oid                         latest tree id
    {metadata_dir}/docx-tree-oids/<encoded ref>          last tree per document
    {metadata_dir}/docx-tree-oids/<encoded ref>@<hash>   tree per document version

Git re-runs the clean filter on unstaged edits (``git status``, ``git diff``),
so the per-document record may name a newer tree than the one committed. The
per-version record, keyed by the canonical hash the pointer carries, does not
move.
"""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import quote

from docxgit.core.fs import atomic_write_text

logger = logging.getLogger(__name__)


class TreeRecordStore:
    """Atomic-replace key-value store of pending tree ids.

    Parameters
    ----------
    metadata_dir:
        Directory holding the records (the repository's git dir).
    record_name:
        File name of the latest-tree record.
    """

    def __init__(self, metadata_dir: Path, record_name: str = "docx-tree-oid") -> None:
        self._dir = Path(metadata_dir)
        self._latest = self._dir / record_name
        self._keyed = self._dir / f"{record_name}s"

    @property
    def latest_path(self) -> Path:
        return self._latest

    def _key_path(self, refname: str, digest: str | None = None) -> Path:
        key = quote(refname, safe="")
        if digest:
            key = f"{key}@{digest.strip().lower()}"
        return self._keyed / key

    def put(self, refname: str, tree_id: str, digest: str | None = None) -> None:
        """Record *tree_id* as the pending tree for *refname* and as latest.

        With *digest*, the tree is also recorded for that document version.
        """
        line = f"{tree_id}\n"
        if digest:
            atomic_write_text(self._key_path(refname, digest), line)
        atomic_write_text(self._key_path(refname), line)
        atomic_write_text(self._latest, line)
        logger.info("Wrote tree id %s for %s to %s", tree_id, refname, self._latest)

    @staticmethod
    def _read(path: Path) -> str | None:
        if not path.is_file():
            return None
        value = path.read_text(encoding="utf-8").strip()
        return value or None

    def get(self, refname: str, *, fallback_latest: bool = True) -> str | None:
        """Pending tree for *refname*, optionally falling back to the latest record."""
        value = self._read(self._key_path(refname))
        if value is None and fallback_latest:
            return self.latest()
        return value

    def get_version(self, refname: str, digest: str) -> str | None:
        """Tree recorded for the version of *refname* hashing to *digest*."""
        return self._read(self._key_path(refname, digest))

    def latest(self) -> str | None:
        return self._read(self._latest)

    def candidates(self, refname: str, digest: str, *, include_latest: bool = False) -> list[str]:
        """Recorded trees for a pointer, most specific first, without repeats."""
        found = [self.get_version(refname, digest), self.get(refname, fallback_latest=False)]
        if include_latest:
            found.append(self.latest())
        ordered: list[str] = []
        for tree_id in found:
            if tree_id is not None and tree_id not in ordered:
                ordered.append(tree_id)
        return ordered
