"""Map a directory of extracted parts onto a content-addressed tree and back."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from docxgit.core.object_store import ObjectStore, TreeBuilder
from docxgit.errors import ObjectStoreError, RefResolutionError
from docxgit.models.objects import ObjectKind

logger = logging.getLogger(__name__)


class ContentStore:
    """Stores directories as trees and materializes trees as directories.

    Parameters
    ----------
    store:
        The object store that owns every blob and tree written.
    """

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    @property
    def object_store(self) -> ObjectStore:
        return self._store

    # ------------------------------------------------------------------
    # Directory -> tree
    # ------------------------------------------------------------------

    def store(self, source_dir: Path, builder: TreeBuilder | None = None) -> str:
        """Write *source_dir* recursively and return the top-level tree id.

        Entries are visited sorted by name so the tree id does not depend on
        the platform's directory iteration order. An empty directory yields
        a valid empty tree.
        """
        source_dir = Path(source_dir)
        builder = builder if builder is not None else TreeBuilder(self._store)
        for path in sorted(source_dir.iterdir(), key=lambda p: p.name):
            if path.is_symlink():
                logger.warning("Skipping symlink: %s", path)
            elif path.is_file():
                oid = self._store.write_blob(path.read_bytes())
                builder.insert(path.name, oid, ObjectKind.BLOB)
                logger.debug("Added file to tree: %s", path)
            elif path.is_dir():
                subtree = self.store(path, TreeBuilder(self._store))
                builder.insert(path.name, subtree, ObjectKind.TREE)
                logger.debug("Added directory to tree: %s", path)
        tree_id = builder.write()
        logger.debug("Wrote tree %s for %s (%d entries)", tree_id, source_dir, len(builder))
        return tree_id

    # ------------------------------------------------------------------
    # Tree -> directory
    # ------------------------------------------------------------------

    def materialize(self, tree_id: str, destination_dir: Path) -> None:
        """Recreate the files of *tree_id* below *destination_dir*."""
        destination_dir = Path(destination_dir)
        destination_dir.mkdir(parents=True, exist_ok=True)
        for entry in self._store.read_tree(tree_id):
            if entry.name in {"", ".", ".."} or "/" in entry.name:
                logger.warning("Skipping unsafe tree entry %r in %s", entry.name, tree_id)
                continue
            target = destination_dir / entry.name
            if entry.kind is ObjectKind.TREE:
                self.materialize(entry.oid, target)
            elif entry.kind is ObjectKind.BLOB:
                target.write_bytes(self._store.read_blob(entry.oid))
                logger.debug("Extracted file: %s", target)
            else:
                logger.warning(
                    "Skipping %s entry %r in tree %s", entry.kind.value, entry.name, tree_id
                )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def peel_to_tree(self, oid: str) -> str:
        """Return *oid* if it is a tree, or the tree of the commit it names."""
        kind = self._store.object_kind(oid)
        if kind is ObjectKind.TREE:
            return oid
        if kind is ObjectKind.COMMIT:
            return self._store.commit_tree(oid)
        raise RefResolutionError(f"Object {oid} is a {kind.value}, not a tree or commit")

    def resolve_tree(self, refname: str) -> str:
        """Resolve a reference that points at a tree or at a commit wrapping one."""
        try:
            oid = self._store.resolve_ref(refname)
            tree_id = self.peel_to_tree(oid)
        except ObjectStoreError as exc:
            raise RefResolutionError(f"Failed to find ref '{refname}': {exc}") from exc
        logger.debug("Resolved %s to tree %s", refname, tree_id)
        return tree_id

    def read_path(self, commit_id: str, path: str) -> bytes | None:
        """Read the blob at *path* inside *commit_id*, or None if absent."""
        tree_id = self._store.commit_tree(commit_id)
        parts = PurePosixPath(path).parts
        for depth, name in enumerate(parts):
            entry = next((e for e in self._store.read_tree(tree_id) if e.name == name), None)
            if entry is None:
                return None
            if depth == len(parts) - 1:
                if entry.kind is not ObjectKind.BLOB:
                    return None
                return self._store.read_blob(entry.oid)
            if entry.kind is not ObjectKind.TREE:
                return None
            tree_id = entry.oid
        return None
