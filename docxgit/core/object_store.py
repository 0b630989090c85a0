"""Object store interface and a local content-addressed implementation.

The pipeline only talks to the ``ObjectStore`` Protocol. ``GitObjectStore``
(see ``docxgit.core.git_store``) drives a real repository; ``LocalObjectStore``
keeps blobs, trees, and commits as loose files on disk.

Local storage layout: {base}/objects/{sha256[0:2]}/{sha256[2:4]}/{sha256}.dat
Each object file is ``b"<kind> <size>\\0"`` followed by the payload, and the
object id is the SHA-256 of that whole byte string. Objects are never
deleted.
"""

from __future__ import annotations

import json
import time
from collections.abc import Iterable
from pathlib import Path, PurePosixPath
from typing import Protocol, runtime_checkable

from docxgit.core.fs import atomic_write_bytes, atomic_write_text
from docxgit.core.hasher import canonical_json_bytes, sha256_hex
from docxgit.errors import ObjectNotFoundError, ObjectStoreError
from docxgit.models.objects import (
    MODE_BLOB,
    MODE_TREE,
    ChangedPath,
    ChangeStatus,
    ObjectKind,
    TreeEntry,
)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ObjectStore(Protocol):
    """Blob/tree/commit/reference primitives the pipeline relies on.

    Writes are content-addressed: writing the same bytes twice returns the
    same identifier, so concurrent writers need no coordination.
    """

    @property
    def metadata_dir(self) -> Path:
        """Directory for side records (the git dir for a real repository)."""
        ...

    def write_blob(self, data: bytes) -> str: ...

    def write_tree(self, entries: Iterable[TreeEntry]) -> str: ...

    def read_blob(self, oid: str) -> bytes: ...

    def read_tree(self, oid: str) -> list[TreeEntry]: ...

    def object_kind(self, oid: str) -> ObjectKind: ...

    def commit_tree(self, commit_id: str) -> str: ...

    def commit_parents(self, commit_id: str) -> list[str]: ...

    def create_commit(self, tree_id: str, parents: list[str], message: str) -> str: ...

    def resolve_ref(self, name: str) -> str:
        """Return the object id *name* points at, or raise ObjectNotFoundError."""
        ...

    def update_ref(self, name: str, oid: str) -> None: ...

    def delete_ref(self, name: str) -> None: ...

    def current_head(self) -> str:
        """Return the commit id HEAD points at, or raise ObjectNotFoundError."""
        ...

    def diff(self, old_commit: str | None, new_commit: str) -> list[ChangedPath]:
        """Changed blob paths between two commits; ``None`` is the empty tree."""
        ...


# ---------------------------------------------------------------------------
# Tree builder
# ---------------------------------------------------------------------------


class TreeBuilder:
    """Collects entries for one tree level and writes them as a single tree.

    Entries are kept keyed by name; ``write`` emits them sorted, so the
    resulting id does not depend on insertion order.
    """

    def __init__(self, store: ObjectStore) -> None:
        self._store = store
        self._entries: dict[str, TreeEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def insert(self, name: str, oid: str, kind: ObjectKind) -> None:
        if not name or "/" in name:
            raise ValueError(f"Invalid tree entry name: {name!r}")
        mode = MODE_TREE if kind is ObjectKind.TREE else MODE_BLOB
        self._entries[name] = TreeEntry(name=name, kind=kind, oid=oid, mode=mode)

    def write(self) -> str:
        entries = [self._entries[name] for name in sorted(self._entries)]
        return self._store.write_tree(entries)


def flatten_tree(store: ObjectStore, tree_id: str, prefix: str = "") -> dict[str, str]:
    """Map every blob path below *tree_id* to its object id."""
    flat: dict[str, str] = {}
    for entry in store.read_tree(tree_id):
        path = f"{prefix}{entry.name}"
        if entry.kind is ObjectKind.TREE:
            flat.update(flatten_tree(store, entry.oid, prefix=f"{path}/"))
        elif entry.kind is ObjectKind.BLOB:
            flat[path] = entry.oid
    return flat


def diff_flat(old: dict[str, str], new: dict[str, str]) -> list[ChangedPath]:
    """Compare two flattened trees, sorted by path."""
    changes: list[ChangedPath] = []
    for path in sorted(set(old) | set(new)):
        if path not in old:
            changes.append(ChangedPath(path=path, status=ChangeStatus.ADDED))
        elif path not in new:
            changes.append(ChangedPath(path=path, status=ChangeStatus.DELETED))
        elif old[path] != new[path]:
            changes.append(ChangedPath(path=path, status=ChangeStatus.MODIFIED))
    return changes


def validate_refname(name: str) -> str:
    """Reject reference names that could escape the refs namespace."""
    parts = PurePosixPath(name).parts
    if name != "HEAD" and (not parts or parts[0] != "refs" or len(parts) < 2):
        raise ObjectStoreError(f"Invalid reference name: {name!r}")
    if any(part in {"", ".", ".."} for part in parts) or name.endswith("/"):
        raise ObjectStoreError(f"Invalid reference name: {name!r}")
    return name


# ---------------------------------------------------------------------------
# Local store
# ---------------------------------------------------------------------------


class LocalObjectStore:
    """SHA-256 keyed, immutable object store with file-backed references.

    HEAD is symbolic and points at ``refs/heads/main``.

    Parameters
    ----------
    base_path:
        Root directory for objects, references, and side records.
    author:
        Identity recorded on commits.
    """

    _DEFAULT_BRANCH = "refs/heads/main"

    def __init__(self, base_path: Path, author: str = "docxgit <docxgit@localhost>") -> None:
        self._base = Path(base_path)
        self._author = author
        (self._base / "objects").mkdir(parents=True, exist_ok=True)
        (self._base / "refs").mkdir(parents=True, exist_ok=True)
        head = self._base / "HEAD"
        if not head.exists():
            atomic_write_text(head, f"ref: {self._DEFAULT_BRANCH}\n")

    @property
    def metadata_dir(self) -> Path:
        return self._base

    def _object_path(self, oid: str) -> Path:
        """Layout: {base}/objects/{sha256[0:2]}/{sha256[2:4]}/{sha256}.dat"""
        return self._base / "objects" / oid[:2] / oid[2:4] / f"{oid}.dat"

    # ------------------------------------------------------------------
    # Raw objects
    # ------------------------------------------------------------------

    def _write_object(self, kind: ObjectKind, payload: bytes) -> str:
        raw = f"{kind.value} {len(payload)}\0".encode() + payload
        oid = sha256_hex(raw)
        path = self._object_path(oid)
        if not path.exists():
            atomic_write_bytes(path, raw)
        return oid

    def _read_object(self, oid: str) -> tuple[ObjectKind, bytes]:
        path = self._object_path(oid)
        if len(oid) != 64 or not path.exists():
            raise ObjectNotFoundError(f"Object not found: {oid}")
        raw = path.read_bytes()
        if sha256_hex(raw) != oid:
            raise ObjectStoreError(f"Object {oid} failed integrity check")
        header, _, payload = raw.partition(b"\0")
        kind_name, _, size = header.decode().partition(" ")
        if int(size) != len(payload):
            raise ObjectStoreError(f"Object {oid} has a corrupt header")
        return ObjectKind(kind_name), payload

    def _read_expected(self, oid: str, kind: ObjectKind) -> bytes:
        actual, payload = self._read_object(oid)
        if actual is not kind:
            raise ObjectStoreError(f"Object {oid} is a {actual.value}, expected {kind.value}")
        return payload

    def object_kind(self, oid: str) -> ObjectKind:
        return self._read_object(oid)[0]

    # ------------------------------------------------------------------
    # Blobs and trees
    # ------------------------------------------------------------------

    def write_blob(self, data: bytes) -> str:
        return self._write_object(ObjectKind.BLOB, data)

    def read_blob(self, oid: str) -> bytes:
        return self._read_expected(oid, ObjectKind.BLOB)

    def write_tree(self, entries: Iterable[TreeEntry]) -> str:
        ordered = sorted(entries, key=lambda e: e.name)
        payload = canonical_json_bytes([e.model_dump(mode="json") for e in ordered])
        return self._write_object(ObjectKind.TREE, payload)

    def read_tree(self, oid: str) -> list[TreeEntry]:
        payload = self._read_expected(oid, ObjectKind.TREE)
        return [TreeEntry.model_validate(item) for item in json.loads(payload)]

    # ------------------------------------------------------------------
    # Commits
    # ------------------------------------------------------------------

    def create_commit(self, tree_id: str, parents: list[str], message: str) -> str:
        self._read_expected(tree_id, ObjectKind.TREE)
        for parent in parents:
            self._read_expected(parent, ObjectKind.COMMIT)
        payload = canonical_json_bytes(
            {
                "tree": tree_id,
                "parents": list(parents),
                "author": self._author,
                "timestamp": int(time.time()),
                "message": message,
            }
        )
        return self._write_object(ObjectKind.COMMIT, payload)

    def _read_commit(self, commit_id: str) -> dict:
        return json.loads(self._read_expected(commit_id, ObjectKind.COMMIT))

    def commit_tree(self, commit_id: str) -> str:
        return self._read_commit(commit_id)["tree"]

    def commit_parents(self, commit_id: str) -> list[str]:
        return list(self._read_commit(commit_id)["parents"])

    def commit_message(self, commit_id: str) -> str:
        return self._read_commit(commit_id)["message"]

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def _ref_path(self, name: str) -> Path:
        return self._base.joinpath(*PurePosixPath(validate_refname(name)).parts)

    def _read_ref_file(self, name: str) -> str:
        path = self._ref_path(name)
        if not path.is_file():
            raise ObjectNotFoundError(f"Reference not found: {name}")
        return path.read_text(encoding="utf-8").strip()

    def resolve_ref(self, name: str) -> str:
        value = self._read_ref_file(name)
        if value.startswith("ref: "):
            return self.resolve_ref(value[len("ref: "):])
        return value

    def update_ref(self, name: str, oid: str) -> None:
        if name == "HEAD":
            name = self._read_ref_file("HEAD").removeprefix("ref: ")
        self._read_object(oid)
        atomic_write_text(self._ref_path(name), f"{oid}\n")

    def delete_ref(self, name: str) -> None:
        path = self._ref_path(name)
        if not path.is_file():
            raise ObjectNotFoundError(f"Reference not found: {name}")
        path.unlink()

    def list_refs(self, prefix: str = "refs/") -> list[str]:
        root = self._ref_path(prefix.rstrip("/"))
        if not root.is_dir():
            return []
        return sorted(
            p.relative_to(self._base).as_posix()
            for p in root.rglob("*")
            if p.is_file() and ".tmp-" not in p.name
        )

    def current_head(self) -> str:
        return self.resolve_ref("HEAD")

    # ------------------------------------------------------------------
    # Diff
    # ------------------------------------------------------------------

    def diff(self, old_commit: str | None, new_commit: str) -> list[ChangedPath]:
        old = flatten_tree(self, self.commit_tree(old_commit)) if old_commit else {}
        new = flatten_tree(self, self.commit_tree(new_commit))
        return diff_flat(old, new)
