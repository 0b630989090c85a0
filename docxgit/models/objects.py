"""Object store vocabulary: object kinds, tree entries, diffs, anchor results."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class ObjectKind(str, Enum):
    """Kinds of objects held by the store."""

    BLOB = "blob"
    TREE = "tree"
    COMMIT = "commit"


# git file modes used when writing tree entries
MODE_BLOB = "100644"
MODE_TREE = "040000"


class TreeEntry(BaseModel):
    """One named entry of a tree object."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: ObjectKind
    oid: str
    mode: str = MODE_BLOB


class ChangeStatus(str, Enum):
    """Path status between two commits."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    OTHER = "other"


class ChangedPath(BaseModel):
    """A path that differs between two commits."""

    model_config = ConfigDict(frozen=True)

    path: str
    status: ChangeStatus


class AnchorState(str, Enum):
    """Lifecycle of a tracked document across one host commit."""

    UNTRACKED = "untracked"
    STAGED = "staged"  # tree exists, no anchor yet
    ANCHORED = "anchored"  # anchor commit + reference exist
    FAILED = "failed"


class AnchorResult(BaseModel):
    """Outcome of anchoring one document."""

    model_config = ConfigDict(frozen=True)

    path: str
    state: AnchorState
    refname: str = ""
    tree_id: str = ""
    commit_id: str = ""
    detail: str = ""
