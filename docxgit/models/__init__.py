"""docxgit data models (Pydantic v2, frozen)."""

from docxgit.models.objects import (
    MODE_BLOB,
    MODE_TREE,
    AnchorResult,
    AnchorState,
    ChangedPath,
    ChangeStatus,
    ObjectKind,
    TreeEntry,
)
from docxgit.models.parts import DEFAULT_PERMISSIONS, PartDescriptor, PointerRecord

__all__ = [
    # parts
    "DEFAULT_PERMISSIONS",
    "PartDescriptor",
    "PointerRecord",
    # objects
    "MODE_BLOB",
    "MODE_TREE",
    "ObjectKind",
    "TreeEntry",
    "ChangeStatus",
    "ChangedPath",
    # anchoring
    "AnchorState",
    "AnchorResult",
]
