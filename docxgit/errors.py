"""Exception hierarchy shared by the pipeline, the stores, and the CLI."""

from __future__ import annotations


class DocxGitError(RuntimeError):
    """Base class for all docxgit failures."""


class ArchiveError(DocxGitError):
    """Raised when a source archive cannot be read or unpacked."""


class UnsafeArchiveError(ArchiveError):
    """Raised when an archive member would escape the extraction root."""


class ObjectStoreError(DocxGitError):
    """Raised when the object store rejects a read or write."""


class ObjectNotFoundError(ObjectStoreError):
    """Raised when an object or reference does not exist."""


class IncompletePointerError(DocxGitError):
    """Raised when a pointer record lacks its header or hash line."""


class RefResolutionError(DocxGitError):
    """Raised when a reference cannot be resolved to a content tree."""
