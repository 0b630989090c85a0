"""Anchor references that keep decomposed trees reachable.

After every host commit, each tracked document the commit added or modified
gets an anchor commit wrapping its part tree (parent: the host commit) and a
``refs/docx/<name>`` reference pointing at it. Only the current anchor
matters: an existing reference is deleted and rewritten, last write wins.

Per document lifecycle::

    UNTRACKED -> STAGED (tree recorded by clean) -> ANCHORED (commit + ref)

A tree is anchored only if rebuilding it reproduces the hash in the committed
pointer; otherwise the document is reported as failed.

Documents are processed one after another; a failure on one is recorded and
the remaining documents are still anchored.
"""

from __future__ import annotations

import logging

from docxgit.config import Settings, settings as default_settings
from docxgit.core.content_store import ContentStore
from docxgit.core.object_store import ObjectStore
from docxgit.core.pipeline import RecomposePipeline
from docxgit.core.pointer import decode
from docxgit.core.tree_record import TreeRecordStore
from docxgit.errors import DocxGitError, ObjectNotFoundError, RefResolutionError
from docxgit.models.objects import AnchorResult, AnchorState, ChangeStatus

logger = logging.getLogger(__name__)


class AnchorRefManager:
    """Creates anchor commits and repoints their references.

    Parameters
    ----------
    store:
        The repository's object store.
    config:
        Settings; ``tracked_suffixes`` selects documents, ``tree_record_name``
        locates the side records written by the clean filter. A recorded tree is
        only anchored when it rebuilds the committed pointer's hash.
    """

    def __init__(self, store: ObjectStore, *, config: Settings | None = None) -> None:
        self._store = store
        self._config = config or default_settings
        self._content = ContentStore(store)
        self._records = TreeRecordStore(store.metadata_dir, self._config.tree_record_name)
        self._recompose = RecomposePipeline(store, config=self._config)

    # ------------------------------------------------------------------
    # Change detection
    # ------------------------------------------------------------------

    def changed_documents(self, commit_id: str) -> tuple[list[str], list[str]]:
        """Tracked paths (added or modified, deleted) in *commit_id* vs its first parent."""
        parents = self._store.commit_parents(commit_id)
        changes = self._store.diff(parents[0] if parents else None, commit_id)
        modified: list[str] = []
        deleted: list[str] = []
        for change in changes:
            if not self._config.is_tracked(change.path):
                continue
            if change.status in (ChangeStatus.ADDED, ChangeStatus.MODIFIED):
                modified.append(change.path)
            elif change.status is ChangeStatus.DELETED:
                deleted.append(change.path)
        return modified, deleted

    # ------------------------------------------------------------------
    # Anchoring
    # ------------------------------------------------------------------

    def anchor(self, refname: str, tree_id: str, parent: str | None, label: str) -> str:
        """Commit *tree_id* on top of *parent* and point *refname* at it."""
        commit_id = self._store.create_commit(
            tree_id,
            [parent] if parent else [],
            f"Auto-commit for {label} tree",
        )
        logger.info("Created commit %s for %s", commit_id, label)
        try:
            previous = self._store.resolve_ref(refname)
        except ObjectNotFoundError:
            previous = None
        if previous is not None:
            self._store.delete_ref(refname)
            logger.debug("Deleted stale ref %s (was %s)", refname, previous)
        self._store.update_ref(refname, commit_id)
        logger.info("Updated ref %s to %s", refname, commit_id)
        return commit_id

    def _pending_tree(self, head: str, path: str) -> tuple[str, str]:
        pointer = self._content.read_path(head, path)
        if pointer is None:
            raise RefResolutionError(f"{path} is not present in commit {head}")
        record = decode(pointer.decode("utf-8", errors="replace"))
        recorded = self._records.candidates(record.refname, record.expected_hash, include_latest=True)
        trees = self._recompose.peel_recorded(recorded, record.refname)
        if not trees:
            raise RefResolutionError(f"No tree recorded for {record.refname}")
        # The clean filter may have run again on unstaged edits since staging
        match = self._recompose.find_matching(record, trees)
        if match is None:
            raise RefResolutionError(
                f"No recorded tree for {record.refname} rebuilds hash {record.expected_hash}"
            )
        return record.refname, match[0]

    def anchor_document(self, head: str, path: str) -> AnchorResult:
        """Anchor one committed document; failures are returned, not raised."""
        try:
            refname, tree_id = self._pending_tree(head, path)
        except (DocxGitError, OSError) as exc:
            logger.error("Error resolving tree for %s: %s", path, exc)
            return AnchorResult(path=path, state=AnchorState.FAILED, detail=str(exc))

        try:
            commit_id = self.anchor(refname, tree_id, head, path)
        except DocxGitError as exc:
            logger.error("Failed to anchor %s at %s: %s", tree_id, refname, exc)
            return AnchorResult(
                path=path,
                state=AnchorState.STAGED,
                refname=refname,
                tree_id=tree_id,
                detail=str(exc),
            )
        return AnchorResult(
            path=path,
            state=AnchorState.ANCHORED,
            refname=refname,
            tree_id=tree_id,
            commit_id=commit_id,
        )

    def anchor_head(self) -> list[AnchorResult]:
        """Anchor every tracked document touched by the current HEAD commit."""
        head = self._store.current_head()
        modified, deleted = self.changed_documents(head)
        if not modified:
            logger.info("No tracked documents added or modified in %s", head)

        results = []
        for path in modified:
            logger.info("Processing %s...", path)
            results.append(self.anchor_document(head, path))
        for path in deleted:
            logger.info("Leaving anchor of deleted document %s in place", path)
            results.append(AnchorResult(path=path, state=AnchorState.UNTRACKED, detail="deleted"))
        return results
