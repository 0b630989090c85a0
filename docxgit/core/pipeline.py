"""Decompose (clean) and recompose (smudge) pipelines.

Decompose runs when a document enters version control: it stores the
document's parts as a tree and returns a pointer record. Recompose runs on
checkout: it rebuilds the archive from the tree named by the pointer and
only returns it when the rebuilt bytes hash to the recorded value.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path, PurePath

from docxgit.config import Settings, settings as default_settings
from docxgit.core.archiver import DeterministicArchiver, extract_descriptors, unpack
from docxgit.core.content_store import ContentStore
from docxgit.core.fs import scratch_dir
from docxgit.core.hasher import sha256_hex
from docxgit.core.object_store import ObjectStore
from docxgit.core.pointer import decode, encode, read_refname
from docxgit.core.tree_record import TreeRecordStore
from docxgit.errors import IncompletePointerError, ObjectNotFoundError, RefResolutionError
from docxgit.models.parts import PointerRecord

logger = logging.getLogger(__name__)

# Characters git refuses in reference names
_UNSAFE_REF_CHARS = re.compile(r"[\x00-\x20\x7f~^:?*\[\\]|\.\.|@\{")

# Bytes inspected when checking whether clean input already is a pointer
_HEADER_PEEK = 4096


def document_refname(document_path: str | PurePath, namespace: str = "refs/docx") -> str:
    """Anchor reference for a document: namespace + base name without extension."""
    base = _UNSAFE_REF_CHARS.sub("_", PurePath(document_path).stem).strip(".")
    if base.endswith(".lock"):
        base += "_"
    return f"{namespace.rstrip('/')}/{base or 'document'}"


class _Pipeline:
    """Shared wiring: object store, content store, side records, archiver."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        config: Settings | None = None,
        archiver: DeterministicArchiver | None = None,
    ) -> None:
        self._store = store
        self._config = config or default_settings
        self._archiver = archiver or DeterministicArchiver()
        self._content = ContentStore(store)
        self._records = TreeRecordStore(store.metadata_dir, self._config.tree_record_name)


class DecomposePipeline(_Pipeline):
    """Turns raw document bytes into a pointer record.

    Parameters
    ----------
    store:
        Object store receiving the part blobs and trees.
    config:
        Settings; defaults to the module singleton.
    archiver:
        Archiver used to compute the canonical hash.
    """

    def run(self, raw_document: bytes, document_path: str | PurePath) -> str:
        """Store the document's parts and return the encoded pointer record.

        Input that already is a pointer record is returned unchanged, so
        re-cleaning a file whose checkout failed does not lose its pointer.
        """
        if read_refname(raw_document[:_HEADER_PEEK].decode("utf-8", errors="replace")) is not None:
            logger.info("Input for %s is already a pointer record", document_path)
            return raw_document.decode("utf-8")

        refname = document_refname(document_path, self._config.ref_namespace)
        logger.info("Decomposing %s as %s", document_path, refname)
        parts = extract_descriptors(raw_document)

        with scratch_dir() as tmp:
            workdir = Path(tmp) / "unzipped"
            unpack(raw_document, workdir)
            tree_id = self._content.store(workdir)
            digest = self._archiver.canonical_hash(parts, workdir)
        try:
            self._records.put(refname, tree_id, digest)
        except OSError as exc:
            logger.warning("Failed to write tree record for %s: %s", refname, exc)

        logger.info("Stored %d parts of %s in tree %s (hash %s)", len(parts), document_path, tree_id, digest)
        return encode(refname, digest, parts)


class RecomposePipeline(_Pipeline):
    """Rebuilds document bytes from a pointer record.

    The anchor reference's tree is tried first, then the trees the clean
    filter recorded for the reference. The first tree whose rebuild hashes
    to the record's hash wins, so a version that was staged after the last
    anchor still checks out.

    Parameters
    ----------
    store:
        Object store holding the part trees.
    config:
        Settings; ``mismatch_policy`` decides what a hash mismatch emits.
    archiver:
        Archiver used to rebuild the document.
    """

    def peel_recorded(self, recorded: list[str], refname: str) -> list[str]:
        """Trees behind recorded ids; ids whose object is gone are skipped."""
        trees = []
        for tree_id in recorded:
            try:
                trees.append(self._content.peel_to_tree(tree_id))
            except (ObjectNotFoundError, RefResolutionError) as exc:
                logger.warning("Recorded tree %s for %s is unusable: %s", tree_id, refname, exc)
        return trees

    def _candidate_trees(self, record: PointerRecord) -> list[str]:
        trees: list[str] = []
        try:
            trees.append(self._content.resolve_tree(record.refname))
        except RefResolutionError as exc:
            # Staged but not yet committed: the anchor ref does not exist yet
            logger.info("%s; trying pending trees", exc)
        recorded = self._records.candidates(record.refname, record.expected_hash)
        for tree_id in self.peel_recorded(recorded, record.refname):
            if tree_id not in trees:
                trees.append(tree_id)
        if not trees:
            raise RefResolutionError(f"No anchored or pending tree for '{record.refname}'")
        return trees

    def rebuild(self, tree_id: str, record: PointerRecord) -> bytes:
        """Rebuild the archive described by *record* from the parts in *tree_id*."""
        with scratch_dir() as tmp:
            workdir = Path(tmp) / "parts"
            self._content.materialize(tree_id, workdir)
            return self._archiver.rebuild(record.parts, workdir)

    def find_matching(self, record: PointerRecord, trees: list[str]) -> tuple[str, bytes] | None:
        """First of *trees* whose rebuild hashes to the record's hash."""
        expected = record.expected_hash.lower()
        for tree_id in trees:
            rebuilt = self.rebuild(tree_id, record)
            if sha256_hex(rebuilt) == expected:
                return tree_id, rebuilt
            logger.debug("Tree %s does not rebuild %s", tree_id, record.refname)
        return None

    def run(self, pointer_bytes: bytes) -> bytes:
        """Return the rebuilt document, or the input when it is not a pointer.

        Raises
        ------
        RefResolutionError
            If the record's reference cannot be resolved to a tree.
        """
        try:
            record = decode(pointer_bytes.decode("utf-8"))
        except (UnicodeDecodeError, IncompletePointerError) as exc:
            logger.error("Not a pointer record (%s); passing input through", exc)
            return pointer_bytes

        trees = self._candidate_trees(record)
        match = self.find_matching(record, trees)
        if match is not None:
            tree_id, rebuilt = match
            logger.info("Hash matched: %s (tree %s)", record.expected_hash.lower(), tree_id)
            return rebuilt

        rebuilt = self.rebuild(trees[0], record)
        logger.error(
            "Hash mismatch for %s. Expected: %s, Got: %s",
            record.refname,
            record.expected_hash,
            sha256_hex(rebuilt),
        )
        if self._config.mismatch_policy == "emit":
            logger.warning("Emitting rebuilt archive for %s despite mismatch", record.refname)
            return rebuilt
        return b""


def decompose(
    raw_document: bytes,
    document_path: str | PurePath,
    store: ObjectStore,
    *,
    config: Settings | None = None,
) -> str:
    """Clean filter: document bytes in, pointer record text out."""
    return DecomposePipeline(store, config=config).run(raw_document, document_path)


def recompose(
    pointer_bytes: bytes,
    store: ObjectStore,
    *,
    config: Settings | None = None,
) -> bytes:
    """Smudge filter: pointer record bytes in, document bytes out."""
    return RecomposePipeline(store, config=config).run(pointer_bytes)
