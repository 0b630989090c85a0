"""Filesystem helpers: atomic replace and scratch directories."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write_bytes(dest: Path, data: bytes) -> None:
    """Write *data* to a sibling temp file, fsync it, then rename over *dest*.

    Readers see either the previous content or the new content, never a
    partial write.
    """
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp = dest.with_name(dest.name + f".tmp-{os.getpid()}")
    try:
        with open(tmp, "wb") as wf:
            wf.write(data)
            wf.flush()
            os.fsync(wf.fileno())
        os.replace(tmp, dest)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def atomic_write_text(dest: Path, text: str) -> None:
    atomic_write_bytes(dest, text.encode("utf-8"))


def scratch_dir(prefix: str = "docxgit-") -> tempfile.TemporaryDirectory[str]:
    """Scratch area owned by one invocation, removed when the context exits."""
    return tempfile.TemporaryDirectory(prefix=prefix)
