"""Runtime configuration read from the environment.

Reads from a .env file and DOCXGIT_* environment variables. Git runs the
filters and hooks with the repository root as working directory, so a .env
placed there applies to every invocation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """docxgit settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export DOCXGIT_LOG_LEVEL=DEBUG
        export DOCXGIT_LOG_FILE=logs/docx_extension.log
        export DOCXGIT_MISMATCH_POLICY=emit
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DOCXGIT_",
        env_file_encoding="utf-8",
    )

    # Logging
    log_level: str = "INFO"
    log_file: Path | None = None  # stderr when unset

    # Naming
    ref_namespace: str = "refs/docx"
    tree_record_name: str = "docx-tree-oid"
    tracked_suffixes: list[str] = [".docx"]

    # What smudge emits when the rebuilt archive hash differs from the record
    mismatch_policy: Literal["empty", "emit"] = "empty"

    # Identity stamped on anchor commits; git config is used when unset
    anchor_author_name: str = ""
    anchor_author_email: str = ""

    git_binary: str = "git"

    def is_tracked(self, path: str) -> bool:
        """Whether *path* names a document handled by the filters."""
        lowered = path.lower()
        return any(lowered.endswith(suffix.lower()) for suffix in self.tracked_suffixes)


# Module-level singleton, import as `from docxgit.config import settings`
settings = Settings()
