"""Shared test fixtures for docxgit."""

from __future__ import annotations

import io
import shutil
import subprocess
import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from docxgit.config import Settings
from docxgit.core.archiver import DeterministicArchiver
from docxgit.core.content_store import ContentStore
from docxgit.core.git_store import GitObjectStore
from docxgit.core.object_store import LocalObjectStore
from docxgit.models.parts import PartDescriptor

TIMESTAMP = (2024, 3, 14, 15, 9, 26)

DOCX_PARTS: dict[str, bytes] = {
    "[Content_Types].xml": b'<?xml version="1.0"?><Types/>',
    "word/document.xml": b"<w:document><w:body><w:p>Hello</w:p></w:body></w:document>",
    "word/_rels/document.xml.rels": b"<Relationships/>",
}


@pytest.fixture
def config() -> Settings:
    """Settings isolated from any .env file or DOCXGIT_* variables."""
    return Settings(_env_file=None)


@pytest.fixture
def local_store(tmp_path: Path) -> LocalObjectStore:
    """Provide a fresh LocalObjectStore in a temp directory."""
    return LocalObjectStore(tmp_path / "objects-root")


@pytest.fixture
def content_store(local_store: LocalObjectStore) -> ContentStore:
    return ContentStore(local_store)


@pytest.fixture
def archiver() -> DeterministicArchiver:
    return DeterministicArchiver()


def write_parts(root: Path, parts: dict[str, bytes]) -> Path:
    """Lay out *parts* as files below *root*."""
    for name, data in parts.items():
        target = root.joinpath(*name.split("/"))
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    return root


def descriptors_for(
    parts: dict[str, bytes],
    timestamp: tuple[int, int, int, int, int, int] = TIMESTAMP,
    permissions: int = 0o644,
) -> list[PartDescriptor]:
    return [
        PartDescriptor(name=name, timestamp=timestamp, permissions=permissions)
        for name in parts
    ]


@pytest.fixture
def make_canonical_docx(tmp_path: Path) -> Callable[..., bytes]:
    """Factory fixture: a document archive already in canonical form."""

    def _factory(parts: dict[str, bytes] | None = None, **overrides) -> bytes:
        parts = DOCX_PARTS if parts is None else parts
        source = tmp_path / "canonical-source"
        if source.exists():
            shutil.rmtree(source)
        write_parts(source, parts)
        return DeterministicArchiver().build(descriptors_for(parts, **overrides), source)

    return _factory


@pytest.fixture
def make_foreign_docx() -> Callable[..., bytes]:
    """Factory fixture: an archive as an office suite writes it.

    Members keep insertion order and carry MS-DOS attributes, so the bytes
    differ from the canonical form.
    """

    def _factory(parts: dict[str, bytes] | None = None) -> bytes:
        parts = DOCX_PARTS if parts is None else parts
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for name, data in parts.items():
                info = zipfile.ZipInfo(name, date_time=(1980, 1, 1, 0, 0, 0))
                info.create_system = 0
                info.compress_type = zipfile.ZIP_DEFLATED
                archive.writestr(info, data)
        return buffer.getvalue()

    return _factory


@pytest.fixture
def docx_bytes(make_canonical_docx: Callable[..., bytes]) -> bytes:
    """Convenience: the 3-part canonical document."""
    return make_canonical_docx()


# ---------------------------------------------------------------------------
# Git repositories
# ---------------------------------------------------------------------------


def git(repo: Path, *args: str, input: bytes | None = None) -> bytes:
    """Run git in *repo* and return stdout, failing the test on error."""
    proc = subprocess.run(
        ["git", *args], cwd=repo, input=input, capture_output=True, check=False
    )
    assert proc.returncode == 0, proc.stderr.decode(errors="replace")
    return proc.stdout


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """An initialized, empty git repository with a committer identity."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "config", "user.name", "Test User")
    git(repo, "config", "user.email", "test@example.com")
    git(repo, "config", "commit.gpgsign", "false")
    return repo


@pytest.fixture
def git_store(git_repo: Path) -> GitObjectStore:
    return GitObjectStore.discover(git_repo)


@pytest.fixture
def run_git() -> Callable[..., bytes]:
    """The ``git`` helper as a fixture, for tests outside this module."""
    return git


@pytest.fixture
def parts_dir(tmp_path: Path) -> Callable[[dict[str, bytes]], Path]:
    """Factory fixture: lay out parts below a fresh directory."""
    counter = iter(range(1_000_000))

    def _factory(parts: dict[str, bytes]) -> Path:
        return write_parts(tmp_path / f"parts-{next(counter)}", parts)

    return _factory
