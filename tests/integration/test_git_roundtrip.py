"""Integration tests against a real git repository.

Exercises GitObjectStore plumbing, the pipelines on top of it, and the full
workflow: install -> add -> commit (clean + post-commit hook) -> checkout
(smudge) restores the original bytes.
"""

from __future__ import annotations

import logging
import shlex
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from docxgit.cli.app import app
from docxgit.core.anchor import AnchorRefManager
from docxgit.core.content_store import ContentStore
from docxgit.core.object_store import ObjectStore, TreeBuilder
from docxgit.core.pipeline import decompose, recompose
from docxgit.errors import ObjectNotFoundError
from docxgit.models.objects import AnchorState, ChangeStatus, ObjectKind

PROJECT_ROOT = Path(__file__).resolve().parents[2]

runner = CliRunner()


@pytest.fixture
def filter_command(monkeypatch) -> str:
    """Shell command git runs for the filters and the hook."""
    monkeypatch.setenv("PYTHONPATH", str(PROJECT_ROOT))
    monkeypatch.delenv("DOCXGIT_LOG_FILE", raising=False)
    return f"{shlex.quote(sys.executable)} -m docxgit"


@pytest.fixture
def reset_logging():
    yield
    logging.basicConfig(handlers=[logging.NullHandler()], force=True)


# ---------------------------------------------------------------------------
# GitObjectStore plumbing
# ---------------------------------------------------------------------------


class TestGitObjectStore:
    def test_satisfies_protocol(self, git_store):
        assert isinstance(git_store, ObjectStore)

    def test_metadata_dir(self, git_store, git_repo):
        assert git_store.metadata_dir == (git_repo / ".git").resolve()

    def test_blob_matches_git_hash_object(self, git_store, git_repo, run_git):
        oid = git_store.write_blob(b"hello\n")
        assert oid == run_git(git_repo, "hash-object", "--stdin", input=b"hello\n").decode().strip()
        assert git_store.read_blob(oid) == b"hello\n"
        assert git_store.object_kind(oid) is ObjectKind.BLOB

    def test_tree_round_trip(self, git_store):
        inner = TreeBuilder(git_store)
        inner.insert("document.xml", git_store.write_blob(b"<w/>"), ObjectKind.BLOB)
        outer = TreeBuilder(git_store)
        outer.insert("word", inner.write(), ObjectKind.TREE)
        outer.insert("[Content_Types].xml", git_store.write_blob(b"<Types/>"), ObjectKind.BLOB)
        entries = {e.name: e for e in git_store.read_tree(outer.write())}
        assert entries["word"].kind is ObjectKind.TREE
        assert entries["word"].mode == "040000"
        assert entries["[Content_Types].xml"].kind is ObjectKind.BLOB

    def test_empty_tree_is_gits_empty_tree(self, git_store):
        assert git_store.write_tree([]) == "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

    def test_commits_refs_and_diff(self, git_store):
        first_tree = TreeBuilder(git_store)
        first_tree.insert("a.docx", git_store.write_blob(b"1"), ObjectKind.BLOB)
        first_tree.insert("b.docx", git_store.write_blob(b"1"), ObjectKind.BLOB)
        first = git_store.create_commit(first_tree.write(), [], "first")

        second_tree = TreeBuilder(git_store)
        second_tree.insert("a.docx", git_store.write_blob(b"2"), ObjectKind.BLOB)
        second_tree.insert("c.docx", git_store.write_blob(b"1"), ObjectKind.BLOB)
        second = git_store.create_commit(second_tree.write(), [first], "second")

        assert git_store.commit_parents(first) == []
        assert git_store.commit_parents(second) == [first]
        assert git_store.object_kind(second) is ObjectKind.COMMIT

        assert {(c.path, c.status) for c in git_store.diff(None, first)} == {
            ("a.docx", ChangeStatus.ADDED),
            ("b.docx", ChangeStatus.ADDED),
        }
        assert {(c.path, c.status) for c in git_store.diff(first, second)} == {
            ("a.docx", ChangeStatus.MODIFIED),
            ("b.docx", ChangeStatus.DELETED),
            ("c.docx", ChangeStatus.ADDED),
        }

        git_store.update_ref("refs/docx/a", second)
        assert git_store.resolve_ref("refs/docx/a") == second
        assert git_store.list_refs("refs/docx/") == ["refs/docx/a"]
        git_store.delete_ref("refs/docx/a")
        with pytest.raises(ObjectNotFoundError):
            git_store.resolve_ref("refs/docx/a")
        with pytest.raises(ObjectNotFoundError):
            git_store.delete_ref("refs/docx/a")

    def test_unborn_head(self, git_store):
        with pytest.raises(ObjectNotFoundError):
            git_store.current_head()

    def test_config_add_is_idempotent(self, git_store):
        assert git_store.config_add("remote.origin.fetch", "+refs/docx/*:refs/docx/*") is True
        assert git_store.config_add("remote.origin.fetch", "+refs/docx/*:refs/docx/*") is False
        assert git_store.config_get_all("remote.origin.fetch") == ["+refs/docx/*:refs/docx/*"]


# ---------------------------------------------------------------------------
# Pipelines over git
# ---------------------------------------------------------------------------


class TestPipelinesOverGit:
    def test_decompose_recompose(self, git_store, docx_bytes, config):
        pointer = decompose(docx_bytes, "report.docx", git_store, config=config)
        assert (git_store.metadata_dir / "docx-tree-oid").is_file()
        assert recompose(pointer.encode(), git_store, config=config) == docx_bytes

    def test_parts_are_readable_with_git(self, git_store, git_repo, docx_bytes, config, run_git):
        decompose(docx_bytes, "report.docx", git_store, config=config)
        tree = (git_store.metadata_dir / "docx-tree-oid").read_text().strip()
        listing = run_git(git_repo, "ls-tree", "-r", "--name-only", tree).decode().splitlines()
        assert listing == [
            "[Content_Types].xml",
            "word/_rels/document.xml.rels",
            "word/document.xml",
        ]

    def test_anchor_after_plumbing_commit(self, git_store, git_repo, docx_bytes, config, run_git):
        pointer = decompose(docx_bytes, "report.docx", git_store, config=config)
        (git_repo / "report.docx").write_bytes(pointer.encode())
        run_git(git_repo, "add", "report.docx")
        run_git(git_repo, "commit", "-q", "-m", "add report")
        head = git_store.current_head()

        [result] = AnchorRefManager(git_store, config=config).anchor_head()

        assert result.state is AnchorState.ANCHORED
        assert git_store.commit_parents(result.commit_id) == [head]
        assert git_store.commit_tree(result.commit_id) == result.tree_id
        message = run_git(git_repo, "log", "-1", "--format=%s", "refs/docx/report").decode().strip()
        assert message == "Auto-commit for report.docx tree"
        assert ContentStore(git_store).resolve_tree("refs/docx/report") == result.tree_id


# ---------------------------------------------------------------------------
# Full workflow through the filters
# ---------------------------------------------------------------------------


class TestFullWorkflow:
    def _install(self, git_repo: Path, command: str, tmp_path: Path):
        return runner.invoke(
            app,
            [
                "--repo", str(git_repo),
                "--log-file", str(tmp_path / "install.log"),
                "install", "--command", command,
            ],
        )

    def test_install_configures_repository(self, git_repo, filter_command, tmp_path, run_git, reset_logging):
        run_git(git_repo, "remote", "add", "origin", str(tmp_path / "remote.git"))
        result = self._install(git_repo, filter_command, tmp_path)
        assert result.exit_code == 0, result.output

        def config(key):
            return run_git(git_repo, "config", "--get-all", key).decode().splitlines()

        assert config("filter.docx.clean") == [f"{filter_command} clean %f"]
        assert config("filter.docx.smudge") == [f"{filter_command} smudge"]
        assert config("filter.docx.required") == ["true"]
        assert config("remote.origin.fetch")[-1] == "+refs/docx/*:refs/docx/*"
        assert config("remote.origin.push") == ["refs/heads/*:refs/heads/*", "refs/docx/*:refs/docx/*"]
        assert "*.docx filter=docx" in (git_repo / ".gitattributes").read_text().splitlines()
        hook = git_repo / ".git" / "hooks" / "post-commit"
        assert f"{filter_command} post-commit" in hook.read_text()

        # Running it again adds nothing twice
        assert self._install(git_repo, filter_command, tmp_path).exit_code == 0
        assert config("remote.origin.push") == ["refs/heads/*:refs/heads/*", "refs/docx/*:refs/docx/*"]
        assert (git_repo / ".gitattributes").read_text().count("*.docx filter=docx") == 1
        assert hook.read_text().count("post-commit") == 1

    def test_commit_and_checkout_restore_identical_bytes(
        self, git_repo, filter_command, tmp_path, run_git, docx_bytes, make_canonical_docx, reset_logging
    ):
        assert self._install(git_repo, filter_command, tmp_path).exit_code == 0
        document = git_repo / "docs" / "report.docx"
        document.parent.mkdir()
        document.write_bytes(docx_bytes)

        run_git(git_repo, "add", ".gitattributes", "docs/report.docx")
        run_git(git_repo, "commit", "-q", "-m", "add report")

        stored = run_git(git_repo, "cat-file", "blob", "HEAD:docs/report.docx").decode()
        assert stored.startswith("DOCX-POINTER:refs/docx/report\n")
        anchor_parent = run_git(git_repo, "rev-parse", "refs/docx/report^").decode().strip()
        assert anchor_parent == run_git(git_repo, "rev-parse", "HEAD").decode().strip()

        document.unlink()
        run_git(git_repo, "checkout", "--", "docs/report.docx")
        assert document.read_bytes() == docx_bytes
        assert run_git(git_repo, "status", "--porcelain").decode().strip() == ""

        # A second revision moves the anchor; the first stays in history
        first_anchor = run_git(git_repo, "rev-parse", "refs/docx/report").decode().strip()
        edited = make_canonical_docx({"[Content_Types].xml": b"<Types/>", "word/document.xml": b"<w:document>v2</w:document>"})
        document.write_bytes(edited)
        run_git(git_repo, "commit", "-q", "-am", "edit report")
        second_anchor = run_git(git_repo, "rev-parse", "refs/docx/report").decode().strip()
        assert second_anchor != first_anchor

        document.unlink()
        run_git(git_repo, "checkout", "--", "docs/report.docx")
        assert document.read_bytes() == edited

        # The anchor moved on; the older version comes back from its clean record
        run_git(git_repo, "checkout", "-q", "HEAD~1", "--", "docs/report.docx")
        assert document.read_bytes() == docx_bytes

        # Without the records only the current anchor is left to rebuild from
        for record in (git_repo / ".git" / "docx-tree-oids").iterdir():
            record.unlink()
        document.unlink()
        run_git(git_repo, "checkout", "-q", "HEAD~1", "--", "docs/report.docx")
        assert document.read_bytes() == b""
