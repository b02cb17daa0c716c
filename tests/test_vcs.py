"""
Integration tests for the GitPython-backed version-control queries.
"""

from unittest.mock import Mock

import pytest
from git import Repo
from git.exc import GitCommandError

from conftest import READY_FILES, write_tree
from preflight.exceptions import VcsUnavailableError
from preflight.models import Severity, Verdict
from preflight.report import ReportRenderer
from preflight.validator import validate_repository
from preflight.vcs import GitVersionControl, UnavailableVersionControl, open_repository


@pytest.fixture
def temp_repo(tmp_path):
    """Create temporary git repository with one committed file."""
    repo_path = tmp_path / "test_repo"
    repo_path.mkdir()

    repo = Repo.init(repo_path)

    write_tree(repo_path, {
        "flake.nix": "{ outputs = { self }: { }; }\n",
        "modules/services/api.nix": "{\n  port = 8080;\n  api_key = \"abc123\";\n}\n",
    })

    repo.index.add(["flake.nix", "modules/services/api.nix"])
    repo.index.commit("Initial commit")

    return repo_path, repo


class TestGitVersionControl:
    """Tests for GitVersionControl against a real checkout."""

    def test_list_tracked_files(self, temp_repo):
        repo_path, _ = temp_repo
        vcs = GitVersionControl(repo_path)

        assert vcs.list_tracked_files() == ["flake.nix", "modules/services/api.nix"]
        assert vcs.list_tracked_files("modules/") == ["modules/services/api.nix"]
        assert vcs.list_tracked_files("secrets/") == []

    def test_search_tracked_content(self, temp_repo):
        repo_path, _ = temp_repo
        vcs = GitVersionControl(repo_path)

        matches = vcs.search_tracked_content("API[_-]?KEY")

        assert len(matches) == 1
        assert matches[0].path == "modules/services/api.nix"
        assert matches[0].line_no == 3
        assert "abc123" in matches[0].line

    def test_search_without_matches(self, temp_repo):
        repo_path, _ = temp_repo
        vcs = GitVersionControl(repo_path)

        assert vcs.search_tracked_content("password") == []

    def test_search_ignores_untracked_files(self, temp_repo):
        repo_path, _ = temp_repo
        (repo_path / "notes.txt").write_text("password = hunter2\n")

        vcs = GitVersionControl(repo_path)

        assert vcs.search_tracked_content("password") == []
        assert vcs.list_untracked_files() == ["notes.txt"]

    def test_uncommitted_changes(self, temp_repo):
        repo_path, _ = temp_repo
        vcs = GitVersionControl(repo_path)

        assert vcs.has_uncommitted_changes() is False

        (repo_path / "flake.nix").write_text("{ outputs = _: { }; }\n")

        assert vcs.has_uncommitted_changes() is True

    def test_untracked_respects_gitignore(self, temp_repo):
        repo_path, _ = temp_repo
        write_tree(repo_path, {".gitignore": "result\n", "result": "build output\n"})

        vcs = GitVersionControl(repo_path)

        assert vcs.list_untracked_files() == [".gitignore"]

    def test_repository_without_commits(self, tmp_path):
        Repo.init(tmp_path)
        vcs = GitVersionControl(tmp_path)

        with pytest.raises(VcsUnavailableError):
            vcs.has_uncommitted_changes()

    def test_subdirectory_paths_are_relative(self, temp_repo):
        repo_path, _ = temp_repo
        vcs = GitVersionControl(repo_path / "modules")

        assert vcs.list_tracked_files() == ["services/api.nix"]

    def test_grep_failure_is_unavailable(self, temp_repo):
        repo_path, _ = temp_repo
        vcs = GitVersionControl(repo_path)

        vcs._git = Mock(grep=Mock(side_effect=GitCommandError("grep", 2)))

        with pytest.raises(VcsUnavailableError):
            vcs.search_tracked_content("token")

    def test_diff_exit_one_means_dirty(self, temp_repo):
        repo_path, _ = temp_repo
        vcs = GitVersionControl(repo_path)

        vcs._git = Mock(diff=Mock(side_effect=GitCommandError("diff", 1)))

        assert vcs.has_uncommitted_changes() is True
        vcs._git.diff.assert_called_once_with("--quiet", "HEAD", "--", ".")


class TestOpenRepository:

    def test_not_a_repository(self, tmp_path):
        vcs = open_repository(tmp_path)

        assert isinstance(vcs, UnavailableVersionControl)
        with pytest.raises(VcsUnavailableError):
            vcs.list_tracked_files()

    def test_git_repository(self, temp_repo):
        repo_path, _ = temp_repo
        assert isinstance(open_repository(repo_path), GitVersionControl)


def test_committed_ready_tree_is_ready(tmp_path):
    """End-to-end: a committed clean tree is READY with a real checkout."""
    repo_path = tmp_path / "config"
    repo_path.mkdir()
    repo = Repo.init(repo_path)
    write_tree(repo_path, READY_FILES)
    repo.index.add(sorted(READY_FILES))
    repo.index.commit("Initial configuration")

    report = validate_repository(repo_path)

    assert report.summary.warnings == 0
    assert report.verdict == Verdict.READY


def test_committed_private_key_blocks(tmp_path):
    """End-to-end: a tracked private key blocks deployment."""
    repo_path = tmp_path / "config"
    repo_path.mkdir()
    repo = Repo.init(repo_path)
    files = dict(READY_FILES, **{"hosts/id_rsa": "not a real key\n"})
    write_tree(repo_path, files)
    repo.index.add(sorted(files))
    repo.index.commit("Oops")

    report = validate_repository(repo_path)

    assert report.verdict == Verdict.DEPLOYMENT_BLOCKED
    assert report.exit_code == 2


def test_non_utf8_tracked_content_renders(tmp_path):
    """A Latin-1 byte on a matched line is replaced, not passed to the renderer."""
    repo_path = tmp_path / "config"
    repo_path.mkdir()
    repo = Repo.init(repo_path)
    write_tree(repo_path, READY_FILES)
    (repo_path / "modules/services/legacy.nix").write_bytes(b"password = caf\xe9\n")
    repo.index.add(sorted(READY_FILES) + ["modules/services/legacy.nix"])
    repo.index.commit("Legacy service")

    matches = GitVersionControl(repo_path).search_tracked_content("password")
    assert [m.line for m in matches] == ["password = caf�"]

    report = validate_repository(repo_path)
    warnings = [f for f in report.findings_for("secret_patterns") if f.severity == Severity.WARNING]
    assert warnings[0].details == ("modules/services/legacy.nix:1: password = caf�",)

    renderer = ReportRenderer()
    for fmt in ("text", "markdown", "json"):
        rendered = renderer.render(report, fmt)
        rendered.encode("utf-8")
        assert "legacy.nix" in rendered
