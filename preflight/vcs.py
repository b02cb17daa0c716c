"""Read-only version-control queries used by the rule checks.

Checks never talk to git directly. They receive a :class:`VersionControl`
collaborator, which production code builds with :func:`open_repository`
and tests replace with an in-memory fake. Every query either answers or
raises :class:`VcsUnavailableError`; callers turn that into a warning.
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

# A missing git binary must surface as CommandError at call time, not at import
os.environ.setdefault("GIT_PYTHON_REFRESH", "quiet")

from git import Git, Repo
from git.exc import CommandError, GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .exceptions import VcsUnavailableError
from .models import clean_text


logger = logging.getLogger(__name__)

_GREP_LINE = re.compile(r"^(\d+)[:\0](.*)$", re.DOTALL)


@dataclass(frozen=True)
class ContentMatch:
    path: str
    line_no: int
    line: str


class VersionControl:
    """Interface for the read-only queries a rule check may issue.

    All paths are POSIX-style and relative to the repository root being
    validated.
    """

    def list_tracked_files(self, pathspec: Optional[str] = None) -> List[str]:
        raise NotImplementedError

    def search_tracked_content(self, pattern: str) -> List[ContentMatch]:
        """Case-insensitive extended-regex search over tracked text files."""
        raise NotImplementedError

    def has_uncommitted_changes(self) -> bool:
        raise NotImplementedError

    def list_untracked_files(self) -> List[str]:
        """Untracked files not covered by exclusion rules."""
        raise NotImplementedError


class UnavailableVersionControl(VersionControl):
    """Stand-in used when the tree is not a usable checkout."""

    def __init__(self, reason: str):
        self.reason = reason

    def _fail(self):
        raise VcsUnavailableError(self.reason)

    def list_tracked_files(self, pathspec: Optional[str] = None) -> List[str]:
        self._fail()

    def search_tracked_content(self, pattern: str) -> List[ContentMatch]:
        self._fail()

    def has_uncommitted_changes(self) -> bool:
        self._fail()

    def list_untracked_files(self) -> List[str]:
        self._fail()


class GitVersionControl(VersionControl):
    """GitPython-backed queries, scoped to ``repo_path``."""

    def __init__(self, repo_path: Path):
        self.repo_path = Path(repo_path)
        try:
            self.git_repo = Repo(self.repo_path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError, CommandError) as e:
            raise VcsUnavailableError(f"not a git repository: {self.repo_path}", e)

        # Commands run from the validated root so output paths are relative to it
        self._git = Git(str(self.repo_path))
        logger.debug(f"Initialized git repo: {self.git_repo.working_tree_dir}")

    def _run(self, *args: str) -> str:
        try:
            return getattr(self._git, args[0])(*args[1:])
        except GitCommandError as e:
            raise VcsUnavailableError(f"git {args[0].replace('_', '-')} failed (status {e.status})", e)
        except CommandError as e:
            raise VcsUnavailableError(f"git is not usable: {e}", e)

    @staticmethod
    def _split_null(output: str) -> List[str]:
        return [clean_text(entry) for entry in output.split("\0") if entry]

    def list_tracked_files(self, pathspec: Optional[str] = None) -> List[str]:
        if pathspec:
            output = self._run("ls_files", "-z", "--", pathspec)
        else:
            output = self._run("ls_files", "-z")
        return sorted(self._split_null(output))

    def search_tracked_content(self, pattern: str) -> List[ContentMatch]:
        try:
            output = self._git.grep("-I", "-n", "-i", "-E", "--null", "-e", pattern)
        except GitCommandError as e:
            # git grep exits 1 when nothing matched
            if e.status == 1:
                return []
            raise VcsUnavailableError(f"git grep failed (status {e.status})", e)
        except CommandError as e:
            raise VcsUnavailableError(f"git is not usable: {e}", e)

        matches = []
        for raw in output.split("\n"):
            if "\0" not in raw:
                continue
            path, rest = raw.split("\0", 1)
            parsed = _GREP_LINE.match(rest)
            if not parsed:
                logger.debug(f"Skipping unparseable grep line: {raw[:80]}")
                continue
            matches.append(ContentMatch(
                path=clean_text(path),
                line_no=int(parsed.group(1)),
                line=clean_text(parsed.group(2)),
            ))
        return matches

    def has_uncommitted_changes(self) -> bool:
        try:
            # Compares contents, so stale stat data in the index is not a change
            self._git.diff("--quiet", "HEAD", "--", ".")
            return False
        except GitCommandError as e:
            if e.status == 1:
                return True
            raise VcsUnavailableError(f"git diff failed (status {e.status})", e)
        except CommandError as e:
            raise VcsUnavailableError(f"git is not usable: {e}", e)

    def list_untracked_files(self) -> List[str]:
        output = self._run("ls_files", "-z", "--others", "--exclude-standard")
        return sorted(self._split_null(output))


def open_repository(repo_path: Path) -> VersionControl:
    """Open the checkout at ``repo_path``, degrading when it is not one."""
    try:
        return GitVersionControl(repo_path)
    except VcsUnavailableError as e:
        logger.warning(str(e))
        return UnavailableVersionControl(str(e))
