"""Shared fixtures: an in-memory version-control fake and tree builders."""

import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest

from preflight.exceptions import VcsUnavailableError
from preflight.vcs import ContentMatch, VersionControl


class FakeVersionControl(VersionControl):
    """In-memory stand-in for a checkout.

    ``tracked`` lists the paths the index knows about; content searches read
    those files from ``root`` so tests only have to write the tree once.
    """

    def __init__(
        self,
        root: Path,
        tracked: Optional[Iterable[str]] = None,
        dirty: bool = False,
        untracked: Iterable[str] = (),
        available: bool = True,
    ):
        self.root = Path(root)
        self._tracked = None if tracked is None else sorted(tracked)
        self.dirty = dirty
        self.untracked = sorted(untracked)
        self.available = available
        self.calls: List[str] = []

    def _check(self, name: str):
        self.calls.append(name)
        if not self.available:
            raise VcsUnavailableError("not a git repository")

    def _all_tracked(self) -> List[str]:
        if self._tracked is not None:
            return self._tracked
        return sorted(
            p.relative_to(self.root).as_posix()
            for p in self.root.rglob("*")
            if p.is_file() and ".git" not in p.relative_to(self.root).parts
        )

    def list_tracked_files(self, pathspec: Optional[str] = None) -> List[str]:
        self._check("list_tracked_files")
        tracked = self._all_tracked()
        if pathspec:
            return [p for p in tracked if p.startswith(pathspec)]
        return tracked

    def search_tracked_content(self, pattern: str) -> List[ContentMatch]:
        self._check("search_tracked_content")
        regex = re.compile(pattern, re.IGNORECASE)
        matches = []
        for path in self._all_tracked():
            full = self.root / path
            if not full.is_file():
                continue
            text = full.read_text(encoding="utf-8", errors="ignore")
            for line_no, line in enumerate(text.splitlines(), start=1):
                if regex.search(line):
                    matches.append(ContentMatch(path=path, line_no=line_no, line=line))
        return matches

    def has_uncommitted_changes(self) -> bool:
        self._check("has_uncommitted_changes")
        return self.dirty

    def list_untracked_files(self) -> List[str]:
        self._check("list_untracked_files")
        return self.untracked


READY_FILES: Dict[str, str] = {
    "README.md": "# Field configuration\n\nDeclarative system configuration.\n",
    "flake.nix": (
        "{\n"
        "  description = \"Field system configuration\";\n"
        "  inputs.nixpkgs.url = \"github:NixOS/nixpkgs/nixos-unstable\";\n"
        "  outputs = { self, nixpkgs }: { };\n"
        "}\n"
    ),
    "flake.lock": "{\n  \"nodes\": {},\n  \"version\": 7\n}\n",
    "chakras/default.nix": "{ ... }: { }\n",
    "modules/services/default.nix": "{ config, lib, ... }: { }\n",
    "modules/system/editors.nix": (
        "{ config, lib, pkgs, ... }:\n"
        "{\n"
        "  options.field.editors.enable = lib.mkEnableOption \"text editors\";\n"
        "}\n"
    ),
    "scripts/build-image.sh": "#!/usr/bin/env bash\nnixos-generate -f iso\n",
    "docs/index.md": "Operations guide.\n",
    "docs/runbooks/deploy.md": "1. Run the checks.\n",
    "hardware/README.md": "Hardware profiles live here.\n",
    "overlays/default.nix": "final: prev: { }\n",
    "secrets/README.md": "Encrypted material is managed outside git.\n",
    "secrets/.gitignore": "*\n!README.md\n!.gitignore\n",
}


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    """Write ``files`` (relative path -> content) under ``root``."""
    for relative, content in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def ready_tree(tmp_path):
    """A configuration tree that satisfies every check."""
    root = tmp_path / "config-repo"
    root.mkdir()
    return write_tree(root, READY_FILES)


@pytest.fixture
def fake_vcs_factory():
    """Build a FakeVersionControl bound to a tree."""
    def factory(root: Path, **kwargs) -> FakeVersionControl:
        return FakeVersionControl(root, **kwargs)
    return factory
