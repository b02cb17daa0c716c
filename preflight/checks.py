"""Rule checks run against a configuration tree.

Each check is a plain function ``(CheckContext) -> List[Finding]``. Checks
only read the filesystem and issue read-only VCS queries; none of them
depends on another check's output.
"""

import fnmatch
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, List, Optional, Sequence

from .config import PreflightConfig
from .exceptions import VcsUnavailableError
from .models import Finding, PatternRule, Severity
from .vcs import ContentMatch, VersionControl


logger = logging.getLogger(__name__)


@dataclass
class CheckContext:
    """Everything a rule check may look at."""
    repo_root: Path
    config: PreflightConfig
    vcs: VersionControl
    _files: Optional[List[str]] = field(default=None, repr=False)

    def path(self, relative: str) -> Path:
        return self.repo_root / relative

    def files(self) -> List[str]:
        """Every regular file under the root as a sorted POSIX relative path.

        Directories named in ``config.skip_dirs`` are pruned from the walk.
        """
        if self._files is None:
            skip = set(self.config.skip_dirs)
            collected = []
            for dirpath, dirnames, filenames in os.walk(self.repo_root):
                dirnames[:] = sorted(d for d in dirnames if d not in skip)
                base = Path(dirpath).relative_to(self.repo_root)
                for name in filenames:
                    collected.append((base / name).as_posix())
            self._files = sorted(collected)
        return self._files


@dataclass(frozen=True)
class RuleCheck:
    name: str
    title: str
    run: Callable[[CheckContext], List[Finding]]


def _finding(rule_id: str, severity: Severity, message: str, **kwargs) -> Finding:
    if "details" in kwargs:
        kwargs["details"] = tuple(kwargs["details"])
    return Finding(rule_id=rule_id, severity=severity, message=message, **kwargs)


def path_matches(relative: str, pattern: str) -> bool:
    """Match a relative path the way ``find -path "*/<pattern>"`` does."""
    return fnmatch.fnmatchcase(relative, pattern) or fnmatch.fnmatchcase(relative, f"*/{pattern}")


def name_matches(relative: str, pattern: str, case_sensitive: bool = True) -> bool:
    name = PurePosixPath(relative).name
    if case_sensitive:
        return fnmatch.fnmatchcase(name, pattern)
    return fnmatch.fnmatchcase(name.lower(), pattern.lower())


# ---------------------------------------------------------------------------
# Directory structure
# ---------------------------------------------------------------------------

def check_directory_structure(ctx: CheckContext) -> List[Finding]:
    rule = "directory_structure"
    layout = ctx.config.layout
    findings = []

    for directory in layout.required_dirs:
        if ctx.path(directory).is_dir():
            findings.append(_finding(rule, Severity.PASS, f"Directory exists: {directory}/"))
        else:
            findings.append(_finding(rule, Severity.ERROR, f"Missing required directory: {directory}/",
                                     file_path=directory))

    for directory in layout.recommended_dirs:
        if ctx.path(directory).is_dir():
            findings.append(_finding(rule, Severity.PASS, f"Directory exists: {directory}/"))
        else:
            findings.append(_finding(rule, Severity.WARNING, f"Missing recommended directory: {directory}/",
                                     file_path=directory))

    return findings


# ---------------------------------------------------------------------------
# User data
# ---------------------------------------------------------------------------

def check_user_data(ctx: CheckContext) -> List[Finding]:
    rule = "user_data"
    cfg = ctx.config.user_data
    findings = []

    if ctx.path(cfg.home_dir).is_dir():
        findings.append(_finding(
            rule, Severity.CRITICAL,
            f"User '{cfg.home_dir}' directory found in repository!",
            file_path=cfg.home_dir,
            hint="Remove all user data from repository. This config must be stateless.",
        ))
    else:
        findings.append(_finding(rule, Severity.PASS, f"No '{cfg.home_dir}' directory in repository"))

    files = ctx.files()
    matched_types = 0
    for pattern in cfg.patterns:
        matched = [f for f in files if path_matches(f, pattern)]
        if matched:
            matched_types += 1
            findings.append(_finding(rule, Severity.WARNING, f"Found user files matching: {pattern}",
                                     details=matched))

    if matched_types == 0:
        findings.append(_finding(rule, Severity.PASS, "No user-specific files detected"))
    else:
        findings.append(_finding(
            rule, Severity.ERROR, f"{matched_types} types of user files found",
            hint="User files should not be in the system configuration",
        ))

    return findings


# ---------------------------------------------------------------------------
# Backup / non-flake-managed files
# ---------------------------------------------------------------------------

def check_non_flake_files(ctx: CheckContext) -> List[Finding]:
    rule = "non_flake_files"
    cfg = ctx.config.backups
    files = ctx.files()
    findings = []

    found_types = 0
    for pattern in cfg.patterns:
        matched = [f for f in files if name_matches(f, pattern)]
        if matched:
            found_types += 1
            findings.append(_finding(rule, Severity.WARNING, f"Found backup/non-flake file: {pattern}",
                                     details=matched))

    if found_types == 0:
        findings.append(_finding(rule, Severity.PASS, "No backup or non-flake files detected"))
    else:
        findings.append(_finding(
            rule, Severity.INFO,
            f"{found_types} types of backup files found - clean these before deployment",
        ))

    if ctx.path(cfg.manifest).is_file():
        findings.append(_finding(rule, Severity.PASS, f"{cfg.manifest} exists (flake-managed configuration)"))
    elif files:
        findings.append(_finding(
            rule, Severity.CRITICAL,
            f"{cfg.manifest} not found! System must be flake-managed",
            file_path=cfg.manifest,
        ))
    else:
        # Nothing in the tree is managed by anything yet
        findings.append(_finding(
            rule, Severity.ERROR,
            f"{cfg.manifest} not found in an empty repository",
            file_path=cfg.manifest,
        ))

    return findings


# ---------------------------------------------------------------------------
# Secrets directory
# ---------------------------------------------------------------------------

def check_secrets_directory(ctx: CheckContext) -> List[Finding]:
    rule = "secrets_directory"
    cfg = ctx.config.secrets
    findings = []

    if not ctx.path(cfg.directory).is_dir():
        findings.append(_finding(
            rule, Severity.WARNING, "Secrets directory doesn't exist",
            file_path=cfg.directory,
            hint=f"Create {cfg.directory}/ directory for proper secrets management",
        ))
        return findings

    findings.append(_finding(rule, Severity.PASS, "Secrets directory exists"))

    exclusion = f"{cfg.directory}/{cfg.exclusion_file}"
    if ctx.path(exclusion).is_file():
        findings.append(_finding(rule, Severity.PASS, f"Secrets directory has {cfg.exclusion_file}"))
    else:
        findings.append(_finding(
            rule, Severity.WARNING, f"Secrets directory missing {cfg.exclusion_file}",
            file_path=exclusion,
            hint=f"Create {exclusion} to prevent accidental commits",
        ))

    try:
        tracked = ctx.vcs.list_tracked_files(f"{cfg.directory}/")
    except VcsUnavailableError as e:
        findings.append(_finding(rule, Severity.WARNING, f"Cannot verify tracked secret files: {e}"))
        return findings

    allowed = set(cfg.allowed_tracked)
    leaked = [p for p in tracked if PurePosixPath(p).name not in allowed]
    if leaked:
        findings.append(_finding(rule, Severity.CRITICAL, "Secret files are being tracked in git!",
                                 details=leaked))
    else:
        allowed_text = "/".join(cfg.allowed_tracked) or "nothing"
        findings.append(_finding(rule, Severity.PASS, f"No secret files tracked in git (only {allowed_text})"))

    return findings


# ---------------------------------------------------------------------------
# Secret patterns in tracked files
# ---------------------------------------------------------------------------

def _is_excluded_match(ctx: CheckContext, match: ContentMatch) -> bool:
    cfg = ctx.config.secret_scan
    path = match.path
    if PurePosixPath(path).name in cfg.excluded_names:
        return True
    if any(fragment in path for fragment in cfg.excluded_path_fragments):
        return True
    if any(path.startswith(prefix) for prefix in cfg.excluded_prefixes):
        return True
    if cfg.skip_comment_lines and match.line.lstrip().startswith("#"):
        return True
    return False


def scan_tracked_files(ctx: CheckContext, rules: Sequence[PatternRule], rule_id: str) -> List[Finding]:
    """Apply a table of pattern rules to version-controlled files.

    Content rules emit one finding per rule that matched at least one
    non-excluded line. Filename rules emit one finding per rule that matched
    a tracked path. A VCS failure yields a single warning and skips the rest.
    """
    cfg = ctx.config.secret_scan
    content_rules = [r for r in rules if r.target == "content"]
    filename_rules = [r for r in rules if r.target == "filename"]
    findings = []

    try:
        if content_rules:
            matched_rules = 0
            for rule in content_rules:
                matches = [
                    m for m in ctx.vcs.search_tracked_content(rule.pattern)
                    if not _is_excluded_match(ctx, m)
                ]
                if not matches:
                    continue
                matched_rules += 1
                shown = [
                    f"{m.path}:{m.line_no}: {m.line.strip()}"[:cfg.max_line_length]
                    for m in matches[:cfg.max_matches_shown]
                ]
                findings.append(_finding(
                    rule_id, rule.severity, f"Found potential secret pattern: {rule.name}",
                    file_path=matches[0].path, details=shown,
                ))

            if matched_rules == 0:
                findings.append(_finding(rule_id, Severity.PASS, "No obvious secret patterns found in tracked files"))
            else:
                findings.append(_finding(
                    rule_id, Severity.INFO,
                    f"{matched_rules} potential secret patterns detected - review carefully",
                    hint="These may be false positives (documentation, comments, etc.)",
                ))

        if filename_rules:
            tracked = ctx.vcs.list_tracked_files()
            flagged = False
            for rule in filename_rules:
                matched = [p for p in tracked if name_matches(p, rule.pattern, case_sensitive=False)]
                if matched:
                    flagged = True
                    findings.append(_finding(
                        rule_id, rule.severity,
                        f"Files with secret-like names are tracked in git: {rule.name}",
                        file_path=matched[0], details=matched,
                    ))
            if not flagged:
                findings.append(_finding(rule_id, Severity.PASS, "No secret-like filenames in git tracking"))

    except VcsUnavailableError as e:
        findings.append(_finding(rule_id, Severity.WARNING, f"Cannot scan tracked files: {e}"))

    return findings


def check_secret_patterns(ctx: CheckContext) -> List[Finding]:
    return scan_tracked_files(ctx, ctx.config.secret_scan.rules(), "secret_patterns")


# ---------------------------------------------------------------------------
# Reproducibility
# ---------------------------------------------------------------------------

def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="ignore")
    except OSError as e:
        logger.debug(f"Skipping unreadable file {path}: {e}")
        return ""


def check_reproducibility(ctx: CheckContext) -> List[Finding]:
    rule = "reproducibility"
    cfg = ctx.config.reproducibility
    findings = []

    if ctx.path(cfg.lock_file).is_file():
        findings.append(_finding(rule, Severity.PASS, f"{cfg.lock_file} exists (pinned dependencies)"))
    else:
        findings.append(_finding(
            rule, Severity.WARNING, f"{cfg.lock_file} missing - dependencies not pinned",
            file_path=cfg.lock_file,
            hint="Run 'nix flake update' to create the lock file",
        ))

    extensions = tuple(cfg.config_extensions)
    contents: Dict[str, str] = {
        f: _read_text(ctx.path(f)) for f in ctx.files() if f.endswith(extensions)
    }
    kinds = ", ".join(f"*{ext}" for ext in extensions)

    for prefix in cfg.forbidden_path_prefixes:
        offenders = [f for f, text in contents.items() if prefix in text]
        if offenders:
            findings.append(_finding(
                rule, Severity.WARNING, f"Found absolute {prefix} paths in {kinds} files",
                file_path=offenders[0], details=offenders[:cfg.max_files_shown],
                hint="Use relative paths or parameterize them per deployment",
            ))
        else:
            findings.append(_finding(rule, Severity.PASS, f"No absolute {prefix} paths in {kinds} files"))

    return findings


# ---------------------------------------------------------------------------
# Documentation
# ---------------------------------------------------------------------------

def check_documentation(ctx: CheckContext) -> List[Finding]:
    rule = "documentation"
    docs = ctx.config.documentation
    findings = []

    for doc in docs.required:
        if ctx.path(doc).exists():
            findings.append(_finding(rule, Severity.PASS, f"Found: {doc}"))
        else:
            findings.append(_finding(rule, Severity.ERROR, f"Missing required: {doc}", file_path=doc))

    for doc in docs.recommended:
        if ctx.path(doc).exists():
            findings.append(_finding(rule, Severity.PASS, f"Found: {doc}"))
        else:
            findings.append(_finding(rule, Severity.WARNING, f"Missing recommended: {doc}", file_path=doc))

    return findings


# ---------------------------------------------------------------------------
# Version control status
# ---------------------------------------------------------------------------

def check_vcs_status(ctx: CheckContext) -> List[Finding]:
    rule = "vcs_status"
    findings = []

    try:
        dirty = ctx.vcs.has_uncommitted_changes()
    except VcsUnavailableError as e:
        findings.append(_finding(rule, Severity.WARNING, f"Not a usable git repository ({e})"))
        return findings

    if dirty:
        findings.append(_finding(rule, Severity.WARNING, "Uncommitted changes detected",
                                 hint="Commit all changes before deployment"))
    else:
        findings.append(_finding(rule, Severity.PASS, "No uncommitted changes"))

    try:
        untracked = ctx.vcs.list_untracked_files()
    except VcsUnavailableError as e:
        findings.append(_finding(rule, Severity.WARNING, f"Cannot list untracked files: {e}"))
        return findings

    if untracked:
        findings.append(_finding(
            rule, Severity.INFO,
            "Untracked files exist - verify these should not be committed",
            details=untracked[:ctx.config.vcs.max_untracked_shown],
        ))
    else:
        findings.append(_finding(rule, Severity.PASS, "No untracked files"))

    return findings


DEFAULT_CHECKS: List[RuleCheck] = [
    RuleCheck("directory_structure", "Directory Structure (Recommended Layout)", check_directory_structure),
    RuleCheck("user_data", "User Data (Stateless Validation)", check_user_data),
    RuleCheck("non_flake_files", "Non-Flake-Managed Files", check_non_flake_files),
    RuleCheck("secrets_directory", "Secrets Directory Configuration", check_secrets_directory),
    RuleCheck("secret_patterns", "Accidentally Tracked Secrets", check_secret_patterns),
    RuleCheck("reproducibility", "Configuration Reproducibility", check_reproducibility),
    RuleCheck("documentation", "Documentation Completeness", check_documentation),
    RuleCheck("vcs_status", "Git Repository Status", check_vcs_status),
]

CHECK_TITLES: Dict[str, str] = {check.name: check.title for check in DEFAULT_CHECKS}
