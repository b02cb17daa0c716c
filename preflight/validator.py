"""Runs the rule-check battery and reduces its findings to a verdict.

Each check runs exactly once per validation. A check that raises is recorded
as an error finding and the remaining checks still run.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from preflight.checks import CheckContext, RuleCheck, DEFAULT_CHECKS
from preflight.config import PreflightConfig, get_default_config
from preflight.exceptions import RepositoryAccessError
from preflight.models import Finding, ReportSummary, Severity, ValidationReport, Verdict
from preflight.vcs import VersionControl, open_repository


logger = logging.getLogger(__name__)


def summarize(findings: Iterable[Finding]) -> ReportSummary:
    """Reduce findings to counters. Critical findings also count as errors."""
    findings = list(findings)
    critical = sum(1 for f in findings if f.severity == Severity.CRITICAL)
    return ReportSummary(
        passed=sum(1 for f in findings if f.severity == Severity.PASS),
        warnings=sum(1 for f in findings if f.severity == Severity.WARNING),
        errors=sum(1 for f in findings if f.severity == Severity.ERROR) + critical,
        critical=critical,
    )


def decide_verdict(summary: ReportSummary, caution_threshold: int = 5) -> Verdict:
    """Map counters to a verdict; the first matching rule wins."""
    if summary.critical > 0:
        return Verdict.DEPLOYMENT_BLOCKED
    if summary.errors > 0:
        return Verdict.BLOCKED
    if summary.warnings > caution_threshold:
        return Verdict.READY_WITH_CAUTION
    return Verdict.READY


class DeploymentValidator:
    """Runs the rule-check battery against one repository checkout."""

    def __init__(
        self,
        repo_path: Path,
        config: Optional[PreflightConfig] = None,
        vcs: Optional[VersionControl] = None,
        checks: Optional[Sequence[RuleCheck]] = None,
    ):
        self.repo_path = Path(repo_path)
        self.config = config or get_default_config()
        self._vcs = vcs
        self.checks = list(checks) if checks is not None else list(DEFAULT_CHECKS)

    def _ensure_readable(self):
        if not self.repo_path.is_dir():
            raise RepositoryAccessError(str(self.repo_path), "not a directory")
        if not os.access(self.repo_path, os.R_OK | os.X_OK):
            raise RepositoryAccessError(str(self.repo_path), "permission denied")

    def validate(self, caution_threshold: Optional[int] = None) -> ValidationReport:
        """Run every check once, in order, and build the report.

        Raises:
            RepositoryAccessError: If the repository root cannot be read
        """
        self._ensure_readable()
        threshold = self.config.caution_threshold if caution_threshold is None else caution_threshold
        vcs = self._vcs if self._vcs is not None else open_repository(self.repo_path)

        logger.info(f"Starting validation of {self.repo_path}")
        ctx = CheckContext(repo_root=self.repo_path, config=self.config, vcs=vcs)

        all_findings: List[Finding] = []
        checks_run: List[str] = []

        for check in self.checks:
            logger.info(f"Running {check.name} check")
            checks_run.append(check.name)
            try:
                all_findings.extend(check.run(ctx))
            except Exception as e:
                logger.error(f"{check.name} check failed: {e}")
                all_findings.append(Finding(
                    rule_id=check.name,
                    severity=Severity.ERROR,
                    message=f"{check.title} check failed: {e}",
                ))

        summary = summarize(all_findings)
        verdict = decide_verdict(summary, threshold)
        logger.info(f"Validation complete. Summary: {summary.model_dump()} Verdict: {verdict.value}")

        return ValidationReport(
            repo_root=str(self.repo_path),
            findings=all_findings,
            summary=summary,
            verdict=verdict,
            caution_threshold=threshold,
            checks_run=checks_run,
        )


def validate_repository(
    repo_path: Path,
    config: Optional[PreflightConfig] = None,
    vcs: Optional[VersionControl] = None,
) -> ValidationReport:
    """Validate ``repo_path`` with the default battery."""
    return DeploymentValidator(repo_path, config=config, vcs=vcs).validate()
