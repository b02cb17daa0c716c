"""Pre-check gate in front of an external command such as an image builder.

The gate runs the validator first and starts the command only when the
verdict does not block deployment. The validator has no other contract with
the gated tool.
"""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from preflight.exceptions import GateError
from preflight.models import ValidationReport, Verdict
from preflight.validator import DeploymentValidator


logger = logging.getLogger(__name__)


@dataclass
class GateResult:
    report: Optional[ValidationReport]
    command_ran: bool
    command_exit_code: Optional[int] = None

    @property
    def exit_code(self) -> int:
        """Exit code to propagate: the command's, or the blocking verdict's."""
        if self.command_ran:
            return self.command_exit_code
        if self.report is not None and self.report.exit_code != 0:
            return self.report.exit_code
        # Blocked by --strict on a cautionary verdict
        return 1


class DeploymentGate:
    """Runs ``command`` only when the repository is deployment clean."""

    def __init__(self, validator: DeploymentValidator, strict: bool = False):
        self.validator = validator
        self.strict = strict

    def allows(self, report: ValidationReport) -> bool:
        if report.verdict.is_blocking:
            return False
        if self.strict and report.verdict == Verdict.READY_WITH_CAUTION:
            return False
        return True

    def run(
        self,
        command: Sequence[str],
        skip_validation: bool = False,
        cwd: Optional[Path] = None,
    ) -> GateResult:
        """Validate, then run ``command`` if allowed.

        Raises:
            GateError: If the command is empty or cannot be started
        """
        if not command:
            raise GateError("No command given to gate")

        report = None
        if skip_validation:
            logger.warning("Pre-deployment validation skipped")
        else:
            report = self.validator.validate()
            if not self.allows(report):
                logger.error(f"Gate closed: verdict {report.verdict.value}, not running {command[0]}")
                return GateResult(report=report, command_ran=False)

        workdir = Path(cwd) if cwd else self.validator.repo_path
        logger.info(f"Gate open, running: {' '.join(command)}")
        try:
            completed = subprocess.run(list(command), cwd=str(workdir))
        except FileNotFoundError:
            raise GateError(f"Command not found: {command[0]}")
        except OSError as e:
            raise GateError(f"Failed to start {command[0]}: {e}")

        return GateResult(report=report, command_ran=True, command_exit_code=completed.returncode)
