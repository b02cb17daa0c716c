"""Example usage of the deployment validator.

This script demonstrates how to run the check battery from Python, inspect
findings, and put the gate in front of an image build.
"""

import sys
from pathlib import Path

from preflight import (
    ConfigLoader,
    DeploymentGate,
    DeploymentValidator,
    ReportRenderer,
    Severity,
)


def main(repo_path: str = "."):
    """Demonstrate validator usage."""

    # Resolve preflight.yaml (or defaults) for the checkout
    config = ConfigLoader.discover(Path(repo_path))

    print("=== Running Checks ===")
    validator = DeploymentValidator(repo_path, config=config)
    report = validator.validate()

    print(f"Verdict: {report.verdict.value} (exit code {report.exit_code})")
    print(f"Passed: {report.summary.passed}, warnings: {report.summary.warnings}, "
          f"errors: {report.summary.errors}, critical: {report.summary.critical}")

    print("\n=== Blocking Findings ===")
    for finding in report.findings:
        if finding.severity in (Severity.ERROR, Severity.CRITICAL):
            print(f"[{finding.rule_id}] {finding.message}")

    # Save a markdown copy next to the build artifacts
    ReportRenderer(config.report).write(report, Path("result/preflight.md"), "markdown")

    print("\n=== Gated Build ===")
    gate = DeploymentGate(validator, strict=True)
    result = gate.run(["nixos-generate", "-f", "iso", "--flake", ".#field"])
    if not result.command_ran:
        print("Build skipped, fix the findings above first")
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main(*sys.argv[1:2]))
