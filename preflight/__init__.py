"""
Stateless Preflight - Pre-Deployment Validation for Configuration Trees

Checks that a declarative system-configuration checkout is free of user
data, tracked secrets and non-reproducible paths before it is deployed or
exported as an image.
"""

__version__ = "0.1.0"

# Package-level imports
from preflight.config import (
    PreflightConfig,
    ConfigLoader,
    get_default_config,
)
from preflight.models import (
    Severity,
    Verdict,
    Finding,
    PatternRule,
    ReportSummary,
    ValidationReport,
)
from preflight.vcs import (
    VersionControl,
    GitVersionControl,
    UnavailableVersionControl,
    ContentMatch,
    open_repository,
)
from preflight.checks import CheckContext, RuleCheck, DEFAULT_CHECKS
from preflight.validator import (
    DeploymentValidator,
    summarize,
    decide_verdict,
    validate_repository,
)
from preflight.report import ReportRenderer
from preflight.gate import DeploymentGate, GateResult
from preflight.exceptions import (
    PreflightError,
    ConfigError,
    RepositoryAccessError,
    VcsUnavailableError,
    GateError,
)

__all__ = [
    # Configuration
    "PreflightConfig",
    "ConfigLoader",
    "get_default_config",
    # Models
    "Severity",
    "Verdict",
    "Finding",
    "PatternRule",
    "ReportSummary",
    "ValidationReport",
    # Version control
    "VersionControl",
    "GitVersionControl",
    "UnavailableVersionControl",
    "ContentMatch",
    "open_repository",
    # Validation
    "CheckContext",
    "RuleCheck",
    "DEFAULT_CHECKS",
    "DeploymentValidator",
    "summarize",
    "decide_verdict",
    "validate_repository",
    # Output
    "ReportRenderer",
    "DeploymentGate",
    "GateResult",
    # Exceptions
    "PreflightError",
    "ConfigError",
    "RepositoryAccessError",
    "VcsUnavailableError",
    "GateError",
]
