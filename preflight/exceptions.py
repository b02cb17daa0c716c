"""Custom exceptions for the pre-deployment validator."""


class PreflightError(Exception):
    """Base exception for all validator errors."""
    pass


class ConfigError(PreflightError):
    """Raised when configuration loading or validation fails."""
    pass


class RepositoryAccessError(PreflightError):
    """Raised when the repository root cannot be read at all."""
    
    def __init__(self, root: str, reason: str = "not a readable directory"):
        self.root = root
        super().__init__(f"Cannot access repository {root}: {reason}")


class VcsUnavailableError(PreflightError):
    """Raised when a version-control query cannot be answered."""
    
    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Version control unavailable: {message}")


class GateError(PreflightError):
    """Raised when the gated command cannot be started."""
    pass
