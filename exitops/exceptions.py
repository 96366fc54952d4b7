"""
Exception taxonomy for exitops.

ConfigValidationError and PreflightError are fatal to a run, EnumerationError
is fatal to one provider module, RevokeError and ResidualFindingError are
recorded and only influence the final exit status.
"""

from typing import List, Optional

from .models import Provider


class ExitOpsError(Exception):
    """Base class for all exitops errors."""


class ConfigValidationError(ExitOpsError):
    """Required configuration is missing or invalid."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Validation failed: " + "; ".join(self.errors))


class PreflightError(ExitOpsError):
    """A credential is unusable or does not match the configured identity."""

    def __init__(self, message: str, provider: Optional[Provider] = None):
        self.provider = provider
        super().__init__(message)


class EnumerationError(ExitOpsError):
    """Listing the scopes of a provider failed; no revoke is possible."""

    def __init__(self, provider: Provider, message: str):
        self.provider = provider
        super().__init__(f"[{provider.value}] {message}")


class RevokeError(ExitOpsError):
    """A single grant could not be revoked."""


class ResidualFindingError(ExitOpsError):
    """Verification found access that should have been revoked."""

    def __init__(self, findings: list):
        self.findings = findings
        super().__init__(f"{len(findings)} residual grant(s) detected")


class ConnectorError(ExitOpsError):
    """A provider API call failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)
