"""
exitops - Developer Offboarding and Access Reconciliation

Revokes a departing developer's access across GitHub, AWS IAM and AWS IAM
Identity Center, then independently verifies that no residual access remains.
Every attempted or simulated action is appended to a JSON audit ledger.
"""

__version__ = "1.0.0"

from .engine.config_loader import ConfigLoader, OffboardConfig
from .workflows.leaver import LeaverWorkflow
from .workflows.verifier import AccessVerifier, verify_principal

__all__ = [
    "ConfigLoader",
    "OffboardConfig",
    "LeaverWorkflow",
    "AccessVerifier",
    "verify_principal",
]
