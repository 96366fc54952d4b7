"""
Engine Package for exitops.

Configuration loading, pre-flight checks and the dry-run gate.
"""

from .config_loader import ConfigLoader, OffboardConfig, load_config, validate_config
from .gate import Confirmer, ConsoleConfirmer, DryRunGate, ExecutionContext, StaticConfirmer
from .preflight import PreflightChecker, PreflightResult

__all__ = [
    "ConfigLoader",
    "OffboardConfig",
    "load_config",
    "validate_config",
    "Confirmer",
    "ConsoleConfirmer",
    "StaticConfirmer",
    "DryRunGate",
    "ExecutionContext",
    "PreflightChecker",
    "PreflightResult",
]
