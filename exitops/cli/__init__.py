"""
CLI Package for exitops.

Provides the exitctl command line interface.
"""

from .exitctl import cli, main, verify_main

__all__ = ["cli", "main", "verify_main"]
