"""
Workflows Package for exitops.

This package provides the provider modules, the leaver orchestrator and the
independent access verifier.
"""

from .aws_iam import AWSIAMGrantSource, AWSIAMRevoker, aws_iam_module
from .aws_sso import AWSSSOGrantSource, AWSSSORevoker, aws_sso_module
from .base_workflow import GrantSource, ProviderModule, Revoker
from .github import GitHubGrantSource, GitHubRevoker, github_module
from .helpers import create_run_summary, paginate
from .leaver import LeaverWorkflow
from .verifier import AccessVerifier, verify_principal

__all__ = [
    "GrantSource",
    "Revoker",
    "ProviderModule",
    "GitHubGrantSource",
    "GitHubRevoker",
    "github_module",
    "AWSIAMGrantSource",
    "AWSIAMRevoker",
    "aws_iam_module",
    "AWSSSOGrantSource",
    "AWSSSORevoker",
    "aws_sso_module",
    "LeaverWorkflow",
    "AccessVerifier",
    "verify_principal",
    "paginate",
    "create_run_summary",
]
