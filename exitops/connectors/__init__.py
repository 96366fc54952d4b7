"""
Connectors Package for exitops.

This package provides the GitHub, AWS IAM and AWS IAM Identity Center
integrations used to revoke and verify a departing user's access.
"""

from typing import Any, Dict

from ..models import Provider
from .aws_connector import AWSIAMConnector, AWSIAMMockConnector
from .base_connector import (
    BaseConnector,
    CloudIAMConnector,
    CloudSSOConnector,
    ConnectorResult,
    SourceControlConnector,
)
from .github_connector import GitHubConnector, GitHubMockConnector
from .sso_connector import AWSSSOConnector, AWSSSOMockConnector


def build_connectors(config) -> Dict[Provider, BaseConnector]:
    """
    Construct the real connectors for every enabled provider.

    Args:
        config: OffboardConfig

    Returns:
        Mapping of provider to connector
    """
    connectors: Dict[Provider, Any] = {}
    if config.github.enabled:
        connectors[Provider.GITHUB] = GitHubConnector({
            "token": config.github.token,
            "organization": config.github.org,
            "api_url": config.github.api_url,
            "per_page": config.github.per_page,
        })
    if config.iam.enabled:
        connectors[Provider.AWS_IAM] = AWSIAMConnector({
            "profile": config.aws.profile,
            "region": config.aws.region,
        })
    if config.sso.enabled:
        connectors[Provider.AWS_SSO] = AWSSSOConnector({
            "profile": config.aws.profile,
            "region": config.aws.region,
            "identity_store_id": config.sso.identity_store_id,
            "instance_arn": config.sso.instance_arn,
        })
    return connectors


__all__ = [
    "BaseConnector",
    "ConnectorResult",
    "SourceControlConnector",
    "CloudIAMConnector",
    "CloudSSOConnector",
    "GitHubConnector",
    "GitHubMockConnector",
    "AWSIAMConnector",
    "AWSIAMMockConnector",
    "AWSSSOConnector",
    "AWSSSOMockConnector",
    "build_connectors",
]
