"""
Pre-flight checks for exitops.

Runs before any provider module: confirms that every enabled provider has a
connector with usable credentials, that the AWS credentials belong to the
expected account, and notes targets that are already gone.
"""

import logging
from typing import Any, Dict, List, Mapping

from pydantic import BaseModel, Field

from ..connectors.base_connector import BaseConnector
from ..exceptions import ConnectorError, PreflightError
from ..models import Outcome, Principal, Provider
from .config_loader import OffboardConfig
from .gate import ExecutionContext

logger = logging.getLogger(__name__)

MODULE = "PREFLIGHT"


class PreflightResult(BaseModel):
    passed: bool = True
    identities: Dict[Provider, Dict[str, Any]] = Field(default_factory=dict)
    notices: List[str] = Field(default_factory=list)


class PreflightChecker:
    """Check connectors and targets before anything is revoked."""

    def __init__(self, config: OffboardConfig, connectors: Mapping[Provider, BaseConnector]):
        self.config = config
        self.connectors = connectors

    def check(self, principal: Principal, ctx: ExecutionContext) -> PreflightResult:
        """
        Run pre-flight checks.

        Args:
            principal: Principal being offboarded
            ctx: Execution context, used to record informational notices

        Returns:
            PreflightResult with the authenticated identity of each connector

        Raises:
            PreflightError: If a connector is missing or its credentials are unusable,
                or the AWS account does not match ``expected_account_id``
        """
        result = PreflightResult()

        for provider in self.config.enabled_providers():
            connector = self.connectors.get(provider)
            if connector is None:
                raise PreflightError(f"No connector available for {provider.value}", provider)
            try:
                result.identities[provider] = connector.check_credentials()
            except ConnectorError as e:
                raise PreflightError(f"{provider.value} credentials unusable: {e}", provider) from e
            logger.info(f"Pre-flight: {provider.value} credentials OK")

        self._check_account(result)

        try:
            if Provider.GITHUB in result.identities:
                self._check_github(principal, ctx, result)
            if Provider.AWS_IAM in result.identities:
                self._check_iam(principal, ctx, result)
            if Provider.AWS_SSO in result.identities:
                self._check_sso(principal, ctx, result)
        except ConnectorError as e:
            raise PreflightError(f"Pre-flight lookup failed: {e}") from e

        return result

    def _check_account(self, result: PreflightResult):
        expected = self.config.aws.expected_account_id
        identity = result.identities.get(Provider.AWS_IAM)
        if not expected or identity is None:
            return
        actual = str(identity.get("account", ""))
        if actual != expected:
            raise PreflightError(
                f"AWS credentials belong to account {actual}, expected {expected}", Provider.AWS_IAM
            )

    def _notice(self, ctx: ExecutionContext, result: PreflightResult, target: str, message: str):
        result.notices.append(message)
        ctx.record(MODULE, target, message, Outcome.INFO)

    def _check_github(self, principal: Principal, ctx: ExecutionContext, result: PreflightResult):
        user = principal.github_username
        connector = self.connectors[Provider.GITHUB]
        if not connector.get_org_membership(user):
            # Team, repository and credential cleanup still runs.
            self._notice(ctx, result, user,
                         f"GitHub user {user} not found in org {connector.org_name}; "
                         f"continuing with collaborator cleanup")

    def _check_iam(self, principal: Principal, ctx: ExecutionContext, result: PreflightResult):
        user = principal.iam_username
        if self.connectors[Provider.AWS_IAM].get_user(user) is None:
            self._notice(ctx, result, user, f"AWS IAM user {user} not found: already removed")

    def _check_sso(self, principal: Principal, ctx: ExecutionContext, result: PreflightResult):
        user_id = principal.sso_user_id
        if user_id and not self.connectors[Provider.AWS_SSO].get_identity(user_id):
            self._notice(ctx, result, user_id, f"SSO user {user_id} not found: already removed")
