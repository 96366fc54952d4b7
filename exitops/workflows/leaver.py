"""
Leaver Workflow for exitops.

Offboards one departing user: validates the configuration, runs pre-flight
checks, revokes access provider by provider in a fixed order and, unless
simulating, verifies that nothing was left behind.
"""

import logging
from typing import Dict, Mapping, Optional

from botocore.exceptions import BotoCoreError

from ..audit.audit_logger import AuditLogger, AuditSink
from ..connectors import build_connectors
from ..connectors.base_connector import BaseConnector
from ..engine.config_loader import OffboardConfig, validate_config
from ..engine.gate import Confirmer, ConsoleConfirmer, ExecutionContext
from ..engine.preflight import PreflightChecker
from ..exceptions import ConfigValidationError, PreflightError, ResidualFindingError, RevokeError
from ..models import ExitCode, ModuleResult, ModuleStatus, Outcome, Provider, RunOutcome, utcnow
from .aws_iam import AWSIAMGrantSource, aws_iam_module
from .aws_sso import AWSSSOGrantSource, aws_sso_module
from .base_workflow import GrantSource, ProviderModule
from .github import GitHubGrantSource, github_module
from .verifier import AccessVerifier

logger = logging.getLogger(__name__)

PROVIDER_ORDER = (Provider.GITHUB, Provider.AWS_IAM, Provider.AWS_SSO)


class LeaverWorkflow:
    """
    Workflow for offboarding a departing user.

    Revokes GitHub, AWS IAM and AWS SSO access for the configured principal
    and re-verifies the result.
    """

    def __init__(
        self,
        config: OffboardConfig,
        connectors: Optional[Mapping[Provider, BaseConnector]] = None,
        audit: Optional[AuditSink] = None,
        confirmer: Optional[Confirmer] = None,
    ):
        """
        Initialize the workflow.

        Args:
            config: Offboarding configuration
            connectors: Connectors by provider; built from ``config`` when omitted
            audit: Audit sink; the ledger at ``config.ledger_path`` when omitted
            confirmer: Hard-delete confirmation; interactive console when omitted
        """
        self.config = config
        self.connectors = dict(connectors) if connectors is not None else None
        self.audit = audit if audit is not None else AuditLogger(config.ledger_path)
        self.confirmer = confirmer or ConsoleConfirmer()

    def execute(self, simulate: bool = False, allow_hard_delete: bool = False) -> RunOutcome:
        """
        Execute the leaver workflow.

        Args:
            simulate: Record intended actions without calling any mutating API
            allow_hard_delete: Permit deletion of the IAM user and SSO identity

        Returns:
            RunOutcome with module results, verification and exit code
        """
        ctx = ExecutionContext(audit=self.audit, simulate=simulate,
                               allow_hard_delete=allow_hard_delete, confirmer=self.confirmer)
        outcome = RunOutcome(run_id=ctx.run_id, simulate=simulate)
        logger.info(f"Starting leaver workflow {ctx.run_id} (simulate={simulate})")

        if not self._prepare(ctx, outcome):
            return outcome

        principal = outcome.principal
        for provider in PROVIDER_ORDER:
            if not self.config.is_enabled(provider):
                logger.info(f"[{provider.value}] Disabled for this run")
                outcome.modules.append(ModuleResult(provider=provider, status=ModuleStatus.SKIPPED,
                                                    completed_at=utcnow()))
                continue

            result = self._build_module(provider).run(principal, ctx)
            outcome.modules.append(result)
            if result.failed:
                failed = RevokeError(f"[{provider.value}] {result.count(Outcome.FAILURE)} grant(s) failed")
                outcome.errors.append(result.error or str(failed))
            outcome.escalate(result.exit_code)

        if simulate:
            logger.info("Simulate mode: no changes made, verification skipped")
        else:
            self._verify(principal, ctx, outcome)

        outcome.completed_at = utcnow()
        logger.info(f"Completed leaver workflow {ctx.run_id}: exit code {int(outcome.exit_code)}")
        return outcome

    def verify(self) -> RunOutcome:
        """
        Standalone verification: no revocation, any ACTIVE grant is residual.

        Returns:
            RunOutcome carrying only the verification report
        """
        ctx = ExecutionContext(audit=self.audit, confirmer=self.confirmer)
        outcome = RunOutcome(run_id=ctx.run_id)

        if not self._prepare(ctx, outcome):
            return outcome

        self._verify(outcome.principal, ctx, outcome)
        outcome.completed_at = utcnow()
        return outcome

    def _prepare(self, ctx: ExecutionContext, outcome: RunOutcome) -> bool:
        """Validate configuration and run pre-flight checks; False stops the run."""
        errors = validate_config(self.config)
        if errors:
            error = ConfigValidationError(errors)
            logger.error(str(error))
            ctx.record("CONFIG", "CONFIG", str(error), Outcome.FAILURE)
            outcome.errors.extend(errors)
            outcome.escalate(ExitCode.CONFIG_INVALID)
            outcome.completed_at = utcnow()
            return False

        outcome.principal = self.config.principal()

        try:
            if self.connectors is None:
                try:
                    self.connectors = build_connectors(self.config)
                except (ValueError, BotoCoreError) as e:
                    raise PreflightError(f"Could not initialise connectors: {e}") from e
            PreflightChecker(self.config, self.connectors).check(outcome.principal, ctx)
        except PreflightError as e:
            logger.error(f"Pre-flight failed: {e}")
            ctx.record("PREFLIGHT", outcome.principal.display_name(), str(e), Outcome.FAILURE)
            outcome.errors.append(str(e))
            outcome.escalate(ExitCode.PREFLIGHT_FAILED)
            outcome.completed_at = utcnow()
            return False

        return True

    def _verify(self, principal, ctx: ExecutionContext, outcome: RunOutcome) -> None:
        report = AccessVerifier(self._grant_sources()).verify(principal, ctx)
        outcome.verification = report
        if report.findings:
            error = ResidualFindingError(report.findings)
            logger.error(str(error))
            outcome.errors.append(str(error))
        outcome.escalate(report.exit_code)

    def _build_module(self, provider: Provider) -> ProviderModule:
        connector = self.connectors[provider]
        if provider == Provider.GITHUB:
            return github_module(connector, per_page=self.config.github.per_page)
        if provider == Provider.AWS_IAM:
            return aws_iam_module(connector)
        return aws_sso_module(connector)

    def _grant_sources(self) -> Dict[Provider, GrantSource]:
        """Fresh GrantSource instances for the verifier."""
        sources: Dict[Provider, GrantSource] = {}
        for provider in PROVIDER_ORDER:
            if not self.config.is_enabled(provider):
                continue
            connector = self.connectors[provider]
            if provider == Provider.GITHUB:
                sources[provider] = GitHubGrantSource(connector, per_page=self.config.github.per_page)
            elif provider == Provider.AWS_IAM:
                sources[provider] = AWSIAMGrantSource(connector)
            else:
                sources[provider] = AWSSSOGrantSource(connector)
        return sources
