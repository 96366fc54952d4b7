"""
Access Verifier for exitops.

Re-queries every enabled provider for grants the principal still holds. The
verifier works from its own GrantSource instances and trusts nothing reported
by the revoke pass, so a delete that returned success without taking effect
still shows up as residual access.
"""

import logging
from typing import Dict, Optional

from ..engine.gate import ExecutionContext
from ..exceptions import EnumerationError
from ..models import Outcome, Principal, Provider, ResidualFinding, VerificationReport
from .base_workflow import GrantSource

logger = logging.getLogger(__name__)

MODULE = "VERIFY"


class AccessVerifier:
    """Independent post-revocation check for residual access."""

    def __init__(self, sources: Dict[Provider, GrantSource]):
        self.sources = sources

    def verify(self, principal: Principal, ctx: ExecutionContext) -> VerificationReport:
        """
        Verify that ``principal`` holds no grant at any configured provider.

        A provider that cannot be enumerated is reported as incomplete, which
        makes the report unclean.

        Args:
            principal: Principal to verify
            ctx: Execution context; records go to its audit sink

        Returns:
            VerificationReport
        """
        report = VerificationReport(principal=principal)
        logger.info(f"Verifying offboarding for: {principal.display_name()}")

        for provider, source in self.sources.items():
            subject = principal.identifier_for(provider) or "UNKNOWN"
            report.checked.append(provider)
            try:
                grants = source.list_grants(principal, ctx)
            except EnumerationError as e:
                report.incomplete.append(provider)
                ctx.record(MODULE, subject, f"{provider.value}: verification incomplete: {e}", Outcome.FAILURE)
                continue

            for grant in grants:
                message = f"RESIDUAL: {provider.value} {grant.kind.value} '{grant.resource_id}' still active"
                report.findings.append(ResidualFinding(grant=grant, message=message))
                ctx.record(MODULE, str(grant.scope), message, Outcome.FAILURE,
                           kind=grant.kind, resource_id=grant.resource_id)

            if not grants:
                ctx.record(MODULE, subject, f"{provider.value} access: clean", Outcome.SUCCESS)

        if report.clean:
            logger.info(f"No residual access detected for {principal.display_name()}")
        else:
            logger.warning(
                f"Residual access for {principal.display_name()}: {len(report.findings)} grant(s), "
                f"{len(report.incomplete)} provider(s) not verifiable"
            )
        return report


def verify_principal(config, connectors: Optional[Dict] = None, audit=None):
    """
    Run a standalone verification sweep for the configured principal.

    Args:
        config: OffboardConfig
        connectors: Connectors by provider (built from config when omitted)
        audit: AuditSink (the configured ledger when omitted)

    Returns:
        RunOutcome whose exit code is 0 when clean, 99 on residual access
    """
    from .leaver import LeaverWorkflow

    return LeaverWorkflow(config, connectors=connectors, audit=audit).verify()
