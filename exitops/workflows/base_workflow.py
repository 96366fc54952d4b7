"""
Base Workflow Classes for exitops.

A provider is offboarded by pairing a GrantSource (pure reads: which scopes
exist, and does the principal hold a grant in each) with a Revoker (the
mutating calls that remove one grant). ProviderModule drives the pair through
ENUMERATE -> (CHECK -> REVOKE)* -> DONE and reports a module-level status.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

from ..connectors.base_connector import ConnectorResult
from ..engine.gate import DryRunGate, ExecutionContext
from ..exceptions import ConnectorError, EnumerationError
from ..models import (
    Grant,
    GrantKind,
    GrantResult,
    GrantScope,
    GrantStatus,
    ModuleResult,
    ModuleStatus,
    Outcome,
    Principal,
    Provider,
    RevokeResult,
    utcnow,
)

logger = logging.getLogger(__name__)

Action = Tuple[str, Callable[[], ConnectorResult]]


class GrantSource(ABC):
    """Read-only view of the grants a principal holds at one provider."""

    provider: Provider

    # Recorded as INFO when a run finds nothing of that kind.
    empty_category_messages: Dict[GrantKind, str] = {}

    @abstractmethod
    def scopes(self, principal: Principal, ctx: ExecutionContext) -> List[GrantScope]:
        """
        Enumerate every scope that could hold a grant for ``principal``.

        Listing endpoints are paged exhaustively. A principal unknown to the
        provider yields an empty list.

        Raises:
            EnumerationError: If a listing call fails
        """
        pass

    @abstractmethod
    def holds(self, principal: Principal, scope: GrantScope) -> bool:
        """Membership check for one scope. May raise ConnectorError."""
        pass

    def check(self, principal: Principal, scope: GrantScope) -> Grant:
        """Query the provider for the grant in ``scope``."""
        status = GrantStatus.ACTIVE if self.holds(principal, scope) else GrantStatus.ABSENT
        return Grant(
            scope=scope,
            principal_id=scope.attributes.get("principal_id") or principal.identifier_for(self.provider) or "",
            status=status,
        )

    def list_grants(self, principal: Principal, ctx: ExecutionContext) -> List[Grant]:
        """
        Fresh list of the non-destructive grants the principal currently holds.

        Identity-level scopes (the user object itself) are not access and are
        left out.

        Raises:
            EnumerationError: If a listing or membership call fails
        """
        grants = []
        for scope in self.scopes(principal, ctx):
            if scope.is_destructive:
                continue
            try:
                grant = self.check(principal, scope)
            except ConnectorError as e:
                raise EnumerationError(self.provider, f"Check of {scope} failed: {e}") from e
            if grant.is_active:
                grants.append(grant)
        return grants

    def _enumeration_failed(self, what: str, error: Exception) -> EnumerationError:
        logger.error(f"[{self.provider.value}] Failed to list {what}: {error}")
        return EnumerationError(self.provider, f"Failed to list {what}: {error}")


class Revoker(ABC):
    """Mutating side of a provider: removes one grant at a time."""

    provider: Provider

    @abstractmethod
    def actions(self, grant: Grant) -> List[Action]:
        """
        Provider calls that remove ``grant``, in order.

        Returns:
            (description, zero-argument callable) pairs
        """
        pass

    def confirmation_message(self, grant: Grant) -> str:
        return f"Permanently delete {grant.kind.value} '{grant.resource_id}'. This cannot be undone."

    def revoke(self, grant: Grant, ctx: ExecutionContext) -> RevokeResult:
        """
        Revoke one grant.

        Args:
            grant: Grant to revoke
            ctx: Execution context of the run

        Returns:
            RevokeResult; ``applied`` is True only when the provider state changed
        """
        if not grant.is_active:
            return RevokeResult(applied=False, outcome=Outcome.INFO,
                                message=f"{grant.scope} already absent")

        module = self.provider.value
        target = str(grant.scope)

        if grant.scope.is_destructive:
            if not ctx.allow_hard_delete:
                message = (f"{grant.kind.value} '{grant.resource_id}' NOT deleted "
                           f"(re-run with --confirm-hard-delete to hard-delete)")
                ctx.record(module, target, message, Outcome.INFO,
                           kind=grant.kind, resource_id=grant.resource_id)
                return RevokeResult(applied=False, outcome=Outcome.INFO, message=message)

            if not ctx.simulate and not ctx.confirmer.confirm(self.confirmation_message(grant)):
                message = f"Hard delete of {grant.kind.value} '{grant.resource_id}' skipped by operator"
                ctx.record(module, target, message, Outcome.INFO,
                           kind=grant.kind, resource_id=grant.resource_id)
                return RevokeResult(applied=False, outcome=Outcome.INFO, message=message)

        applied = False
        result: Optional[RevokeResult] = None
        for description, action in self.actions(grant):
            result = DryRunGate.execute(ctx, module, target, description, action,
                                        kind=grant.kind, resource_id=grant.resource_id)
            applied = applied or result.applied
            if result.outcome in (Outcome.FAILURE, Outcome.INFO):
                # The grant's remaining calls depend on this one.
                break

        if result is None:
            return RevokeResult(applied=False, outcome=Outcome.INFO, message=f"Nothing to revoke for {target}")
        return RevokeResult(applied=applied, outcome=result.outcome, message=result.message)


class ProviderModule:
    """
    Offboards one principal from one provider.

    Enumeration failure aborts the module. Per-grant failures are recorded and
    the loop moves on to the next scope.
    """

    def __init__(self, source: GrantSource, revoker: Revoker):
        if source.provider != revoker.provider:
            raise ValueError(f"GrantSource for {source.provider} paired with Revoker for {revoker.provider}")
        self.source = source
        self.revoker = revoker
        self.provider = source.provider

    def run(self, principal: Principal, ctx: ExecutionContext) -> ModuleResult:
        """
        Run ENUMERATE -> (CHECK -> REVOKE)* for ``principal``.

        Args:
            principal: Principal being offboarded
            ctx: Execution context of the run

        Returns:
            ModuleResult with status OK, PARTIAL_FAILURE or ABORTED
        """
        module = self.provider.value
        subject = principal.identifier_for(self.provider) or "UNKNOWN"
        result = ModuleResult(provider=self.provider, status=ModuleStatus.OK)
        logger.info(f"[{module}] Starting offboarding of {subject} (simulate={ctx.simulate})")

        try:
            scopes = self.source.scopes(principal, ctx)
        except EnumerationError as e:
            ctx.record(module, subject, str(e), Outcome.FAILURE)
            result.status = ModuleStatus.ABORTED
            result.error = str(e)
            result.completed_at = utcnow()
            return result

        found: Dict[GrantKind, int] = {}
        for scope in scopes:
            try:
                grant = self.source.check(principal, scope)
            except ConnectorError as e:
                message = f"Could not check {scope.kind.value} '{scope.resource_id}': {e}"
                ctx.record(module, str(scope), message, Outcome.FAILURE,
                           kind=scope.kind, resource_id=scope.resource_id)
                failed = Grant(scope=scope, principal_id=subject)
                result.results.append(GrantResult(
                    grant=failed, result=RevokeResult(applied=False, outcome=Outcome.FAILURE, message=message),
                ))
                continue

            if not grant.is_active:
                continue

            found[scope.kind] = found.get(scope.kind, 0) + 1
            revoke_result = self.revoker.revoke(grant, ctx)
            result.results.append(GrantResult(grant=grant, result=revoke_result))

        if scopes:
            for kind, message in self.source.empty_category_messages.items():
                if not found.get(kind):
                    ctx.record(module, subject, message, Outcome.INFO)

        if result.count(Outcome.FAILURE):
            result.status = ModuleStatus.PARTIAL_FAILURE
        result.completed_at = utcnow()

        logger.info(
            f"[{module}] Finished: {len(result.results)} grant(s), "
            f"{result.count(Outcome.FAILURE)} failure(s), status {result.status.value}"
        )
        return result
