"""
Dry-run gate and execution context.

Every mutating provider call is routed through :class:`DryRunGate`. The
simulate flag is carried by an explicit :class:`ExecutionContext` passed to
each call, so a simulating and an executing context can coexist in one
process.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console
from rich.prompt import Prompt

from ..audit.audit_logger import AuditSink
from ..connectors.base_connector import ConnectorResult
from ..exceptions import ConnectorError
from ..models import ActionRecord, GrantKind, Outcome, RevokeResult

logger = logging.getLogger(__name__)


class Confirmer(ABC):
    """Asks an operator to approve an irreversible action."""

    @abstractmethod
    def confirm(self, message: str) -> bool:
        pass


class ConsoleConfirmer(Confirmer):
    """Interactive confirmation; only a typed ``yes`` approves."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def confirm(self, message: str) -> bool:
        self.console.print(f"\n  [bold yellow]WARNING:[/bold yellow] {message}")
        response = Prompt.ask(
            "  Type 'yes' to confirm, anything else to skip",
            console=self.console,
            default="",
            show_default=False,
        )
        if response.strip() != "yes":
            self.console.print("  [cyan]Skipped.[/cyan]")
            return False
        return True


class StaticConfirmer(Confirmer):
    """Fixed answer, for tests and unattended runs."""

    def __init__(self, answer: bool):
        self.answer = answer
        self.prompts = []

    def confirm(self, message: str) -> bool:
        self.prompts.append(message)
        return self.answer


class ExecutionContext(BaseModel):
    """Per-run execution settings threaded through every layer."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    audit: AuditSink
    simulate: bool = False
    allow_hard_delete: bool = False
    confirmer: Confirmer = Field(default_factory=lambda: StaticConfirmer(False))
    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    def record(
        self,
        module: str,
        target: str,
        message: str,
        outcome: Outcome,
        kind: Optional[GrantKind] = None,
        resource_id: Optional[str] = None,
    ) -> ActionRecord:
        return self.audit.record(
            module=module,
            target=target,
            message=message,
            outcome=outcome,
            simulate=self.simulate,
            run_id=self.run_id,
            kind=kind,
            resource_id=resource_id,
        )


class DryRunGate:
    """Runs or simulates one mutating action and records what happened."""

    @staticmethod
    def execute(
        ctx: ExecutionContext,
        module: str,
        target: str,
        description: str,
        action: Callable[[], ConnectorResult],
        kind: Optional[GrantKind] = None,
        resource_id: Optional[str] = None,
    ) -> RevokeResult:
        """
        Invoke ``action`` unless the context is simulating.

        Args:
            ctx: Execution context of the run
            module: Module name used in the ledger
            target: Principal or resource the action applies to
            description: Human text; identical in both modes
            action: Zero-argument callable issuing the provider call

        Returns:
            RevokeResult with ``applied`` True only when the call succeeded
        """
        if ctx.simulate:
            logger.debug(f"Simulating: {description}")
            ctx.record(module, target, description, Outcome.SIMULATED,
                       kind=kind, resource_id=resource_id)
            return RevokeResult(applied=False, outcome=Outcome.SIMULATED, message=description)

        try:
            result = action()
        except ConnectorError as e:
            result = ConnectorResult(False, str(e), error=str(e))

        if result.success:
            outcome, applied, message = Outcome.SUCCESS, True, description
        elif result.not_found:
            # Revoking a grant the provider no longer has is not a fault.
            outcome, applied, message = Outcome.INFO, False, f"{description}: already absent"
        else:
            outcome, applied = Outcome.FAILURE, False
            message = f"{description} failed: {result.error or result.message}"

        ctx.record(module, target, message, outcome, kind=kind, resource_id=resource_id)
        return RevokeResult(applied=applied, outcome=outcome, message=message)
