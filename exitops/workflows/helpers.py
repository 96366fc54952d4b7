"""
Workflow Helper Functions for exitops.

Paging and summary utilities shared by the provider modules, the
orchestrator and the CLI.
"""

import logging
from typing import Any, Callable, Dict, List, TypeVar

from ..models import ModuleStatus, Outcome, RunOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 100


def paginate(fetch_page: Callable[[int, int], List[T]], per_page: int = DEFAULT_PAGE_SIZE) -> List[T]:
    """
    Collect every item from a page-indexed listing.

    Pages are requested from index 0 until one comes back shorter than
    ``per_page``.

    Args:
        fetch_page: Callable taking (page, per_page) and returning one page
        per_page: Page size

    Returns:
        All items, in provider order
    """
    if per_page < 1:
        raise ValueError("per_page must be positive")

    items: List[T] = []
    page = 0
    while True:
        batch = fetch_page(page, per_page)
        items.extend(batch)
        if len(batch) < per_page:
            break
        page += 1
    logger.debug(f"Paged {len(items)} item(s) over {page + 1} page(s)")
    return items


def create_run_summary(outcome: RunOutcome) -> Dict[str, Any]:
    """
    Create a summary of one offboarding run.

    Args:
        outcome: RunOutcome from the orchestrator

    Returns:
        Dictionary with per-module counts and the final status
    """
    modules = []
    for module in outcome.modules:
        modules.append({
            'provider': module.provider.value,
            'status': module.status.value,
            'grants': len(module.results),
            'succeeded': module.count(Outcome.SUCCESS),
            'simulated': module.count(Outcome.SIMULATED),
            'skipped': module.count(Outcome.INFO),
            'failed': module.count(Outcome.FAILURE),
            'error': module.error,
        })

    verification = None
    if outcome.verification is not None:
        verification = {
            'clean': outcome.verification.clean,
            'residual': [f.message for f in outcome.verification.findings],
            'incomplete': [p.value for p in outcome.verification.incomplete],
        }

    return {
        'run_id': outcome.run_id,
        'principal': outcome.principal.display_name() if outcome.principal else None,
        'simulate': outcome.simulate,
        'started_at': outcome.started_at.isoformat() if outcome.started_at else None,
        'completed_at': outcome.completed_at.isoformat() if outcome.completed_at else None,
        'modules': modules,
        'failed_modules': [m.provider.value for m in outcome.modules
                           if m.status in (ModuleStatus.PARTIAL_FAILURE, ModuleStatus.ABORTED)],
        'verified': outcome.verified,
        'verification': verification,
        'exit_code': int(outcome.exit_code),
        'errors': list(outcome.errors),
    }
