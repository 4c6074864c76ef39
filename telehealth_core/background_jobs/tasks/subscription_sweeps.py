# 📄 File: telehealth_core/background_jobs/tasks/subscription_sweeps.py
# 🧭 Purpose (Layman Explanation):
# The scheduled chores: every few minutes expire subscriptions whose payment never came or
# whose trial ended, and every hour refill the allowances of plans whose period rolled over.
# 🧪 Purpose (Technical Summary):
# Celery tasks wrapping LifecycleOrchestrator sweeps. Each run opens the lifecycle services
# through a registered async context factory, runs the sweep in a fresh event loop and
# returns the SweepResult as a dict. Systemic failures are retried with exponential backoff.
# 🔗 Dependencies:
# celery, asyncio, LifecycleServices, SystemicFailureError
# 🔄 Connected Modules / Calls From:
# celery_config.py beat schedule, worker start-up (configure_services)

import asyncio
import logging
from typing import Any, AsyncContextManager, Awaitable, Callable, Dict, Optional

from celery import shared_task

from telehealth_core.modules.subscription_lifecycle.dependencies import LifecycleServices
from telehealth_core.modules.subscription_lifecycle.domain.models.result import SweepResult
from telehealth_core.shared.core.exceptions import SystemicFailureError
from telehealth_core.shared.utils.logging import get_logger

logger = logging.getLogger(__name__)
events_logger = get_logger(__name__)

ServicesFactory = Callable[[], AsyncContextManager[LifecycleServices]]
Sweep = Callable[[LifecycleServices], Awaitable[SweepResult]]

_services_factory: Optional[ServicesFactory] = None


def configure_services(factory: Optional[ServicesFactory]) -> None:
    """
    Register how sweep tasks obtain their services.

    Called once at worker start-up with a factory that opens the database
    and plan catalog and closes them when the context exits.
    """
    global _services_factory
    _services_factory = factory


async def _run_sweep(name: str, sweep: Sweep) -> Dict[str, Any]:
    if _services_factory is None:
        raise SystemicFailureError(
            "Sweep services are not configured; call configure_services() at worker start-up",
            component="scheduler",
        )

    async with _services_factory() as services:
        result = await sweep(services)

    events_logger.log_business_event(
        "sweep_completed",
        f"{name} finished",
        extra=result.model_dump(exclude={"errors"}),
    )
    for error in result.errors:
        kind = error.error_kind.value if error.error_kind else "unknown"
        logger.warning(f"{name} item failed: {error.subscription_id} ({kind}): {error.message}")
    return result.model_dump(mode="json")


def _run_with_retry(task, name: str, sweep: Sweep) -> Dict[str, Any]:
    try:
        return asyncio.run(_run_sweep(name, sweep))
    except SystemicFailureError as e:
        logger.error(f"{name} aborted: {e.message}")
        raise task.retry(exc=e, countdown=60 * (2 ** task.request.retries))


@shared_task(bind=True, max_retries=3)
def sweep_subscription_expirations(self) -> Dict[str, Any]:
    """
    Expire Active subscriptions past their billing date and end elapsed trials.

    Returns:
        Dict[str, Any]: SweepResult fields
    """
    return _run_with_retry(
        self,
        "Expiration sweep",
        lambda services: services.orchestrator.process_expiration_sweep(),
    )


@shared_task(bind=True, max_retries=3)
def reset_privilege_usage(self) -> Dict[str, Any]:
    """Zero privilege counters whose usage period has ended."""
    return _run_with_retry(
        self,
        "Usage reset sweep",
        lambda services: services.orchestrator.process_usage_reset_sweep(),
    )
