"""
In-memory plan catalog, loaded at startup or by tests.
"""

import logging
from typing import Dict, Iterable, List, Optional

from ...domain.models import PlanDefinition, PlanPrivilege
from ...domain.repositories.plan_catalog import PlanCatalog

logger = logging.getLogger(__name__)


class InMemoryPlanCatalog(PlanCatalog):

    def __init__(self):
        self._plans: Dict[str, PlanDefinition] = {}
        self._privileges: Dict[str, List[PlanPrivilege]] = {}

    def add_plan(self, plan: PlanDefinition, privileges: Iterable[PlanPrivilege] = ()) -> PlanDefinition:
        """Register or replace a plan together with its privileges."""
        grants = list(privileges)
        for grant in grants:
            if grant.plan_id != plan.plan_id:
                raise ValueError(f"Privilege {grant.privilege_name} belongs to plan {grant.plan_id}, not {plan.plan_id}")
        self._plans[plan.plan_id] = plan
        self._privileges[plan.plan_id] = grants
        logger.debug(f"Plan {plan.plan_id} registered with {len(grants)} privilege(s)")
        return plan

    async def get_plan(self, plan_id: str) -> Optional[PlanDefinition]:
        return self._plans.get(plan_id)

    async def get_plan_privileges(self, plan_id: str) -> List[PlanPrivilege]:
        return list(self._privileges.get(plan_id, []))

    async def get_billing_cycle(self, plan_id: str) -> Optional[str]:
        plan = self._plans.get(plan_id)
        return plan.billing_cycle if plan else None
