# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/repositories/plan_catalog.py
# 🧭 Purpose (Layman Explanation):
# How the lifecycle services look up plans: price, billing rhythm and included privileges.
# 🧪 Purpose (Technical Summary):
# Read-only catalog port. Implementations raise SystemicFailureError when unreachable.
# 🔗 Dependencies:
# - abc (Abstract Base Classes)
# 🔄 Connected Modules / Calls From:
# - Lifecycle manager (plan changes, reactivation), quota tracker (allowances)
# - InMemoryPlanCatalog (implementation)

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models import PlanDefinition, PlanPrivilege


class PlanCatalog(ABC):
    """Read-only access to plan definitions and their privileges."""

    @abstractmethod
    async def get_plan(self, plan_id: str) -> Optional[PlanDefinition]:
        pass

    @abstractmethod
    async def get_plan_privileges(self, plan_id: str) -> List[PlanPrivilege]:
        pass

    @abstractmethod
    async def get_billing_cycle(self, plan_id: str) -> Optional[str]:
        """Billing cycle kind of the plan, or None if the plan is unknown."""
        pass
