# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/models/plan.py
# 🧭 Purpose (Layman Explanation):
# The catalog entry for a care plan: its name, price and how often it bills.
# 🧪 Purpose (Technical Summary):
# Read model returned by the plan catalog; used for plan changes and proration.
# 🔗 Dependencies:
# pydantic, decimal
# 🔄 Connected Modules / Calls From:
# plan_catalog.py, lifecycle_manager.py (plan change), lifecycle_orchestrator.py

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, field_validator

from .subscription import BillingCycle


class PlanDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    plan_id: str
    name: str
    price: Decimal
    billing_cycle: str = BillingCycle.MONTHLY.value
    is_active: bool = True

    @field_validator('price')
    @classmethod
    def validate_price(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError('Plan price cannot be negative')
        return v
