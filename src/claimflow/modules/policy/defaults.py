"""Default travel policy seeded for new organizations.

Amounts are in the organization's base currency.
"""

from __future__ import annotations

from decimal import Decimal

from claimflow.modules.expenses.models import ExpenseCategory
from claimflow.modules.policy.models import LimitType

DEFAULT_POLICY_NAME = "Travel expense policy"
DEFAULT_POLICY_DESCRIPTION = "Covers expenses incurred while travelling on company business."

DEFAULT_TRAVEL_RULES: list[dict] = [
    {
        "name": "Domestic flight limit",
        "categories": [ExpenseCategory.FLIGHT.value],
        "limit_type": LimitType.PER_ITEM,
        "limit_amount": Decimal("300"),
        "requires_receipt": True,
        "message": "A single economy flight may not exceed 300",
        "suggestion": "Request special approval in advance for business class",
    },
    {
        "name": "Hotel nightly limit",
        "categories": [ExpenseCategory.HOTEL.value],
        "limit_type": LimitType.PER_DAY,
        "limit_amount": Decimal("120"),
        "requires_receipt": True,
        "message": "Hotel stays may not exceed 120 per night",
    },
    {
        "name": "Daily meal allowance",
        "categories": [ExpenseCategory.MEAL.value],
        "limit_type": LimitType.PER_DAY,
        "limit_amount": Decimal("25"),
        "requires_receipt": True,
        "message": "Meals while travelling may not exceed 25 per person per day",
        "suggestion": "Use the client entertainment category for client meals",
    },
    {
        "name": "Single taxi ride limit",
        "categories": [ExpenseCategory.TAXI.value],
        "limit_type": LimitType.PER_ITEM,
        "limit_amount": Decimal("15"),
        "requires_receipt": True,
        "message": "A single local taxi ride may not exceed 15",
        "suggestion": "Late nights or heavy luggage can be approved as an exception",
    },
    {
        "name": "Daily local transport limit",
        "categories": [ExpenseCategory.TAXI.value],
        "limit_type": LimitType.PER_DAY,
        "limit_amount": Decimal("30"),
        "requires_receipt": True,
        "message": "Local transport may not exceed 30 per day in total",
    },
    {
        "name": "Trip total",
        "categories": None,
        "limit_type": LimitType.PER_TRIP,
        "limit_amount": Decimal("5000"),
        "requires_approval": True,
        "message": "Trips above 5000 need approval before booking",
    },
]
