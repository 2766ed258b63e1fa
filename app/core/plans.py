"""
Static subscription plan catalog.

Prices are declared in whole rupees for display; everything that is charged
or stored uses ``amount_paise``.
"""
from dateutil.relativedelta import relativedelta

from app.core.exceptions import ValidationFailed


PLANS = [
    {
        "id": "monthly",
        "name": "Monthly Plan",
        "price": 299,
        "original_price": 399,
        "duration": "1 month",
        "discount": "25% OFF",
        "popular": False,
        "features": [
            "Access to all subjects for your class",
            "Unlimited video explainers",
            "Practice exercises",
            "Progress tracking",
        ],
        # Calendar duration of one paid window
        "term": relativedelta(months=1),
        # Razorpay plan billing: period + interval, and cycles per subscription
        "period": "monthly",
        "interval": 1,
        "total_count": 12,
    },
    {
        "id": "quarterly",
        "name": "Quarterly Plan",
        "price": 799,
        "original_price": 1197,
        "duration": "3 months",
        "discount": "33% OFF",
        "popular": True,
        "features": [
            "Everything in Monthly",
            "Downloadable notes",
            "Doubt-clearing sessions",
            "Priority support",
        ],
        "term": relativedelta(months=3),
        "period": "monthly",
        "interval": 3,
        "total_count": 4,
    },
    {
        "id": "yearly",
        "name": "Yearly Plan",
        "price": 2499,
        "original_price": 4788,
        "duration": "12 months",
        "discount": "48% OFF",
        "popular": False,
        "features": [
            "Everything in Quarterly",
            "Mock tests and assessments",
            "Personalised learning path",
            "Parent progress reports",
        ],
        "term": relativedelta(years=1),
        "period": "yearly",
        "interval": 1,
        "total_count": 1,
    },
]

PLANS_BY_ID = {plan["id"]: plan for plan in PLANS}


def get_plan(plan_id: str) -> dict:
    plan = PLANS_BY_ID.get(str(getattr(plan_id, "value", plan_id)))
    if plan is None:
        raise ValidationFailed("Invalid plan selected")
    return plan


def amount_paise(plan: dict) -> int:
    """Plan price in the smallest currency unit."""
    return plan["price"] * 100


def public_plan(plan: dict) -> dict:
    return {
        "id": plan["id"],
        "name": plan["name"],
        "price": plan["price"],
        "original_price": plan["original_price"],
        "amount": amount_paise(plan),
        "duration": plan["duration"],
        "discount": plan["discount"],
        "popular": plan["popular"],
        "features": plan["features"],
    }
