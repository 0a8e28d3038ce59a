"""
Plan-based monthly analysis credit limits.

Two limit tables are in circulation: the one enforced by billing and the
one shown on the admin screens. They disagree for the paid tiers, so the
active table is chosen explicitly through PLAN_LIMIT_TABLE and the
disagreement is reported at startup until product settles on one.
None means unlimited credits for that plan.
"""
import logging
from typing import Dict, Optional, List

from screener.core import config

logger = logging.getLogger(__name__)

SUPPORTED_PLANS: List[str] = ["free", "starter", "pro", "business", "enterprise"]

DEFAULT_PLAN = "free"

# Limits enforced when credits are spent and reset by billing
BILLING_PLAN_LIMITS: Dict[str, Optional[int]] = {
    "free": 25,
    "starter": 100,
    "pro": 250,
    "business": 1000,
    "enterprise": None,  # Unlimited
}

# Limits shown on the admin subscription screens
ADMIN_PLAN_LIMITS: Dict[str, Optional[int]] = {
    "free": 25,
    "starter": 50,
    "pro": 150,
    "business": 500,
    "enterprise": None,
}

PLAN_LIMIT_TABLES: Dict[str, Dict[str, Optional[int]]] = {
    "billing": BILLING_PLAN_LIMITS,
    "admin": ADMIN_PLAN_LIMITS,
}


def get_limit_table(table_name: Optional[str] = None) -> Dict[str, Optional[int]]:
    """Return the limit table by name (defaults to PLAN_LIMIT_TABLE)."""
    name = (table_name or config.PLAN_LIMIT_TABLE or "billing").lower()
    if name not in PLAN_LIMIT_TABLES:
        raise ValueError(
            f"Unknown plan limit table '{name}'. Expected one of: {', '.join(PLAN_LIMIT_TABLES)}"
        )
    return PLAN_LIMIT_TABLES[name]


def normalize_plan(plan_tier: Optional[str]) -> str:
    """Lower-case the plan and map unknown values to the free plan."""
    plan = (plan_tier or DEFAULT_PLAN).lower()
    return plan if plan in SUPPORTED_PLANS else DEFAULT_PLAN


def get_plan_limit(plan_tier: Optional[str], table_name: Optional[str] = None) -> Optional[int]:
    """
    Get the monthly analysis limit for a plan.

    Args:
        plan_tier: Plan type (free, starter, pro, business, enterprise)
        table_name: Limit table to read (billing or admin)

    Returns:
        Monthly limit (int) or None for unlimited
    """
    table = get_limit_table(table_name)
    return table[normalize_plan(plan_tier)]


def find_plan_limit_mismatches() -> Dict[str, Dict[str, Optional[int]]]:
    """
    Compare the billing and admin tables.

    Returns:
        Mapping of plan -> {"billing": limit, "admin": limit} for every plan
        whose limits differ. Empty when the tables agree.
    """
    mismatches = {}
    for plan in SUPPORTED_PLANS:
        billing_limit = BILLING_PLAN_LIMITS.get(plan)
        admin_limit = ADMIN_PLAN_LIMITS.get(plan)
        if billing_limit != admin_limit:
            mismatches[plan] = {"billing": billing_limit, "admin": admin_limit}
    return mismatches


def report_plan_limit_mismatches() -> Dict[str, Dict[str, Optional[int]]]:
    """Log a configuration warning when the limit tables disagree."""
    mismatches = find_plan_limit_mismatches()
    if mismatches:
        details = ", ".join(
            f"{plan}: billing={limits['billing']} admin={limits['admin']}"
            for plan, limits in mismatches.items()
        )
        logger.warning(
            f"Plan limit tables disagree ({details}); enforcing the "
            f"'{config.PLAN_LIMIT_TABLE}' table until this is resolved"
        )
    return mismatches
