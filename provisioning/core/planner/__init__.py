"""
Planner — resolves change requests into provisioning plans.
"""

from provisioning.core.planner.planner import Planner
from provisioning.core.planner.resolver import (
    compute_operands,
    plan_revert,
    resolve,
)
from provisioning.core.planner.updates import compute_update_request, updates_for

__all__ = [
    "Planner",
    "compute_operands",
    "compute_update_request",
    "plan_revert",
    "resolve",
    "updates_for",
]
