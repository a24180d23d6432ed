"""Actions — side effects of a provisioning transaction.

Public re-exports for convenient access.
"""

from provisioning.actions.base import ActionContext, ProvisioningAction
from provisioning.actions.mock import MockAction
from provisioning.actions.registry import ActionRegistry

__all__ = [
    "ActionContext",
    "ActionRegistry",
    "MockAction",
    "ProvisioningAction",
]
