"""
Domain models — Pydantic types for the provisioning engine.

All models are re-exported here for convenient access:

    from provisioning.core.models import InstallableUnit, Profile, Operand, Status
"""

from provisioning.core.models.action import ActionDescriptor
from provisioning.core.models.context import ProvisioningContext
from provisioning.core.models.operand import (
    INCLUSION_PROPERTY,
    AnyOperand,
    Operand,
    PropertyOperand,
)
from provisioning.core.models.plan import (
    Explanation,
    ProvisioningPlan,
    RequestSeverity,
    RequestStatus,
)
from provisioning.core.models.profile import (
    PROP_INSTALL_FOLDER,
    InclusionRule,
    Profile,
    ProfileEntry,
)
from provisioning.core.models.request import (
    InvalidChangeRequestError,
    ProfileChangeRequest,
)
from provisioning.core.models.status import MultiStatus, Severity, Status
from provisioning.core.models.unit import (
    NAMESPACE_UNIT_ID,
    InstallableUnit,
    ProvidedCapability,
    RequiredCapability,
    TouchpointInstruction,
    unit_requirement,
)
from provisioning.core.models.version import Version, VersionRange

__all__ = [
    "ActionDescriptor",
    "INCLUSION_PROPERTY",
    "NAMESPACE_UNIT_ID",
    "PROP_INSTALL_FOLDER",
    "AnyOperand",
    "Explanation",
    "InclusionRule",
    "InstallableUnit",
    "InvalidChangeRequestError",
    "MultiStatus",
    "Operand",
    "Profile",
    "ProfileChangeRequest",
    "ProfileEntry",
    "PropertyOperand",
    "ProvidedCapability",
    "ProvisioningContext",
    "ProvisioningPlan",
    "RequestSeverity",
    "RequestStatus",
    "RequiredCapability",
    "Severity",
    "Status",
    "TouchpointInstruction",
    "Version",
    "VersionRange",
    "unit_requirement",
]
