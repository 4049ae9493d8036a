"""BookedSolid: billing reconciliation and admin audit service."""

from bookedsolid.billing.plans import PlanCatalog, PlanTier, overage_charge
from bookedsolid.billing.stripe_webhook import verify_stripe_signature
from bookedsolid.permissions.capabilities import AdminRole, Capability, has_permission

__all__ = [
    "PlanCatalog",
    "PlanTier",
    "overage_charge",
    "verify_stripe_signature",
    "AdminRole",
    "Capability",
    "has_permission",
]
__version__ = "0.1.0"
