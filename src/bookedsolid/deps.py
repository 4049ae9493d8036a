"""Dependency injection singletons for BookedSolid."""

from bookedsolid.admin.gateway import AdminGateway
from bookedsolid.admin.invitations import InvitationService
from bookedsolid.admin.settings_service import SettingsService
from bookedsolid.audit.service import AuditService
from bookedsolid.billing.plans import PlanCatalog
from bookedsolid.billing.reconciliation import ReconciliationService
from bookedsolid.billing.service import BillingService
from bookedsolid.billing.stripe_client import StripeClient
from bookedsolid.calls.service import CallService
from bookedsolid.clients.service import ClientService
from bookedsolid.common.config import get_settings
from bookedsolid.common.database import DatabaseManager
from bookedsolid.common.email import EmailSender
from bookedsolid.users.service import UserService

_db: DatabaseManager | None = None
_audit: AuditService | None = None
_catalog: PlanCatalog | None = None
_stripe: StripeClient | None = None
_billing: BillingService | None = None
_reconciliation: ReconciliationService | None = None
_email: EmailSender | None = None
_users: UserService | None = None
_invitations: InvitationService | None = None
_admin_settings: SettingsService | None = None
_clients: ClientService | None = None
_calls: CallService | None = None
_gateway: AdminGateway | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_audit_service() -> AuditService:
    global _audit
    if _audit is None:
        _audit = AuditService(get_settings())
    return _audit


def get_plan_catalog() -> PlanCatalog:
    global _catalog
    if _catalog is None:
        _catalog = PlanCatalog.from_settings(get_settings())
    return _catalog


def get_stripe_client() -> StripeClient:
    global _stripe
    if _stripe is None:
        _stripe = StripeClient(get_settings())
    return _stripe


def get_billing_service() -> BillingService:
    global _billing
    if _billing is None:
        _billing = BillingService(
            get_settings(),
            catalog=get_plan_catalog(),
            stripe_client=get_stripe_client(),
        )
    return _billing


def get_reconciliation_service() -> ReconciliationService:
    global _reconciliation
    if _reconciliation is None:
        _reconciliation = ReconciliationService(get_settings(), catalog=get_plan_catalog())
    return _reconciliation


def get_email_sender() -> EmailSender:
    global _email
    if _email is None:
        _email = EmailSender.from_settings(get_settings())
    return _email


def get_user_service() -> UserService:
    global _users
    if _users is None:
        _users = UserService(get_settings(), email_sender=get_email_sender())
    return _users


def get_invitation_service() -> InvitationService:
    global _invitations
    if _invitations is None:
        _invitations = InvitationService(
            get_settings(), get_user_service(), email_sender=get_email_sender(),
        )
    return _invitations


def get_settings_service() -> SettingsService:
    global _admin_settings
    if _admin_settings is None:
        _admin_settings = SettingsService()
    return _admin_settings


def get_client_service() -> ClientService:
    global _clients
    if _clients is None:
        _clients = ClientService(get_plan_catalog())
    return _clients


def get_call_service() -> CallService:
    global _calls
    if _calls is None:
        _calls = CallService()
    return _calls


def get_admin_gateway() -> AdminGateway:
    global _gateway
    if _gateway is None:
        _gateway = AdminGateway(get_audit_service())
    return _gateway


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _audit, _catalog, _stripe, _billing, _reconciliation, _email
    global _users, _invitations, _admin_settings, _clients, _calls, _gateway
    _db = None
    _audit = None
    _catalog = None
    _stripe = None
    _billing = None
    _reconciliation = None
    _email = None
    _users = None
    _invitations = None
    _admin_settings = None
    _clients = None
    _calls = None
    _gateway = None
