"""Document paths (schema-in-code).

Firestore has no DDL; collections appear on first write. These helpers are
the single source of truth for where each entity lives.
"""

USERS = "users"
ROOMS = "rooms"
TENANTS = "tenants"
MEAL_ENTRIES = "meal_entries"
HYDRATION_ENTRIES = "hydration_entries"
WEIGHT_LOGS = "weight_logs"
ACCOUNT_DELETIONS = "account_deletions"

MESSAGES = "messages"
PLAN_TEMPLATES = "plan_templates"
GUIDELINES = "guidelines"
PRODUCTS = "products"
PRICES = "prices"


def user(uid: str) -> str:
    return f"{USERS}/{uid}"


def room(room_id: str) -> str:
    return f"{ROOMS}/{room_id}"


def room_messages(room_id: str) -> str:
    return f"{ROOMS}/{room_id}/{MESSAGES}"


def tenant(tenant_id: str) -> str:
    return f"{TENANTS}/{tenant_id}"


def site_config(tenant_id: str) -> str:
    return f"{TENANTS}/{tenant_id}/config/site"


def tenant_collection(tenant_id: str, name: str) -> str:
    return f"{TENANTS}/{tenant_id}/{name}"


def hydration_entry(user_id: str, log_date: str) -> str:
    """Deterministic id so a day has exactly one hydration document."""
    return f"{HYDRATION_ENTRIES}/{user_id}_{log_date}"


def account_deletion(uid: str) -> str:
    return f"{ACCOUNT_DELETIONS}/{uid}"
