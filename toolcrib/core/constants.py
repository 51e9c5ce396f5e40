"""Shared role and status constants."""

ROLE_ADMINISTRATOR = "Administrator"
ROLE_OPERATOR = "Operator"

ROLE_CHOICES = (
    ROLE_ADMINISTRATOR,
    ROLE_OPERATOR,
)

LOAN_STATUS_ACTIVE = "Active"
LOAN_STATUS_RETURNED = "Returned"

LOAN_STATUS_CHOICES = (
    LOAN_STATUS_ACTIVE,
    LOAN_STATUS_RETURNED,
)

TOOL_STATUS_DEFAULT = "In inventory"


def normalize_role(value: str | None) -> str | None:
    """Match a role name case-insensitively; ``None`` when it is unknown."""

    cleaned = (value or "").strip().casefold()
    for role in ROLE_CHOICES:
        if role.casefold() == cleaned:
            return role
    return None


def normalize_loan_status(value: str | None) -> str | None:
    cleaned = (value or "").strip().casefold()
    for status in LOAN_STATUS_CHOICES:
        if status.casefold() == cleaned:
            return status
    return None


__all__ = [
    "LOAN_STATUS_ACTIVE",
    "LOAN_STATUS_CHOICES",
    "LOAN_STATUS_RETURNED",
    "ROLE_ADMINISTRATOR",
    "ROLE_CHOICES",
    "ROLE_OPERATOR",
    "TOOL_STATUS_DEFAULT",
    "normalize_loan_status",
    "normalize_role",
]
