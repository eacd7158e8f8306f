"""Field masking rules.

Masked field sets depend only on the resource type, the honored PII tier,
whether the resource carries PII and whether the caller holds a financial
permission. The result is a frozenset, so repeated calls with the same
inputs always produce the same mask.
"""

from typing import Final

from beartype import beartype

from ..catalog.permissions import FINANCIAL_APPROVAL_PERMISSIONS, Permission
from ..models.access import PIITier
from ..models.policy import DataClass, ResourceType

# Identification numbers, masked whenever the honored tier is below full.
IDENTIFICATION_FIELDS: Final[dict[ResourceType, frozenset[str]]] = {
    ResourceType.VEHICLE: frozenset({"vin", "engine_number", "registration_number"}),
    ResourceType.DRIVER: frozenset({"license_number", "national_id", "plate_number"}),
    ResourceType.PASSENGER: frozenset({"national_id"}),
    ResourceType.USER_PROFILE: frozenset({"national_id"}),
    ResourceType.PAYOUT: frozenset({"tax_id"}),
    ResourceType.SUPPORT_CASE: frozenset({"customer_reference"}),
    ResourceType.LOCATION: frozenset({"device_id"}),
    ResourceType.TRIP: frozenset({"payment_reference"}),
}

# Acquisition costs and account details, masked unless the caller has finance access.
FINANCIAL_FIELDS: Final[dict[ResourceType, frozenset[str]]] = {
    ResourceType.VEHICLE: frozenset(
        {"purchase_price", "insurance_policy_number", "loan_details", "depreciation"}
    ),
    ResourceType.DRIVER: frozenset({"bank_account", "earnings_breakdown"}),
    ResourceType.PAYOUT: frozenset({"bank_account", "amount_breakdown"}),
    ResourceType.TRIP: frozenset({"fare_breakdown"}),
}

# Personal contact data, masked on PII-bearing resources.
PERSONAL_FIELDS: Final[dict[ResourceType, frozenset[str]]] = {
    ResourceType.VEHICLE: frozenset({"owner_contact", "driver_personal_info"}),
    ResourceType.DRIVER: frozenset({"phone", "email", "home_address"}),
    ResourceType.PASSENGER: frozenset({"phone", "email", "home_address"}),
    ResourceType.USER_PROFILE: frozenset({"phone", "email"}),
    ResourceType.TRIP: frozenset(
        {"passenger_phone", "pickup_exact_location", "dropoff_exact_location"}
    ),
    ResourceType.SUPPORT_CASE: frozenset({"customer_phone", "customer_email"}),
    ResourceType.LOCATION: frozenset({"raw_coordinates"}),
    ResourceType.PAYOUT: frozenset({"payee_name"}),
}

# Finance-adjacent permissions that unlock financial fields.
_FINANCIAL_VIEW_PERMISSIONS: Final = FINANCIAL_APPROVAL_PERMISSIONS | frozenset(
    {
        Permission.VIEW_VEHICLE_COST_ANALYSIS,
        Permission.VIEW_VEHICLE_FINANCIAL_REPORTS,
        Permission.MANAGE_VEHICLE_DEPRECIATION,
    }
)


@beartype
def holds_financial_access(permissions: frozenset[Permission]) -> bool:
    return Permission.ALL in permissions or bool(permissions & _FINANCIAL_VIEW_PERMISSIONS)


@beartype
def requires_masking(data_class: DataClass, contains_pii: bool, honored_tier: PIITier) -> bool:
    """Masking applies to PII or confidential+ data below the full tier."""
    if honored_tier is PIITier.FULL:
        return False
    return contains_pii or data_class.at_least(DataClass.CONFIDENTIAL)


@beartype
def mask_fields_for(
    resource_type: ResourceType,
    honored_tier: PIITier,
    *,
    contains_pii: bool,
    financial_access: bool,
) -> frozenset[str]:
    """Field names to withhold for the given resource and tier."""
    if honored_tier is PIITier.FULL:
        return frozenset()
    fields = set(IDENTIFICATION_FIELDS.get(resource_type, frozenset()))
    if not financial_access:
        fields |= FINANCIAL_FIELDS.get(resource_type, frozenset())
    if contains_pii:
        fields |= PERSONAL_FIELDS.get(resource_type, frozenset())
    return frozenset(fields)
