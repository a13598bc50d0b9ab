"""Schemas module - Pydantic models for custody payloads and merchants."""

from payflow.schemas.custody import (
    Activity,
    ActivityResponse,
    OrganizationResponse,
    PoliciesResponse,
    SubOrgIdsResponse,
    WalletAccountsResponse,
    WalletsResponse,
)
from payflow.schemas.merchant import (
    MerchantAccount,
    RestrictionInfo,
    SourceWallet,
    TreasuryWallet,
)

__all__: list[str] = [
    # Custody API
    "Activity",
    "ActivityResponse",
    "OrganizationResponse",
    "PoliciesResponse",
    "SubOrgIdsResponse",
    "WalletAccountsResponse",
    "WalletsResponse",
    # Merchant
    "MerchantAccount",
    "RestrictionInfo",
    "SourceWallet",
    "TreasuryWallet",
]
