"""Payflow Sweeper - Custody API response schemas.

Responses are parsed at the client boundary; unknown fields are ignored
and missing optional fields become None.
"""

from pydantic import BaseModel, ConfigDict, Field


class CustodyModel(BaseModel):
    """Base for camelCase custody payloads."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ============================================================================
# Query Responses
# ============================================================================


class SubOrgIdsResponse(CustodyModel):
    organization_ids: list[str] = Field(default_factory=list, alias="organizationIds")


class OrganizationData(CustodyModel):
    organization_id: str | None = Field(None, alias="organizationId")
    name: str | None = None
    organization_name: str | None = Field(None, alias="organizationName")

    @property
    def display_name(self) -> str | None:
        return self.organization_name or self.name


class OrganizationResponse(CustodyModel):
    organization_data: OrganizationData | None = Field(None, alias="organizationData")
    organization: OrganizationData | None = None

    @property
    def display_name(self) -> str | None:
        for data in (self.organization_data, self.organization):
            if data is not None and data.display_name:
                return data.display_name
        return None


class WalletItem(CustodyModel):
    wallet_id: str = Field(..., alias="walletId")
    wallet_name: str | None = Field(None, alias="walletName")


class WalletsResponse(CustodyModel):
    wallets: list[WalletItem] = Field(default_factory=list)


class WalletAccountItem(CustodyModel):
    address: str | None = None
    wallet_id: str | None = Field(None, alias="walletId")
    wallet_account_id: str | None = Field(None, alias="walletAccountId")
    path: str | None = None


class WalletAccountsResponse(CustodyModel):
    accounts: list[WalletAccountItem] = Field(default_factory=list)


class PolicyItem(CustodyModel):
    policy_id: str = Field("", alias="policyId")
    policy_name: str = Field("Unnamed Policy", alias="policyName")
    effect: str = "UNKNOWN"
    condition: str | None = None
    consensus: str | None = None
    notes: str | None = None


class PoliciesResponse(CustodyModel):
    policies: list[PolicyItem] = Field(default_factory=list)


# ============================================================================
# Activity (submit) Responses
# ============================================================================


class ActivityFailure(CustodyModel):
    message: str | None = None
    code: int | None = None


class Activity(CustodyModel):
    id: str | None = None
    status: str
    type: str | None = None
    result: dict = Field(default_factory=dict)
    failure: ActivityFailure | None = None


class ActivityResponse(CustodyModel):
    activity: Activity
