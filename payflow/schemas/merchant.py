"""Payflow Sweeper - Merchant, wallet and restriction schemas."""

from pydantic import BaseModel, Field


class SourceWallet(BaseModel):
    """Deposit wallet inside one merchant's isolation context."""

    wallet_id: str = Field(..., description="Custody wallet handle")
    name: str = Field("Unnamed Wallet", description="Wallet display name")
    address: str | None = Field(None, description="Primary account address, if readable")
    signing_key_id: str | None = Field(
        None, description="Linked signing key; signing falls back to the address"
    )

    @property
    def sign_with(self) -> str | None:
        """Signing identifier: linked key if present, else the address."""
        return self.signing_key_id or self.address


class RestrictionInfo(BaseModel):
    """Restriction (policy) attached to an isolation context."""

    restriction_id: str = ""
    name: str = "Unnamed Policy"
    effect: str = "UNKNOWN"
    condition: str | None = None
    consensus: str | None = None
    notes: str | None = None


class MerchantAccount(BaseModel):
    """One merchant: an isolation context with its wallets."""

    isolation_context: str = Field(..., description="Sub-organization ID")
    name: str
    wallets: list[SourceWallet] = Field(default_factory=list)
    restrictions: list[RestrictionInfo] = Field(default_factory=list)


class TreasuryWallet(BaseModel):
    """Destination account for swept funds."""

    address: str
    wallet_id: str | None = Field(None, description="Custody handle; None if self-custodied")
