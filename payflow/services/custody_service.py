"""Custody Service - Client for the remote custody and signing backend.

This service handles:
1. Account directory - List merchant sub-organizations, wallets and addresses
2. Delegated signing - Sign transactions inside a merchant's sub-organization
3. Restrictions - Create and list policies evaluated before signing
4. Treasury provisioning - Find or create the parent organization's wallet

Every request body is stamped with the operator's API key.
"""

import asyncio
import json
import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError as SchemaError

from payflow.blockchain.base import ChainClient, TransferRequest
from payflow.core.config import Settings
from payflow.core.exceptions import (
    CustodyError,
    DirectoryError,
    SigningRejected,
    SigningUnavailable,
)
from payflow.core.security import ApiKeyStamper
from payflow.schemas.custody import (
    Activity,
    ActivityResponse,
    OrganizationResponse,
    PoliciesResponse,
    SubOrgIdsResponse,
    WalletAccountsResponse,
    WalletsResponse,
)
from payflow.schemas.merchant import MerchantAccount, RestrictionInfo, SourceWallet, TreasuryWallet

logger = logging.getLogger(__name__)


class ActivityStatus:
    """Terminal and pending activity statuses reported by the backend."""

    COMPLETED = "ACTIVITY_STATUS_COMPLETED"
    FAILED = "ACTIVITY_STATUS_FAILED"
    REJECTED = "ACTIVITY_STATUS_REJECTED"
    CONSENSUS_NEEDED = "ACTIVITY_STATUS_CONSENSUS_NEEDED"
    PENDING = "ACTIVITY_STATUS_PENDING"
    CREATED = "ACTIVITY_STATUS_CREATED"

    # Statuses that mean "the backend decided not to do it"
    DENIED = {FAILED, REJECTED, CONSENSUS_NEEDED}


class CustodyService:
    """Service for custody backend interactions."""

    # Default derivation for new EVM wallets
    ETHEREUM_ACCOUNT = {
        "curve": "CURVE_SECP256K1",
        "pathFormat": "PATH_FORMAT_BIP32",
        "path": "m/44'/60'/0'/0/0",
        "addressFormat": "ADDRESS_FORMAT_ETHEREUM",
    }

    # Activity polling while the backend reports a pending status
    ACTIVITY_POLL_ATTEMPTS = 10
    ACTIVITY_POLL_INTERVAL = 1.0

    def __init__(
        self,
        base_url: str,
        organization_id: str,
        stamper: ApiKeyStamper,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.organization_id = organization_id
        self._stamper = stamper
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CustodyService":
        """Build a client from settings.

        Raises:
            ConfigError: If custody credentials are missing
        """
        settings.require_custody()
        return cls(
            base_url=settings.custody_api_base_url,
            organization_id=settings.organization_id,
            stamper=ApiKeyStamper(settings.api_public_key, settings.api_private_key),
            timeout=settings.custody_timeout_seconds,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ============ Transport ============

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST a stamped JSON body and return the decoded response.

        Raises:
            httpx.HTTPError: On transport failure, non-2xx status or a non-JSON body
        """
        client = await self._get_client()
        payload = json.dumps(body, separators=(",", ":"))
        response = await client.post(
            path,
            content=payload,
            headers={
                "Content-Type": "application/json",
                ApiKeyStamper.HEADER_NAME: self._stamper.stamp(payload),
            },
        )
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            raise httpx.DecodingError(
                f"Malformed JSON from {path}: {e}", request=response.request
            ) from e

    async def _submit(
        self,
        activity_type: str,
        organization_id: str,
        parameters: dict[str, Any],
    ) -> Activity:
        """Submit an activity and poll until it leaves the pending state."""
        data = await self._post(
            f"/public/v1/submit/{self._submit_path(activity_type)}",
            {
                "type": activity_type,
                "timestampMs": str(int(time.time() * 1000)),
                "organizationId": organization_id,
                "parameters": parameters,
            },
        )
        activity = ActivityResponse.model_validate(data).activity

        for _ in range(self.ACTIVITY_POLL_ATTEMPTS):
            if activity.status not in (ActivityStatus.PENDING, ActivityStatus.CREATED):
                break
            await asyncio.sleep(self.ACTIVITY_POLL_INTERVAL)
            data = await self._post(
                "/public/v1/query/get_activity",
                {"organizationId": organization_id, "activityId": activity.id},
            )
            activity = ActivityResponse.model_validate(data).activity

        return activity

    @staticmethod
    def _submit_path(activity_type: str) -> str:
        """ACTIVITY_TYPE_SIGN_TRANSACTION_V2 -> sign_transaction."""
        name = activity_type.removeprefix("ACTIVITY_TYPE_").lower()
        head, _, tail = name.rpartition("_")
        if head and tail.startswith("v") and tail[1:].isdigit():
            return head
        return name

    @staticmethod
    def _failure_message(activity: Activity) -> str:
        if activity.failure and activity.failure.message:
            return activity.failure.message
        return activity.status

    # ============ Account Directory ============

    async def list_accounts(self) -> list[MerchantAccount]:
        """List all merchant sub-organizations with wallets and restrictions.

        Sub-organizations that cannot be read are skipped with a warning.

        Raises:
            DirectoryError: If the sub-organization list itself is unavailable
        """
        try:
            data = await self._post(
                "/public/v1/query/list_suborgs",
                {"organizationId": self.organization_id},
            )
            sub_org_ids = SubOrgIdsResponse.model_validate(data).organization_ids
        except (httpx.HTTPError, SchemaError) as e:
            raise DirectoryError(f"Failed to list merchants: {e}") from e

        merchants: list[MerchantAccount] = []
        for sub_org_id in sub_org_ids:
            try:
                merchants.append(await self.get_account(sub_org_id))
            except DirectoryError as e:
                logger.warning(f"Could not access sub-org {sub_org_id}: {e.message}")

        return merchants

    async def get_account(self, isolation_context: str) -> MerchantAccount:
        """Fetch one merchant's wallets, addresses and restrictions.

        Raises:
            DirectoryError: If the wallet list cannot be read
        """
        try:
            data = await self._post(
                "/public/v1/query/list_wallets",
                {"organizationId": isolation_context},
            )
            wallets = WalletsResponse.model_validate(data).wallets
        except (httpx.HTTPError, SchemaError) as e:
            raise DirectoryError(f"Failed to read merchant {isolation_context}: {e}") from e

        source_wallets = []
        for wallet in wallets:
            source_wallets.append(
                SourceWallet(
                    wallet_id=wallet.wallet_id,
                    name=wallet.wallet_name or "Unnamed Wallet",
                    address=await self._primary_address(isolation_context, wallet.wallet_id),
                )
            )

        try:
            restrictions = await self.list_restrictions(isolation_context)
        except CustodyError as e:
            logger.warning(f"Could not fetch policies for sub-org {isolation_context}: {e}")
            restrictions = []

        return MerchantAccount(
            isolation_context=isolation_context,
            name=await self._merchant_name(isolation_context, source_wallets),
            wallets=source_wallets,
            restrictions=restrictions,
        )

    async def _primary_address(self, organization_id: str, wallet_id: str) -> str | None:
        """First account address of a wallet, or None if unreadable."""
        try:
            data = await self._post(
                "/public/v1/query/list_wallet_accounts",
                {"organizationId": organization_id, "walletId": wallet_id},
            )
            accounts = WalletAccountsResponse.model_validate(data).accounts
        except (httpx.HTTPError, SchemaError) as e:
            logger.warning(f"Could not read accounts of wallet {wallet_id}: {e}")
            return None
        return accounts[0].address if accounts else None

    async def _merchant_name(self, isolation_context: str, wallets: list[SourceWallet]) -> str:
        """Organization name, else derived from the "<name> Wallet" wallet."""
        try:
            data = await self._post(
                "/public/v1/query/get_organization",
                {"organizationId": isolation_context},
            )
            name = OrganizationResponse.model_validate(data).display_name
            if name:
                return name
        except (httpx.HTTPError, SchemaError) as e:
            logger.debug(f"Organization name unavailable for {isolation_context}: {e}")

        original = next((w for w in wallets if w.name.endswith(" Wallet")), None)
        if original is None and wallets:
            original = wallets[0]
        if original is not None:
            return original.name.removesuffix(" Wallet")
        return isolation_context[:8] + "..."

    # ============ Delegated Signing ============

    async def sign_transaction(
        self,
        isolation_context: str,
        sign_with: str,
        unsigned_transaction: str,
    ) -> str:
        """Sign a serialized transaction inside a sub-organization.

        Args:
            isolation_context: Sub-organization owning the signing key
            sign_with: Signing key ID or wallet account address
            unsigned_transaction: RLP-encoded unsigned transaction hex

        Returns:
            Signed transaction hex (0x-prefixed)

        Raises:
            SigningRejected: If policy evaluation denied the signature
            SigningUnavailable: On transport failure or backend error
        """
        try:
            activity = await self._submit(
                "ACTIVITY_TYPE_SIGN_TRANSACTION_V2",
                isolation_context,
                {
                    "signWith": sign_with,
                    "unsignedTransaction": unsigned_transaction.removeprefix("0x"),
                    "type": "TRANSACTION_TYPE_ETHEREUM",
                },
            )
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            details = {"status_code": status_code, "body": e.response.text[:500]}
            if 400 <= status_code < 500 and status_code != 429:
                raise SigningRejected(f"Signing denied: {e.response.text[:200]}", details) from e
            raise SigningUnavailable(f"Signer error: HTTP {status_code}", details) from e
        except httpx.HTTPError as e:
            raise SigningUnavailable(f"Signer unreachable: {e}") from e
        except SchemaError as e:
            raise SigningUnavailable(f"Malformed signer response: {e}") from e

        if activity.status in ActivityStatus.DENIED:
            raise SigningRejected(
                f"Signing denied: {self._failure_message(activity)}",
                {"activity_id": activity.id, "status": activity.status},
            )
        if activity.status != ActivityStatus.COMPLETED:
            raise SigningUnavailable(
                f"Signing did not complete: {activity.status}",
                {"activity_id": activity.id},
            )

        signed = activity.result.get("signTransactionResult", {}).get("signedTransaction")
        if not signed:
            raise SigningUnavailable("Signer returned no signed transaction")
        return signed if signed.startswith("0x") else "0x" + signed

    async def sign_and_send(
        self,
        isolation_context: str,
        sign_with: str,
        tx_request: TransferRequest,
        chain: ChainClient,
    ) -> str:
        """Sign a transfer inside a sub-organization and broadcast it.

        Returns:
            Transaction hash
        """
        from payflow.blockchain.ethereum import serialize_unsigned

        signed = await self.sign_transaction(
            isolation_context, sign_with, serialize_unsigned(tx_request)
        )
        return await chain.send_raw_transaction(signed)

    # ============ Restrictions ============

    async def create_restriction(
        self,
        isolation_context: str,
        name: str,
        predicate: str,
        approval_rule: str | None = None,
        effect: str = "EFFECT_ALLOW",
        notes: str = "",
    ) -> str:
        """Create a policy inside a sub-organization.

        Returns:
            New restriction (policy) ID

        Raises:
            CustodyError: If the backend refuses or cannot be reached
        """
        parameters: dict[str, Any] = {
            "policyName": name,
            "effect": effect,
            "condition": predicate,
            "notes": notes,
        }
        if approval_rule:
            parameters["consensus"] = approval_rule

        try:
            activity = await self._submit(
                "ACTIVITY_TYPE_CREATE_POLICY_V3", isolation_context, parameters
            )
        except (httpx.HTTPError, SchemaError) as e:
            raise CustodyError(f"Failed to create policy {name!r}: {e}") from e

        policy_id = activity.result.get("createPolicyResult", {}).get("policyId")
        if activity.status != ActivityStatus.COMPLETED or not policy_id:
            raise CustodyError(
                f"Failed to create policy {name!r}: {self._failure_message(activity)}",
                {"activity_id": activity.id, "status": activity.status},
            )
        logger.info(f"Created policy {policy_id} in sub-org {isolation_context}")
        return policy_id

    async def list_restrictions(self, isolation_context: str) -> list[RestrictionInfo]:
        """List policies of a sub-organization.

        Raises:
            CustodyError: If the policies cannot be read
        """
        try:
            data = await self._post(
                "/public/v1/query/list_policies",
                {"organizationId": isolation_context},
            )
            policies = PoliciesResponse.model_validate(data).policies
        except (httpx.HTTPError, SchemaError) as e:
            raise CustodyError(f"Failed to list policies: {e}") from e

        return [
            RestrictionInfo(
                restriction_id=policy.policy_id,
                name=policy.policy_name,
                effect=policy.effect,
                condition=policy.condition,
                consensus=policy.consensus,
                notes=policy.notes,
            )
            for policy in policies
        ]

    # ============ Treasury Provisioning ============

    async def find_wallet(self, name: str) -> TreasuryWallet | None:
        """Find a parent-organization wallet by name.

        Raises:
            CustodyError: If wallets cannot be listed
        """
        try:
            data = await self._post(
                "/public/v1/query/list_wallets",
                {"organizationId": self.organization_id},
            )
            wallets = WalletsResponse.model_validate(data).wallets
        except (httpx.HTTPError, SchemaError) as e:
            raise CustodyError(f"Failed to list treasury wallets: {e}") from e

        for wallet in wallets:
            if wallet.wallet_name == name:
                address = await self._primary_address(self.organization_id, wallet.wallet_id)
                if address:
                    return TreasuryWallet(address=address, wallet_id=wallet.wallet_id)
        return None

    async def create_wallet(self, name: str) -> TreasuryWallet:
        """Create a single-account EVM wallet in the parent organization.

        Raises:
            CustodyError: If creation fails
        """
        try:
            activity = await self._submit(
                "ACTIVITY_TYPE_CREATE_WALLET",
                self.organization_id,
                {"walletName": name, "accounts": [self.ETHEREUM_ACCOUNT]},
            )
        except (httpx.HTTPError, SchemaError) as e:
            raise CustodyError(f"Failed to create wallet {name!r}: {e}") from e

        result = activity.result.get("createWalletResult", {})
        addresses = result.get("addresses") or []
        if activity.status != ActivityStatus.COMPLETED or not addresses:
            raise CustodyError(
                f"Failed to create wallet {name!r}: {self._failure_message(activity)}",
                {"activity_id": activity.id, "status": activity.status},
            )
        logger.info(f"Created wallet {result.get('walletId')} ({addresses[0]})")
        return TreasuryWallet(address=addresses[0], wallet_id=result.get("walletId"))
