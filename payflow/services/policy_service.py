"""Policy Service - Transfer restrictions for merchant sub-organizations.

Creates the "USDC only, treasury only" restriction that the custody
backend evaluates before it signs anything for a merchant wallet, and
decodes existing restrictions for audit display.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from payflow.schemas.merchant import MerchantAccount, RestrictionInfo
from payflow.services.custody_service import CustodyService
from payflow.utils.helpers import format_address
from payflow.utils.predicate import compile_predicate, describe_predicate

logger = logging.getLogger(__name__)


@dataclass
class RestrictionView:
    """Restriction with its condition decoded into readable lines."""

    restriction: RestrictionInfo
    lines: list[str]


class PolicyService:
    """Service for restriction management."""

    EFFECT_ALLOW = "EFFECT_ALLOW"

    def __init__(self, custody: CustodyService) -> None:
        self._custody = custody

    async def create_sweep_restriction(
        self,
        isolation_context: str,
        destination_address: str,
        token_address: str,
        threshold: Decimal | None = None,
        name: str | None = None,
    ) -> str:
        """Allow only token transfers to the treasury inside a sub-organization.

        Args:
            isolation_context: Merchant sub-organization ID
            destination_address: Treasury address
            token_address: Token contract
            threshold: Sweep threshold recorded in the notes (enforced by the sweeper)
            name: Policy name (default derived from the destination)

        Returns:
            Created restriction ID

        Raises:
            InvalidAddress: If either address is malformed
            CustodyError: If the backend refuses
        """
        predicate = compile_predicate(token_address, destination_address)
        name = name or f"USDC-Only Policy for {format_address(destination_address)}"

        notes = f"Allows only USDC transfer() to treasury {destination_address.lower()}."
        if threshold is not None:
            notes += f" Sweep threshold {threshold} USDC is enforced at application level."

        restriction_id = await self._custody.create_restriction(
            isolation_context=isolation_context,
            name=name,
            predicate=predicate,
            effect=self.EFFECT_ALLOW,
            notes=notes,
        )
        logger.info(f"Restriction {restriction_id} created for sub-org {isolation_context}")
        return restriction_id

    @staticmethod
    def describe(account: MerchantAccount) -> list[RestrictionView]:
        """Decode every restriction of a merchant for display."""
        return [
            RestrictionView(restriction=r, lines=describe_predicate(r.condition))
            for r in account.restrictions
        ]
