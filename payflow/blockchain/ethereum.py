"""Ethereum chain client implementation.

Provides EVM balance queries, token transfer building, broadcast and
confirmation tracking using web3.py.
"""

import asyncio
import logging
from decimal import Decimal

import rlp
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted

from payflow.blockchain.base import (
    ChainClient,
    ConfirmationReceipt,
    TransactionStatus,
    TransferRequest,
)
from payflow.core.exceptions import ChainError, ConfigError, ConfirmationTimeout, TransactionError
from payflow.utils.amount import ETH_DECIMALS
from payflow.utils.predicate import encode_transfer_call

logger = logging.getLogger(__name__)

# Standard ERC-20 ABI for balanceOf and decimals
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function",
    },
]

# EIP-2718 type byte for dynamic-fee transactions
DYNAMIC_FEE_TX_TYPE = 0x02


def serialize_unsigned(tx: TransferRequest) -> str:
    """RLP-encode an unsigned EIP-1559 transaction for the signer.

    Returns:
        0x-prefixed hex: 0x02 || rlp([chainId, nonce, maxPriorityFee,
        maxFee, gas, to, value, data, accessList])
    """
    payload = rlp.encode(
        [
            tx.chain_id,
            tx.nonce,
            tx.max_priority_fee_per_gas,
            tx.max_fee_per_gas,
            tx.gas,
            bytes.fromhex(tx.to.removeprefix("0x")),
            tx.value,
            bytes.fromhex(tx.data.removeprefix("0x")),
            [],
        ]
    )
    return "0x" + (bytes([DYNAMIC_FEE_TX_TYPE]) + payload).hex()


class EthereumChainClient(ChainClient):
    """EVM chain client over JSON-RPC.

    Supports ERC-20 balances/transfers and native ETH balance queries.
    Signing is never done here; transactions are signed by the custody
    backend and handed back for broadcast.
    """

    # Wait between receipt polls
    POLL_INTERVAL = 2.0

    def __init__(self, network: str, rpc_url: str) -> None:
        if not rpc_url:
            raise ConfigError(f"ETH_RPC_URL is required for network {network}")

        self._network = network
        self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))

    @property
    def network(self) -> str:
        return self._network

    # ============ Balance Operations ============

    async def get_native_balance(self, address: str) -> Decimal:
        """Get ETH balance."""
        try:
            balance_wei = await self._w3.eth.get_balance(self._w3.to_checksum_address(address))
        except Exception as e:
            raise ChainError(f"Failed to get ETH balance for {address}: {e}") from e
        return self.from_smallest_unit(balance_wei, ETH_DECIMALS)

    async def get_token_balance(
        self,
        token_address: str,
        address: str,
        decimals: int = 6,
    ) -> Decimal:
        """Get ERC-20 token balance."""
        try:
            contract = self._w3.eth.contract(
                address=self._w3.to_checksum_address(token_address),
                abi=ERC20_ABI,
            )
            balance = await contract.functions.balanceOf(
                self._w3.to_checksum_address(address)
            ).call()
        except Exception as e:
            raise ChainError(
                f"Failed to get token balance for {address} (contract: {token_address}): {e}"
            ) from e
        return self.from_smallest_unit(balance, decimals)

    # ============ Transaction Operations ============

    async def build_token_transfer(
        self,
        from_address: str,
        token_address: str,
        to_address: str,
        amount_raw: int,
    ) -> TransferRequest:
        """Build an unsigned ERC-20 transfer with current nonce and fees."""
        try:
            sender = self._w3.to_checksum_address(from_address)
            token = self._w3.to_checksum_address(token_address)
            data = encode_transfer_call(to_address, amount_raw)
            return await self._build_transaction(sender, token, data, 0)
        except Exception as e:
            raise TransactionError(f"Failed to build transfer from {from_address}: {e}") from e

    async def build_native_transfer(
        self,
        from_address: str,
        to_address: str,
        amount_wei: int,
    ) -> TransferRequest:
        """Build an unsigned ETH transfer with current nonce and fees."""
        try:
            sender = self._w3.to_checksum_address(from_address)
            recipient = self._w3.to_checksum_address(to_address)
            return await self._build_transaction(sender, recipient, "0x", amount_wei)
        except Exception as e:
            raise TransactionError(f"Failed to build ETH transfer from {from_address}: {e}") from e

    async def _build_transaction(
        self, sender: str, to: str, data: str, value: int
    ) -> TransferRequest:
        nonce = await self._w3.eth.get_transaction_count(sender, "pending")
        latest = await self._w3.eth.get_block("latest")
        priority_fee = await self._w3.eth.max_priority_fee
        call = {"from": sender, "to": to, "value": value}
        if data != "0x":
            call["data"] = data
        gas = await self._w3.eth.estimate_gas(call)
        chain_id = await self._w3.eth.chain_id

        base_fee = latest.get("baseFeePerGas", 0)
        return TransferRequest(
            chain_id=chain_id,
            nonce=nonce,
            to=to,
            data=data,
            gas=gas,
            max_fee_per_gas=base_fee * 2 + priority_fee,
            max_priority_fee_per_gas=priority_fee,
            value=value,
        )

    async def send_raw_transaction(self, signed_transaction: str) -> str:
        """Broadcast a signed transaction."""
        if not signed_transaction.startswith("0x"):
            signed_transaction = "0x" + signed_transaction
        try:
            tx_hash = await self._w3.eth.send_raw_transaction(signed_transaction)
        except Exception as e:
            raise TransactionError(f"Broadcast rejected: {e}") from e

        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Transaction broadcast: {tx_hash_hex}")
        return tx_hash_hex

    async def wait_for_confirmation(
        self,
        tx_hash: str,
        confirmations: int = 1,
        timeout: float = 120.0,
    ) -> ConfirmationReceipt:
        """Wait for receipt, then for the requested confirmation depth."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=self.POLL_INTERVAL
            )
        except TimeExhausted as e:
            raise ConfirmationTimeout(f"No receipt for {tx_hash} after {timeout}s") from e
        except Exception as e:
            raise ChainError(f"Failed to get receipt for {tx_hash}: {e}") from e

        block_number = receipt["blockNumber"]
        status = (
            TransactionStatus.CONFIRMED if receipt["status"] == 1 else TransactionStatus.FAILED
        )

        try:
            depth = await self._confirmation_depth(block_number)
            while depth < confirmations:
                if loop.time() >= deadline:
                    raise ConfirmationTimeout(
                        f"{tx_hash} has {depth}/{confirmations} confirmations after {timeout}s"
                    )
                await asyncio.sleep(self.POLL_INTERVAL)
                depth = await self._confirmation_depth(block_number)
        except ConfirmationTimeout:
            raise
        except Exception as e:
            raise ChainError(f"Failed to get confirmations for {tx_hash}: {e}") from e

        return ConfirmationReceipt(
            tx_hash=tx_hash,
            status=status,
            block_number=block_number,
            confirmations=depth,
            gas_used=receipt.get("gasUsed"),
        )

    async def _confirmation_depth(self, block_number: int) -> int:
        latest_block = await self._w3.eth.block_number
        return max(0, latest_block - block_number + 1)

    async def close(self) -> None:
        """Close the provider connection."""
        disconnect = getattr(self._w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
