# tipbot/blockchain.py
"""USDC gateway on Base (web3.py, async).

Read methods may be called from anywhere. Write methods consume the admin
account's nonce and must only be called from TransactionQueue jobs.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TimeExhausted

from tipbot.core.config import settings
from tipbot.errors import ConfigurationError, ConfirmationTimeoutError, TransactionFailedError
from tipbot.signing import TransferAuthorization

logger = logging.getLogger(__name__)


USDC_ABI: List[Dict[str, Any]] = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "validAfter", "type": "uint256"},
            {"name": "validBefore", "type": "uint256"},
            {"name": "nonce", "type": "bytes32"},
            {"name": "v", "type": "uint8"},
            {"name": "r", "type": "bytes32"},
            {"name": "s", "type": "bytes32"},
        ],
        "name": "transferWithAuthorization",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


class ChainGateway:
    def __init__(
        self,
        admin_account: LocalAccount,
        *,
        rpc_url: str | None = None,
        token_address: str | None = None,
        chain_id: int | None = None,
        w3: AsyncWeb3 | None = None,
        poll_interval: float = 1.0,
    ):
        rpc_url = rpc_url or settings.BASE_RPC_URL
        token_address = token_address or settings.USDC_CONTRACT_ADDRESS
        if w3 is None and not rpc_url:
            raise ConfigurationError("BASE_RPC_URL is not set")
        if not token_address:
            raise ConfigurationError("USDC_CONTRACT_ADDRESS is not set")

        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._admin = admin_account
        self._chain_id = chain_id or settings.CHAIN_ID
        self._poll_interval = poll_interval
        self._token = self._w3.eth.contract(
            address=Web3.to_checksum_address(token_address),
            abi=USDC_ABI,
        )

    @property
    def admin_address(self) -> str:
        return self._admin.address

    # -------- reads --------

    async def balance_of(self, address: str) -> int:
        return int(await self._token.functions.balanceOf(Web3.to_checksum_address(address)).call())

    async def native_balance(self, address: str) -> int:
        return int(await self._w3.eth.get_balance(Web3.to_checksum_address(address)))

    async def block_number(self) -> int:
        return int(await self._w3.eth.block_number)

    # -------- writes (admin-signed) --------

    async def transfer(self, to: str, amount: int) -> str:
        fn = self._token.functions.transfer(Web3.to_checksum_address(to), amount)
        tx_hash = await self._send(fn)
        logger.info("USDC transfer submitted to=%s units=%s tx=%s", to, amount, tx_hash)
        return tx_hash

    async def transfer_with_authorization(self, auth: TransferAuthorization) -> str:
        fn = self._token.functions.transferWithAuthorization(
            Web3.to_checksum_address(auth.from_address),
            Web3.to_checksum_address(auth.to_address),
            auth.value,
            auth.valid_after,
            auth.valid_before,
            auth.nonce,
            auth.v,
            auth.r,
            auth.s,
        )
        tx_hash = await self._send(fn)
        logger.info(
            "transferWithAuthorization submitted from=%s to=%s units=%s tx=%s",
            auth.from_address, auth.to_address, auth.value, tx_hash,
        )
        return tx_hash

    async def _send(self, fn) -> str:
        # "pending" so a just-submitted tx from the previous job is counted
        nonce = await self._w3.eth.get_transaction_count(self._admin.address, "pending")
        tx = await fn.build_transaction(
            {
                "from": self._admin.address,
                "nonce": nonce,
                "chainId": self._chain_id,
            }
        )
        signed = self._admin.sign_transaction(tx)
        tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    # -------- confirmation --------

    async def wait_for_confirmation(
        self,
        tx_hash: str,
        required_confirmations: int | None = None,
        timeout: int | None = None,
    ):
        confirmations = settings.REQUIRED_CONFIRMATIONS if required_confirmations is None else required_confirmations
        timeout = settings.CONFIRMATION_TIMEOUT_SECONDS if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise ConfirmationTimeoutError(tx_hash, timeout) from e

        if receipt["status"] != 1:
            raise TransactionFailedError(tx_hash)

        target_block = receipt["blockNumber"] + confirmations - 1
        while await self.block_number() < target_block:
            if loop.time() > deadline:
                raise ConfirmationTimeoutError(tx_hash, timeout)
            await asyncio.sleep(self._poll_interval)

        logger.info("tx %s confirmed in block %s", tx_hash, receipt["blockNumber"])
        return receipt
