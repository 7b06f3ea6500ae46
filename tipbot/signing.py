# tipbot/signing.py
"""EIP-712 typed-data signing of EIP-3009 ``TransferWithAuthorization`` messages.

The admin account relays the signed authorization, so a user's deposit
account never needs gas of its own.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from web3 import Web3

from tipbot.core.config import settings
from tipbot.errors import ConfigurationError

logger = logging.getLogger(__name__)

# valid_before for sweeps: effectively "never expires" (int256 max, as the token contract accepts)
MAX_VALID_BEFORE = 2**255 - 1

TRANSFER_WITH_AUTHORIZATION_TYPES: Dict[str, Any] = {
    "TransferWithAuthorization": [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "validAfter", "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce", "type": "bytes32"},
    ],
}


@dataclass(frozen=True)
class TokenDomain:
    name: str
    version: str
    chain_id: int
    verifying_contract: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }


def domain_from_settings() -> TokenDomain:
    if not settings.USDC_CONTRACT_ADDRESS:
        raise ConfigurationError("USDC_CONTRACT_ADDRESS is not set")
    return TokenDomain(
        name=settings.TOKEN_NAME,
        version=settings.TOKEN_VERSION,
        chain_id=settings.CHAIN_ID,
        verifying_contract=Web3.to_checksum_address(settings.USDC_CONTRACT_ADDRESS),
    )


@dataclass(frozen=True)
class TransferAuthorization:
    from_address: str
    to_address: str
    value: int
    valid_after: int
    valid_before: int
    nonce: bytes
    v: int
    r: bytes
    s: bytes

    def message(self) -> Dict[str, Any]:
        return {
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
            "validAfter": self.valid_after,
            "validBefore": self.valid_before,
            "nonce": self.nonce,
        }


class AuthorizationSigner:
    def __init__(self, domain: TokenDomain | None = None):
        self.domain = domain or domain_from_settings()

    def sign_transfer_authorization(
        self,
        account: LocalAccount,
        to: str,
        value: int,
        valid_after: int,
        valid_before: int,
    ) -> TransferAuthorization:
        if account is None or not getattr(account, "key", None):
            raise ConfigurationError("no private key material for the authorizing account")
        if value <= 0:
            raise ValueError("value must be > 0")
        if valid_before <= valid_after:
            raise ValueError("valid_before must be after valid_after")

        # fresh per message
        nonce = secrets.token_bytes(32)
        message = {
            "from": account.address,
            "to": Web3.to_checksum_address(to),
            "value": value,
            "validAfter": valid_after,
            "validBefore": valid_before,
            "nonce": nonce,
        }
        signed = Account.sign_typed_data(
            account.key,
            domain_data=self.domain.as_dict(),
            message_types=TRANSFER_WITH_AUTHORIZATION_TYPES,
            message_data=message,
        )
        v, r, s = split_signature(bytes(signed.signature))

        return TransferAuthorization(
            from_address=message["from"],
            to_address=message["to"],
            value=value,
            valid_after=valid_after,
            valid_before=valid_before,
            nonce=nonce,
            v=v,
            r=r,
            s=s,
        )

    def recover_authorizer(self, auth: TransferAuthorization) -> str:
        signable = encode_typed_data(
            domain_data=self.domain.as_dict(),
            message_types=TRANSFER_WITH_AUTHORIZATION_TYPES,
            message_data=auth.message(),
        )
        return Account.recover_message(signable, vrs=(auth.v, auth.r, auth.s))


def split_signature(signature: bytes) -> tuple[int, bytes, bytes]:
    if len(signature) != 65:
        raise ValueError(f"expected a 65-byte signature, got {len(signature)}")
    r = signature[0:32]
    s = signature[32:64]
    v = signature[64]
    if v < 27:
        v += 27
    return v, r, s
