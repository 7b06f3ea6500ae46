# tipbot/wallet.py
"""Deterministic account derivation from the admin mnemonic.

Index 0 is the admin/pool account, every other index is a user's ``users.id``.
Private keys are re-derived on demand and never stored.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from eth_account import Account
from eth_account.signers.local import LocalAccount

from tipbot.core.config import settings
from tipbot.errors import ConfigurationError

logger = logging.getLogger(__name__)

Account.enable_unaudited_hdwallet_features()

ADMIN_INDEX = 0


@dataclass(frozen=True)
class DerivedAccount:
    index: int
    address: str


def derivation_path(index: int) -> str:
    # index sits at the account level, address index stays 0
    return f"m/44'/60'/{index}'/0/0"


class WalletDeriver:
    def __init__(self, mnemonic: str | None = None):
        mnemonic = mnemonic if mnemonic is not None else settings.ADMIN_WALLET_MNEMONIC
        if not mnemonic or not mnemonic.strip():
            raise ConfigurationError("ADMIN_WALLET_MNEMONIC is not set")
        self._mnemonic = mnemonic.strip()

    def local_account(self, index: int) -> LocalAccount:
        if index < 0:
            raise ValueError("account index must be >= 0")
        return Account.from_mnemonic(self._mnemonic, account_path=derivation_path(index))

    def derive_account(self, index: int) -> DerivedAccount:
        return DerivedAccount(index=index, address=self._address(index))

    @property
    def admin_address(self) -> str:
        return self._address(ADMIN_INDEX)

    def _address(self, index: int) -> str:
        return _cached_address(self._mnemonic, index)


@lru_cache(maxsize=1024)
def _cached_address(mnemonic: str, index: int) -> str:
    if index < 0:
        raise ValueError("account index must be >= 0")
    # only the public address is cached; the key object is dropped here
    return Account.from_mnemonic(mnemonic, account_path=derivation_path(index)).address
