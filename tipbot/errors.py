# tipbot/errors.py
from __future__ import annotations


class TipBotError(Exception):
    """Base class for every error raised by the tip bot."""


# --- rejected synchronously, nothing mutated ---

class ValidationError(TipBotError):
    pass


class SelfTipError(ValidationError):
    def __init__(self) -> None:
        super().__init__("cannot tip yourself")


class DuplicateTipError(ValidationError):
    def __init__(self, message_ref: str) -> None:
        super().__init__(f"already tipped for message {message_ref}")
        self.message_ref = message_ref


class InvalidAddressError(ValidationError):
    def __init__(self, address: str) -> None:
        super().__init__(f"invalid address: {address!r}")
        self.address = address


class QuotaError(TipBotError):
    pass


class LimitReachedError(QuotaError):
    def __init__(self, daily_limit: int) -> None:
        super().__init__(f"daily limit of {daily_limit} tips reached and no extra balance left")
        self.daily_limit = daily_limit


# --- fatal / unrecoverable ---

class ConfigurationError(TipBotError):
    pass


# --- raised inside queued chain jobs ---

class ChainError(TipBotError):
    pass


class InsufficientPoolBalanceError(ChainError):
    def __init__(self, available: int, required: int) -> None:
        super().__init__(f"pool balance {available} below required {required}")
        self.available = available
        self.required = required


class TransactionFailedError(ChainError):
    def __init__(self, tx_hash: str) -> None:
        super().__init__(f"transaction {tx_hash} reverted")
        self.tx_hash = tx_hash


class ConfirmationTimeoutError(ChainError):
    def __init__(self, tx_hash: str, timeout: int) -> None:
        super().__init__(f"transaction {tx_hash} not confirmed within {timeout}s")
        self.tx_hash = tx_hash
        self.timeout = timeout
