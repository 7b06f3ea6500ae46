# tipbot/tipping.py
"""Tip / deposit / withdrawal flows.

Every balance change that does not depend on the chain happens inside the
request's own transaction. Every change that does depend on the chain happens
inside a TransactionQueue job, after the transaction is confirmed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Union

from sqlalchemy.orm import Session
from web3 import Web3

from tipbot import crud, ledger, models
from tipbot.blockchain import ChainGateway
from tipbot.core.config import settings
from tipbot.database import db_session
from tipbot.errors import (
    DuplicateTipError,
    InsufficientPoolBalanceError,
    InvalidAddressError,
    SelfTipError,
)
from tipbot.messages import t
from tipbot.notifier import Notifier
from tipbot.signing import MAX_VALID_BEFORE, AuthorizationSigner
from tipbot.tx_queue import TransactionQueue
from tipbot.wallet import WalletDeriver

logger = logging.getLogger(__name__)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


# -------- Recipient routing --------

@dataclass(frozen=True)
class OnChainRecipient:
    user_id: int
    platform_id: str
    address: str


@dataclass(frozen=True)
class InternalRecipient:
    user_id: int
    platform_id: str


RecipientRoute = Union[OnChainRecipient, InternalRecipient]


def route_recipient(user: models.User) -> RecipientRoute:
    if user.withdrawal_address:
        return OnChainRecipient(user_id=user.id, platform_id=user.platform_id, address=user.withdrawal_address)
    return InternalRecipient(user_id=user.id, platform_id=user.platform_id)


# -------- Results --------

@dataclass(frozen=True)
class TipOutcome:
    tip_id: int
    amount: Decimal
    on_chain: bool
    tips_left: int
    extra_balance: Decimal


@dataclass(frozen=True)
class SweepJob:
    user_index: int
    platform_id: str
    deposit_address: str
    destination: str
    amount: int  # token units
    valid_after: int
    valid_before: int


@dataclass(frozen=True)
class WithdrawalRequest:
    user_id: int
    platform_id: str
    address: str
    amount: Decimal


@dataclass(frozen=True)
class TipLine:
    counterparty: str
    amount: Decimal
    tx_hash: Optional[str]


@dataclass(frozen=True)
class BalanceSummary:
    tips_left: int
    free_balance: Decimal
    extra_balance: Decimal
    deposit_address: Optional[str]
    withdrawal_address: Optional[str]
    total_sent: Decimal
    total_received: Decimal
    recent_sent: List[TipLine]
    recent_received: List[TipLine]


class TipService:
    def __init__(
        self,
        *,
        chain: ChainGateway,
        queue: TransactionQueue,
        notifier: Notifier,
        deriver: WalletDeriver,
        signer: AuthorizationSigner,
        session_factory=None,
        clock: Callable[[], date] = _utc_today,
    ):
        self._chain = chain
        self._queue = queue
        self._notifier = notifier
        self._deriver = deriver
        self._signer = signer
        self._session_factory = session_factory
        self._clock = clock

    def _tx_url(self, tx_hash: str) -> str:
        return f"{settings.EXPLORER_TX_URL}{tx_hash}"

    async def _dm(self, platform_id: str, key: str, **kwargs) -> None:
        await self._notifier.send_direct_message(platform_id, t(key, **kwargs))

    # =========================
    # Tips
    # =========================

    async def tip(
        self,
        tipper_id: str,
        recipient_id: str,
        message_ref: str,
        *,
        tipper_name: str | None = None,
        recipient_name: str | None = None,
    ) -> TipOutcome:
        tipper_id, recipient_id = str(tipper_id), str(recipient_id)
        tipper_name = tipper_name or tipper_id
        recipient_name = recipient_name or recipient_id
        if tipper_id == recipient_id:
            raise SelfTipError()

        today = self._clock()
        with db_session(self._session_factory) as db:
            cfg = crud.get_settings(db)
            tip_amount = ledger.quantize_money(cfg.tip_amount)

            tipper = crud.get_or_create_user(db, tipper_id)
            recipient = crud.get_or_create_user(db, recipient_id)
            # both rows locked in id order; crossing tips (A->B, B->A) cannot deadlock
            crud.lock_users(db, [tipper.id, recipient.id])

            if crud.find_tip(db, tipper.id, recipient.id, message_ref):
                raise DuplicateTipError(message_ref)

            given, reset_date = ledger.tips_given_since_reset(tipper.tips_given_today, tipper.last_reset_date, today)
            # raises LimitReachedError before anything is mutated
            decision = ledger.evaluate_quota(
                tips_given_today=given,
                extra_balance=tipper.extra_balance,
                daily_limit=cfg.daily_limit,
                tip_amount=tip_amount,
            )

            if decision.uses_extra_balance:
                tipper.extra_balance = ledger.quantize_money(Decimal(tipper.extra_balance) - tip_amount)
            tipper.tips_given_today = decision.tips_given_after
            tipper.last_reset_date = reset_date
            db.add(tipper)

            route = route_recipient(recipient)
            remind_withdrawal = False
            match route:
                case InternalRecipient(user_id=uid):
                    remind_withdrawal = ledger.is_new_day(recipient.withdrawal_reminded_on, today)
                    if remind_withdrawal:
                        crud.mark_withdrawal_reminded(db, uid, today)
                    crud.credit_free_balance(db, uid, tip_amount)
                case OnChainRecipient():
                    pass  # moved by the queued job

            tip = crud.create_tip(
                db,
                from_user_id=tipper.id,
                to_user_id=recipient.id,
                amount=tip_amount,
                message_ref=message_ref,
            )
            outcome = TipOutcome(
                tip_id=tip.id,
                amount=tip_amount,
                on_chain=isinstance(route, OnChainRecipient),
                tips_left=ledger.free_tips_left(decision.tips_given_after, cfg.daily_limit),
                extra_balance=ledger.quantize_money(tipper.extra_balance),
            )

        logger.info(
            "tip #%s %s -> %s (%s, %s)",
            outcome.tip_id, tipper_id, recipient_id, outcome.amount,
            "on-chain" if outcome.on_chain else "internal",
        )

        match route:
            case OnChainRecipient():
                self._queue.enqueue(
                    lambda: self._deliver_onchain_tip(outcome, route, tipper_id, tipper_name, recipient_name),
                    label=f"tip:{outcome.tip_id}",
                    on_error=lambda e: self._dm(tipper_id, "TIP_ONCHAIN_FAILED", error=e),
                )
            case InternalRecipient():
                amount = ledger.format_amount(outcome.amount)
                await self._dm(
                    tipper_id, "TIP_SENT_INTERNAL",
                    recipient=recipient_name, amount=amount,
                    tips_left=outcome.tips_left, extra=ledger.format_amount(outcome.extra_balance),
                )
                await self._dm(route.platform_id, "TIP_RECEIVED_INTERNAL", tipper=tipper_name, amount=amount)
                if remind_withdrawal:
                    await self._dm(route.platform_id, "WITHDRAWAL_REMINDER")

        return outcome

    async def _deliver_onchain_tip(
        self,
        outcome: TipOutcome,
        route: OnChainRecipient,
        tipper_id: str,
        tipper_name: str,
        recipient_name: str,
    ) -> None:
        units = ledger.to_token_units(outcome.amount)
        amount = ledger.format_amount(outcome.amount)

        pool = await self._chain.balance_of(self._chain.admin_address)
        if pool < units:
            logger.warning("pool balance %s < %s, crediting tip #%s internally", pool, units, outcome.tip_id)
            with db_session(self._session_factory) as db:
                crud.credit_free_balance(db, route.user_id, outcome.amount)
            await self._dm(tipper_id, "TIP_POOL_FALLBACK_TIPPER", recipient=recipient_name, amount=amount)
            await self._dm(route.platform_id, "TIP_POOL_FALLBACK_RECIPIENT", tipper=tipper_name, amount=amount)
            return

        tx_hash = await self._chain.transfer(route.address, units)
        await self._chain.wait_for_confirmation(tx_hash, settings.REQUIRED_CONFIRMATIONS)

        with db_session(self._session_factory) as db:
            crud.attach_tx_hash(db, outcome.tip_id, tx_hash)

        tx_url = self._tx_url(tx_hash)
        await self._dm(
            tipper_id, "TIP_SENT_ONCHAIN",
            recipient=recipient_name, amount=amount, tx_url=tx_url,
            tips_left=outcome.tips_left, extra=ledger.format_amount(outcome.extra_balance),
        )
        await self._dm(route.platform_id, "TIP_RECEIVED_ONCHAIN", tipper=tipper_name, amount=amount, tx_url=tx_url)

    # =========================
    # Deposits
    # =========================

    def _ensure_deposit_address(self, db: Session, user: models.User) -> str:
        derived = self._deriver.derive_account(user.id).address
        if user.deposit_address != derived:
            crud.set_deposit_address(db, user, derived)
        return derived

    def deposit_address(self, platform_id: str) -> str:
        with db_session(self._session_factory) as db:
            user = crud.get_or_create_user(db, str(platform_id))
            return self._ensure_deposit_address(db, user)

    async def sweep_deposits(self, platform_id: str) -> SweepJob | None:
        """Queue a sweep of whatever sits on the user's deposit address."""
        platform_id = str(platform_id)
        with db_session(self._session_factory) as db:
            user = crud.get_or_create_user(db, platform_id)
            address = self._ensure_deposit_address(db, user)
            user_index = user.id

        balance = await self._chain.balance_of(address)
        if balance <= 0:
            return None

        job = SweepJob(
            user_index=user_index,
            platform_id=platform_id,
            deposit_address=address,
            destination=self._chain.admin_address,
            amount=balance,
            valid_after=0,
            valid_before=MAX_VALID_BEFORE,
        )
        self._queue.enqueue(
            lambda: self._run_sweep(job),
            label=f"sweep:{user_index}",
            on_error=lambda e: self._dm(platform_id, "DEPOSIT_FAILED", error=e),
        )
        return job

    async def _run_sweep(self, job: SweepJob) -> None:
        # an earlier job may already have moved part of it
        current = await self._chain.balance_of(job.deposit_address)
        units = min(job.amount, current)
        if units <= 0:
            logger.info("sweep for user %s: nothing left on %s", job.user_index, job.deposit_address)
            return

        gas = await self._chain.native_balance(self._chain.admin_address)
        if gas < settings.MIN_RELAY_GAS_WEI:
            # the pool can't relay; funds stay on the custodied deposit address
            logger.warning("pool gas %s below %s, crediting deposit of user %s unswept", gas, settings.MIN_RELAY_GAS_WEI, job.user_index)
            with db_session(self._session_factory) as db:
                user = self._locked_user(db, job.user_index)
                new_units = units - user.unswept_credit
                if new_units <= 0:
                    return
                credited = ledger.from_token_units(new_units)
                crud.credit_extra_balance(db, user.id, credited, unswept_units=units)
            await self._dm(job.platform_id, "DEPOSIT_CREDITED_UNSWEPT", amount=ledger.format_amount(credited))
            return

        account = self._deriver.local_account(job.user_index)
        auth = self._signer.sign_transfer_authorization(
            account, job.destination, units, job.valid_after, job.valid_before,
        )
        tx_hash = await self._chain.transfer_with_authorization(auth)
        await self._chain.wait_for_confirmation(tx_hash, settings.REQUIRED_CONFIRMATIONS)

        with db_session(self._session_factory) as db:
            user = self._locked_user(db, job.user_index)
            # units credited earlier while unswept are not credited again
            new_units = max(units - user.unswept_credit, 0)
            credited = ledger.from_token_units(new_units)
            crud.credit_extra_balance(
                db, user.id, credited,
                unswept_units=max(user.unswept_credit - units, 0),
            )

        await self._dm(
            job.platform_id, "DEPOSIT_SWEPT",
            amount=ledger.format_amount(ledger.from_token_units(units)), tx_url=self._tx_url(tx_hash),
        )

    def _locked_user(self, db: Session, user_id: int) -> models.User:
        return db.query(models.User).filter(models.User.id == user_id).with_for_update().one()

    # =========================
    # Withdrawals
    # =========================

    async def set_withdrawal_address(self, platform_id: str, address: str) -> WithdrawalRequest | None:
        platform_id = str(platform_id)
        address = (address or "").strip()
        if not Web3.is_address(address):
            raise InvalidAddressError(address)
        address = Web3.to_checksum_address(address)

        with db_session(self._session_factory) as db:
            user = crud.get_or_create_user(db, platform_id, for_update=True)
            crud.set_withdrawal_address(db, user, address)
            pending = ledger.quantize_money(user.free_balance or 0)
            user_id = user.id

        logger.info("user %s set withdrawal address %s", platform_id, address)
        if pending <= 0:
            return None

        request = WithdrawalRequest(user_id=user_id, platform_id=platform_id, address=address, amount=pending)
        self._queue.enqueue(
            lambda: self._run_withdrawal(request),
            label=f"withdraw:{user_id}",
            on_error=lambda e: self._on_withdrawal_error(request, e),
        )
        return request

    async def _run_withdrawal(self, request: WithdrawalRequest) -> None:
        with db_session(self._session_factory) as db:
            user = db.query(models.User).filter(models.User.id == request.user_id).one()
            # an earlier withdrawal job may already have paid part of it
            amount = min(request.amount, ledger.quantize_money(user.free_balance))
        if amount <= 0:
            return

        units = ledger.to_token_units(amount)
        pool = await self._chain.balance_of(self._chain.admin_address)
        if pool < units:
            raise InsufficientPoolBalanceError(pool, units)

        tx_hash = await self._chain.transfer(request.address, units)
        await self._chain.wait_for_confirmation(tx_hash, settings.REQUIRED_CONFIRMATIONS)

        with db_session(self._session_factory) as db:
            if not crud.debit_free_balance(db, request.user_id, amount):
                logger.error("withdrawal %s for user %s confirmed but balance debit failed", tx_hash, request.user_id)

        await self._dm(
            request.platform_id, "WITHDRAWAL_DONE",
            amount=ledger.format_amount(amount), tx_url=self._tx_url(tx_hash),
        )

    async def _on_withdrawal_error(self, request: WithdrawalRequest, error: BaseException) -> None:
        amount = ledger.format_amount(request.amount)
        if isinstance(error, InsufficientPoolBalanceError):
            await self._dm(request.platform_id, "WITHDRAWAL_POOL_LOW", amount=amount)
        else:
            await self._dm(request.platform_id, "WITHDRAWAL_FAILED", error=error)

    # =========================
    # Read side
    # =========================

    def balance_summary(self, platform_id: str) -> BalanceSummary:
        with db_session(self._session_factory) as db:
            cfg = crud.get_settings(db)
            user = crud.get_or_create_user(db, str(platform_id))
            given, _ = ledger.tips_given_since_reset(user.tips_given_today, user.last_reset_date, self._clock())
            return BalanceSummary(
                tips_left=ledger.free_tips_left(given, cfg.daily_limit),
                free_balance=ledger.quantize_money(user.free_balance or 0),
                extra_balance=ledger.quantize_money(user.extra_balance or 0),
                deposit_address=user.deposit_address,
                withdrawal_address=user.withdrawal_address,
                total_sent=crud.total_tipped(db, user.id),
                total_received=crud.total_tipped(db, user.id, received=True),
                recent_sent=[
                    TipLine(tip.to_user.platform_id, ledger.quantize_money(tip.amount), tip.tx_hash)
                    for tip in crud.recent_tips_sent(db, user.id)
                ],
                recent_received=[
                    TipLine(tip.from_user.platform_id, ledger.quantize_money(tip.amount), tip.tx_hash)
                    for tip in crud.recent_tips_received(db, user.id)
                ],
            )
