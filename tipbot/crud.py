# tipbot/crud.py
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, List

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tipbot import models
from tipbot.errors import ConfigurationError, DuplicateTipError


# -------- Users --------

def get_user(db: Session, platform_id: str, *, for_update: bool = False) -> models.User | None:
    q = db.query(models.User).filter(models.User.platform_id == str(platform_id))
    if for_update:
        q = q.with_for_update()
    return q.first()


def get_or_create_user(db: Session, platform_id: str, *, for_update: bool = False) -> models.User:
    """Lazy upsert; the new row is flushed (not committed) so it gets an id."""
    user = get_user(db, platform_id, for_update=for_update)
    if user:
        return user

    user = models.User(
        platform_id=str(platform_id),
        free_balance=Decimal("0"),
        extra_balance=Decimal("0"),
        tips_given_today=0,
        unswept_credit=0,
    )
    try:
        with db.begin_nested():
            db.add(user)
            db.flush()
    except IntegrityError:
        # a concurrent request created the same user first
        user = get_user(db, platform_id, for_update=for_update)
        if user is None:
            raise
    return user


def lock_users(db: Session, user_ids: Iterable[int]) -> List[models.User]:
    """Row-lock several users, always in ascending id order."""
    stmt = (
        select(models.User)
        .where(models.User.id.in_(sorted(set(user_ids))))
        .order_by(models.User.id.asc())
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(db.scalars(stmt))


def set_deposit_address(db: Session, user: models.User, addr: str) -> models.User:
    user.deposit_address = addr
    db.add(user)
    db.flush()
    return user


def set_withdrawal_address(db: Session, user: models.User, addr: str) -> models.User:
    user.withdrawal_address = addr
    db.add(user)
    db.flush()
    return user


def mark_withdrawal_reminded(db: Session, user_id: int, day: date) -> None:
    db.execute(update(models.User).where(models.User.id == user_id).values(withdrawal_reminded_on=day))


# -------- Balances (single UPDATE statements, safe under concurrent writers) --------

def credit_free_balance(db: Session, user_id: int, amount: Decimal) -> None:
    db.execute(
        update(models.User)
        .where(models.User.id == user_id)
        .values(free_balance=models.User.free_balance + amount)
    )


def debit_free_balance(db: Session, user_id: int, amount: Decimal) -> bool:
    """Returns False (and changes nothing) if the balance would go negative."""
    res = db.execute(
        update(models.User)
        .where(models.User.id == user_id, models.User.free_balance >= amount)
        .values(free_balance=models.User.free_balance - amount)
    )
    return res.rowcount == 1


def credit_extra_balance(db: Session, user_id: int, amount: Decimal, *, unswept_units: int | None = None) -> None:
    values = {"extra_balance": models.User.extra_balance + amount}
    if unswept_units is not None:
        values["unswept_credit"] = unswept_units
    db.execute(update(models.User).where(models.User.id == user_id).values(**values))


# -------- Tips --------

def find_tip(db: Session, from_user_id: int, to_user_id: int, message_ref: str) -> models.Tip | None:
    return (
        db.query(models.Tip)
        .filter(
            models.Tip.from_user_id == from_user_id,
            models.Tip.to_user_id == to_user_id,
            models.Tip.message_ref == message_ref,
        )
        .first()
    )


def create_tip(db: Session, *, from_user_id: int, to_user_id: int, amount: Decimal, message_ref: str) -> models.Tip:
    row = models.Tip(
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        amount=amount,
        message_ref=message_ref,
        tx_hash=None,
    )
    db.add(row)
    try:
        db.flush()
    except IntegrityError as e:
        # a concurrent request inserted the same (from, to, message) first
        raise DuplicateTipError(message_ref) from e
    return row


def attach_tx_hash(db: Session, tip_id: int, tx_hash: str) -> None:
    db.execute(update(models.Tip).where(models.Tip.id == tip_id).values(tx_hash=tx_hash))


def recent_tips_sent(db: Session, user_id: int, limit: int = 10) -> List[models.Tip]:
    return (
        db.query(models.Tip)
        .filter(models.Tip.from_user_id == user_id)
        .order_by(models.Tip.id.desc())
        .limit(limit)
        .all()
    )


def recent_tips_received(db: Session, user_id: int, limit: int = 10) -> List[models.Tip]:
    return (
        db.query(models.Tip)
        .filter(models.Tip.to_user_id == user_id)
        .order_by(models.Tip.id.desc())
        .limit(limit)
        .all()
    )


def total_tipped(db: Session, user_id: int, *, received: bool = False) -> Decimal:
    col = models.Tip.to_user_id if received else models.Tip.from_user_id
    total = db.query(func.coalesce(func.sum(models.Tip.amount), 0)).filter(col == user_id).scalar()
    return Decimal(str(total))


# -------- Settings --------

def get_settings(db: Session) -> models.Settings:
    row = db.query(models.Settings).order_by(models.Settings.id.asc()).first()
    if row is None:
        raise ConfigurationError("settings row missing; run tipbot-seed")
    return row


def admin_ids(db: Session) -> List[str]:
    row = db.query(models.Settings).order_by(models.Settings.id.asc()).first()
    if row is None or not row.admin_ids:
        return []
    return [x.strip() for x in row.admin_ids.split(",") if x.strip()]
