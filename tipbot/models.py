# tipbot/models.py
from __future__ import annotations

from sqlalchemy import (
    Column,
    BigInteger,
    String,
    Numeric,
    DateTime,
    Date,
    Integer,
    Text,
    ForeignKey,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

# ledger scale == token decimals (USDC: 6)
MONEY = Numeric(24, 6)


class User(Base):
    __tablename__ = "users"

    # id doubles as the derivation index of the user's deposit account (0 is the admin pool)
    id = Column(Integer, primary_key=True, autoincrement=True)
    platform_id = Column(String(64), unique=True, nullable=False)

    deposit_address = Column(String(64), nullable=True)
    withdrawal_address = Column(String(64), nullable=True)

    free_balance = Column(MONEY, nullable=False, default=0)   # internal credit (received tips)
    extra_balance = Column(MONEY, nullable=False, default=0)  # deposited, swept credit

    tips_given_today = Column(Integer, nullable=False, default=0)
    last_reset_date = Column(Date, nullable=True)

    # "set a withdrawal address" nudge goes out at most once per day
    withdrawal_reminded_on = Column(Date, nullable=True)

    # token units credited to extra_balance but still sitting on the deposit address
    unswept_credit = Column(BigInteger, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)

    __table_args__ = (
        CheckConstraint("free_balance >= 0", name="ck_users_free_balance_non_negative"),
        CheckConstraint("extra_balance >= 0", name="ck_users_extra_balance_non_negative"),
        CheckConstraint("tips_given_today >= 0", name="ck_users_tips_given_today_non_negative"),
        CheckConstraint("unswept_credit >= 0", name="ck_users_unswept_credit_non_negative"),
    )


class Tip(Base):
    __tablename__ = "tips"

    id = Column(Integer, primary_key=True, autoincrement=True)

    from_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    to_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    amount = Column(MONEY, nullable=False)
    message_ref = Column(String(128), nullable=False)  # "<chat_id>:<message_id>"

    # set only once the on-chain transfer is confirmed
    tx_hash = Column(String(66), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)

    from_user = relationship("User", foreign_keys=[from_user_id])
    to_user = relationship("User", foreign_keys=[to_user_id])

    __table_args__ = (
        UniqueConstraint("from_user_id", "to_user_id", "message_ref", name="uq_tips_from_to_message"),
        CheckConstraint("from_user_id <> to_user_id", name="ck_tips_not_self"),
        Index("ix_tips_from_user", "from_user_id"),
        Index("ix_tips_to_user", "to_user_id"),
    )


class Settings(Base):
    """Single row of admin-tunable tipping parameters."""

    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    daily_limit = Column(Integer, nullable=False, default=10)
    tip_amount = Column(MONEY, nullable=False)
    admin_ids = Column(Text, nullable=True)  # comma separated platform ids
