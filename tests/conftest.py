"""
Tip bot - test fixtures.

SQLite in-memory database, a mocked chain gateway and a notifier that
records every DM. Signing and derivation use a well-known test mnemonic.
"""
from __future__ import annotations

import os
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# TEST-ONLY values; must be set before tipbot.core.config is imported
TEST_MNEMONIC = "test test test test test test test test test test test junk"
USDC_BASE = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ADMIN_WALLET_MNEMONIC", TEST_MNEMONIC)
os.environ.setdefault("USDC_CONTRACT_ADDRESS", USDC_BASE)
os.environ.setdefault("BASE_RPC_URL", "http://127.0.0.1:8545")
os.environ.pop("BOT_TOKEN", None)

from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tipbot.database import db_session, init_db, make_engine  # noqa: E402
from tipbot.seed import ensure_settings  # noqa: E402
from tipbot.signing import AuthorizationSigner, TokenDomain  # noqa: E402
from tipbot.tipping import TipService  # noqa: E402
from tipbot.tx_queue import TransactionQueue  # noqa: E402
from tipbot.wallet import WalletDeriver  # noqa: E402

FAKE_TX_HASH = "0x" + "ab" * 32


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def send_direct_message(self, platform_id: str, text: str) -> None:
        self.sent.append((str(platform_id), text))

    def to(self, platform_id: str) -> list[str]:
        return [text for pid, text in self.sent if pid == str(platform_id)]


class Clock:
    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today


@pytest.fixture
def engine():
    eng = make_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


@pytest.fixture
def seeded(session_factory):
    with db_session(session_factory) as db:
        ensure_settings(db, admins=["1000"])
    return session_factory


@pytest.fixture(scope="session")
def deriver():
    return WalletDeriver(TEST_MNEMONIC)


@pytest.fixture(scope="session")
def domain():
    return TokenDomain(name="USD Coin", version="2", chain_id=8453, verifying_contract=USDC_BASE)


@pytest.fixture(scope="session")
def signer(domain):
    return AuthorizationSigner(domain)


@pytest.fixture
def chain(deriver):
    """Mock ChainGateway: plenty of pool USDC and gas unless a test overrides it."""
    gw = MagicMock()
    gw.admin_address = deriver.admin_address
    gw.token_balances = {deriver.admin_address: 1_000 * 10**6}

    async def balance_of(address):
        return gw.token_balances.get(address, 0)

    gw.balance_of = AsyncMock(side_effect=balance_of)
    gw.native_balance = AsyncMock(return_value=10**18)
    gw.transfer = AsyncMock(return_value=FAKE_TX_HASH)
    gw.transfer_with_authorization = AsyncMock(return_value=FAKE_TX_HASH)
    gw.wait_for_confirmation = AsyncMock(return_value={"status": 1, "blockNumber": 100})
    return gw


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return Clock(date(2026, 10, 19))


@pytest_asyncio.fixture
async def queue():
    q = TransactionQueue(name="test")
    yield q
    await q.stop()


@pytest.fixture
def service(seeded, chain, queue, notifier, deriver, signer, clock):
    return TipService(
        chain=chain,
        queue=queue,
        notifier=notifier,
        deriver=deriver,
        signer=signer,
        session_factory=seeded,
        clock=clock,
    )
