# tipbot/monitoring.py
from __future__ import annotations

import time
from typing import Any, Dict, List

from sqlalchemy import text

from tipbot import models
from tipbot.core.config import settings
from tipbot.database import get_sessionmaker


def _check(name: str, ok: bool, detail: str = "", extra: Dict[str, Any] | None = None) -> Dict[str, Any]:
    row: Dict[str, Any] = {"name": name, "ok": bool(ok)}
    if detail:
        row["detail"] = detail
    if extra:
        row["extra"] = extra
    return row


def run_selftest(quick: bool = True, session_factory=None) -> dict:
    checks: List[Dict[str, Any]] = []

    # --- ENV sanity (values never echoed) ---
    checks.append(_check("env:DATABASE_URL", bool(settings.DATABASE_URL)))
    checks.append(_check("env:ADMIN_WALLET_MNEMONIC", bool(settings.ADMIN_WALLET_MNEMONIC)))
    checks.append(_check("env:USDC_CONTRACT_ADDRESS", bool(settings.USDC_CONTRACT_ADDRESS)))
    checks.append(_check("env:BASE_RPC_URL", bool(settings.BASE_RPC_URL)))
    checks.append(_check("env:BOT_TOKEN", bool(settings.BOT_TOKEN), detail="optional (bot disabled if missing)"))

    # --- DB ---
    db_ok = False
    db_err = ""
    settings_ok = False
    t0 = time.time()
    try:
        db = (session_factory or get_sessionmaker())()
        try:
            db.execute(text("SELECT 1"))
            db_ok = True
            settings_ok = db.query(models.Settings).first() is not None
        finally:
            db.close()
    except Exception as e:
        db_err = repr(e)

    checks.append(_check("db:select1", db_ok, detail=db_err, extra={"ms": int((time.time() - t0) * 1000)}))
    checks.append(_check("db:settings_row", settings_ok, detail="" if settings_ok else "run tipbot-seed"))

    # --- Optional deeper checks (non-blocking for quick) ---
    if not quick:
        rpc_ok = False
        rpc_err = "skipped (BASE_RPC_URL missing)"
        if settings.BASE_RPC_URL:
            rpc_err = ""
            try:
                from web3 import Web3

                w3 = Web3(Web3.HTTPProvider(settings.BASE_RPC_URL, request_kwargs={"timeout": 5}))
                bn = w3.eth.block_number
                rpc_ok = w3.eth.chain_id == settings.CHAIN_ID
                rpc_err = f"block={bn}" if rpc_ok else f"unexpected chain id (block={bn})"
            except Exception as e:
                rpc_err = repr(e)

        checks.append(_check("base:rpc", rpc_ok, detail=rpc_err))

    status = "ok" if all(c.get("ok") for c in checks) else "degraded"
    return {"status": status, "checks": checks}
