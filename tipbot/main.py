# tipbot/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from tipbot.database import init_db
from tipbot.bot.tip_bot import initialize_bot, process_webhook, shutdown_bot
from tipbot.errors import ConfigurationError
from tipbot.monitoring import run_selftest

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # DB first, then the bot (which owns the transaction queue)
    try:
        init_db()
        logger.info("DB initialized")
    except Exception:
        logger.exception("DB init failed, serving without a schema check")

    try:
        await initialize_bot()
        logger.info("Bot initialized")
    except ConfigurationError:
        logger.critical("Bot configuration invalid, refusing to start")
        raise
    except Exception:
        logger.exception("Bot init failed, webhook updates will be ignored")

    yield

    # queued chain jobs finish before the process exits
    await shutdown_bot()


app = FastAPI(title="USDC Tip Bot", lifespan=lifespan)


@app.get("/")
async def root():
    return {"message": "USDC Tip Bot is running"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
async def ready():
    result = run_selftest(quick=True)
    return {"status": result.get("status", "unknown"), "checks": result.get("checks", [])}


@app.get("/selftest")
async def selftest():
    return run_selftest(quick=False)


@app.post("/webhook/telegram")
async def telegram_webhook(request: Request):
    """
    Telegram expects fast 200 responses.
    Even if we hit an internal exception, we return 200 to avoid retries storms.
    """
    try:
        update_dict = await request.json()
    except Exception:
        logger.warning("Webhook received invalid JSON")
        return JSONResponse({"ok": False, "error": "invalid_json"}, status_code=status.HTTP_200_OK)

    try:
        await process_webhook(update_dict)
        return JSONResponse({"ok": True}, status_code=status.HTTP_200_OK)
    except Exception:
        logger.exception("Webhook processing failed")
        return JSONResponse({"ok": False}, status_code=status.HTTP_200_OK)
