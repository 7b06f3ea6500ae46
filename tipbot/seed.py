# tipbot/seed.py
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from tipbot import models
from tipbot.core.config import settings
from tipbot.database import db_session, init_db

logger = logging.getLogger(__name__)


def _parse_admins(raw: str | None) -> list[str]:
    return [x.strip() for x in (raw or "").split(",") if x.strip()]


def ensure_settings(db: Session, *, admins: list[str] | None = None) -> models.Settings:
    """Create the settings row once; later runs only sync the admin list."""
    row = db.query(models.Settings).order_by(models.Settings.id.asc()).first()
    if row is None:
        row = models.Settings(
            daily_limit=settings.DEFAULT_DAILY_LIMIT,
            tip_amount=settings.DEFAULT_TIP_AMOUNT,
        )
        db.add(row)
        logger.info("Settings row created (daily_limit=%s tip_amount=%s)", row.daily_limit, row.tip_amount)
    else:
        logger.info("Settings already exist, skipping defaults")

    if admins:
        row.admin_ids = ",".join(admins)
        logger.info("Updated admin ids: %s", admins)
    elif not row.admin_ids:
        logger.warning("No BOT_ADMINS found in environment variables")

    db.flush()
    return row


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    init_db()
    with db_session() as db:
        ensure_settings(db, admins=_parse_admins(settings.BOT_ADMINS))


if __name__ == "__main__":
    main()
