# tipbot/bot/tip_bot.py
from __future__ import annotations

import logging

from telegram import Update, User as TgUser
from telegram.constants import ChatType
from telegram.ext import (
    Application,
    CommandHandler,
    MessageHandler,
    ContextTypes,
    filters,
)

from tipbot import ledger
from tipbot.blockchain import ChainGateway
from tipbot.core.config import settings
from tipbot.errors import DuplicateTipError, InvalidAddressError, LimitReachedError, SelfTipError
from tipbot.messages import t
from tipbot.notifier import Notifier
from tipbot.signing import AuthorizationSigner
from tipbot.tipping import TipService
from tipbot.tx_queue import TransactionQueue
from tipbot.wallet import ADMIN_INDEX, WalletDeriver

logger = logging.getLogger(__name__)

TIP_TRIGGER = filters.Regex(r"^\s*(\+?\$|💲|💵)\s*$")
ADDRESS_TEXT = filters.Regex(r"^\s*0x[a-fA-F0-9]{40}\s*$")


def display_name(tg_user: TgUser) -> str:
    if tg_user.username:
        return f"@{tg_user.username}"
    return tg_user.full_name or str(tg_user.id)


class TipBot:
    def __init__(self):
        self.application: Application | None = None
        self.queue: TransactionQueue | None = None
        self.service: TipService | None = None
        self.notifier: Notifier | None = None

    async def initialize(self):
        if not settings.BOT_TOKEN:
            logger.warning("BOT_TOKEN missing, bot disabled")
            return

        self.application = Application.builder().token(settings.BOT_TOKEN).build()

        # chain side: fails fast on missing mnemonic / RPC / token address
        deriver = WalletDeriver()
        chain = ChainGateway(deriver.local_account(ADMIN_INDEX))
        self.queue = TransactionQueue()
        self.queue.start()
        self.notifier = Notifier(self.application.bot)
        self.service = TipService(
            chain=chain,
            queue=self.queue,
            notifier=self.notifier,
            deriver=deriver,
            signer=AuthorizationSigner(),
        )
        logger.info("Admin pool address: %s", chain.admin_address)

        # Group: reply "$" or /tip to a message
        self.application.add_handler(CommandHandler("tip", self.cmd_tip, filters=filters.REPLY))
        self.application.add_handler(MessageHandler(filters.REPLY & TIP_TRIGGER, self.handle_tip_reply))

        # Private commands
        self.application.add_handler(CommandHandler(["start", "help"], self.cmd_help))
        self.application.add_handler(CommandHandler("deposit", self.cmd_deposit))
        self.application.add_handler(CommandHandler("update", self.cmd_update))
        self.application.add_handler(CommandHandler("balance", self.cmd_balance))
        self.application.add_handler(
            MessageHandler(filters.ChatType.PRIVATE & ADDRESS_TEXT, self.handle_address)
        )

        self.application.add_error_handler(self.on_error)

        await self.application.initialize()

        if settings.WEBHOOK_URL:
            url = f"{settings.WEBHOOK_URL.rstrip('/')}/webhook/telegram"
            await self.application.bot.set_webhook(url)
            logger.info("Webhook set: %s", url)

        logger.info("TipBot initialized")

    async def shutdown(self):
        if self.queue is not None:
            await self.queue.stop()
        if self.application is not None:
            await self.application.shutdown()

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        logger.error("Unhandled bot error", exc_info=context.error)
        if isinstance(update, Update) and update.effective_message:
            await update.effective_message.reply_text(t("GENERIC_ERROR"))

    async def _private_only(self, update: Update) -> bool:
        if update.effective_chat and update.effective_chat.type == ChatType.PRIVATE:
            return True
        await update.message.reply_text(t("PRIVATE_ONLY"))
        return False

    # --------- tipping ---------

    async def cmd_tip(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await self._tip_replied_message(update)

    async def handle_tip_reply(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await self._tip_replied_message(update)

    async def _tip_replied_message(self, update: Update):
        msg = update.message
        target = msg.reply_to_message if msg else None
        if target is None or target.from_user is None or target.from_user.is_bot:
            return

        tipper = update.effective_user
        recipient = target.from_user
        message_ref = f"{target.chat_id}:{target.message_id}"

        tipper_id = str(tipper.id)
        try:
            outcome = await self.service.tip(
                tipper_id,
                str(recipient.id),
                message_ref,
                tipper_name=display_name(tipper),
                recipient_name=display_name(recipient),
            )
        except SelfTipError:
            await self.notifier.send_direct_message(tipper_id, t("TIP_SELF"))
        except DuplicateTipError:
            await self.notifier.send_direct_message(tipper_id, t("TIP_DUPLICATE"))
        except LimitReachedError:
            await self.notifier.send_direct_message(tipper_id, t("TIP_LIMIT_REACHED"))
        else:
            if outcome.on_chain:
                await self.notifier.send_direct_message(
                    tipper_id, t("TIP_QUEUED", recipient=display_name(recipient))
                )

    # --------- private commands ---------

    async def cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text(t("HELP"))

    async def cmd_deposit(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._private_only(update):
            return
        address = self.service.deposit_address(str(update.effective_user.id))
        await update.message.reply_text(t("DEPOSIT_ADDRESS", address=address))

    async def cmd_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._private_only(update):
            return
        await update.message.reply_text(t("DEPOSIT_CHECKING"))
        job = await self.service.sweep_deposits(str(update.effective_user.id))
        if job is None:
            address = self.service.deposit_address(str(update.effective_user.id))
            await update.message.reply_text(t("DEPOSIT_NONE", address=address))

    async def cmd_balance(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._private_only(update):
            return
        s = self.service.balance_summary(str(update.effective_user.id))
        lines = [
            t(
                "BALANCE",
                tips_left=s.tips_left,
                free=ledger.format_amount(s.free_balance),
                extra=ledger.format_amount(s.extra_balance),
                deposit=s.deposit_address or t("NOT_SET"),
                withdrawal=s.withdrawal_address or t("NOT_SET"),
                total_sent=ledger.format_amount(s.total_sent),
                total_received=ledger.format_amount(s.total_received),
            )
        ]
        if s.recent_received:
            lines.append("\nRecently received:")
            for tip in s.recent_received:
                link = f" {settings.EXPLORER_TX_URL}{tip.tx_hash}" if tip.tx_hash else ""
                lines.append(f"• {ledger.format_amount(tip.amount)} USDC from {tip.counterparty}{link}")
        await update.message.reply_text("\n".join(lines))

    async def handle_address(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        text = (update.message.text or "").strip()
        try:
            request = await self.service.set_withdrawal_address(str(update.effective_user.id), text)
        except InvalidAddressError:
            await update.message.reply_text(t("WITHDRAWAL_INVALID"))
            return

        if request is None:
            await update.message.reply_text(t("WITHDRAWAL_SET"))
        else:
            await update.message.reply_text(
                t("WITHDRAWAL_SET_PENDING", amount=ledger.format_amount(request.amount))
            )


# --------- bootstrap ---------

_bot = TipBot()


async def initialize_bot():
    await _bot.initialize()


async def shutdown_bot():
    await _bot.shutdown()


async def process_webhook(update_dict: dict):
    if not _bot.application:
        return
    update = Update.de_json(update_dict, _bot.application.bot)
    await _bot.application.process_update(update)
