# tipbot/messages.py
from __future__ import annotations

from typing import Dict

TEXTS: Dict[str, str] = {
    # ----- tipping -----
    "TIP_SELF": "You can't tip yourself!",
    "TIP_DUPLICATE": "You already tipped this post.",
    "TIP_LIMIT_REACHED": "You've reached your daily free tip limit and have no extra balance left!",
    "TIP_SENT_INTERNAL": (
        "You tipped {recipient} {amount} USDC!\n"
        "Free tips left today: {tips_left}. Extra balance: {extra} USDC."
    ),
    "TIP_RECEIVED_INTERNAL": (
        "🎉 You just received a tip from {tipper}!\n"
        "Amount: {amount} USDC (credited to your internal balance)"
    ),
    "TIP_QUEUED": "Tip to {recipient} is being sent on-chain…",
    "TIP_SENT_ONCHAIN": (
        "You tipped {recipient} {amount} USDC on-chain!\n"
        "View transaction: {tx_url}\n"
        "Free tips left today: {tips_left}. Extra balance: {extra} USDC."
    ),
    "TIP_RECEIVED_ONCHAIN": (
        "🎉 You just received a tip from {tipper}!\n"
        "Amount: {amount} USDC\n"
        "View transaction: {tx_url}"
    ),
    "TIP_POOL_FALLBACK_TIPPER": (
        "You tipped {recipient} {amount} USDC! "
        "(Insufficient on-chain balance, credited to their internal balance)"
    ),
    "TIP_POOL_FALLBACK_RECIPIENT": (
        "🎉 You just received a tip of {amount} USDC from {tipper}!\n"
        "The pool is low right now, so it was credited to your internal balance."
    ),
    "TIP_ONCHAIN_FAILED": "Tip failed to send on-chain: {error}",

    # ----- deposits -----
    "DEPOSIT_ADDRESS": (
        "Your USDC deposit address is: {address}\n"
        "Send USDC (Base chain) to this address and then send /update to me "
        "and I will update your extra tipping balance :)"
    ),
    "DEPOSIT_CHECKING": "Checking for deposits…",
    "DEPOSIT_NONE": "No new deposit found at {address}.",
    "DEPOSIT_SWEPT": "Your deposit of {amount} USDC has been processed! {tx_url}",
    "DEPOSIT_CREDITED_UNSWEPT": (
        "Your deposit of {amount} USDC has been credited to your extra balance. "
        "It will be moved to the pool later."
    ),
    "DEPOSIT_FAILED": "Processing your deposit failed: {error}",

    # ----- withdrawals -----
    "WITHDRAWAL_INVALID": "Invalid Ethereum address format. Please provide a valid address.",
    "WITHDRAWAL_REMINDER": "To withdraw your USDC, DM me a valid Ethereum address.",
    "WITHDRAWAL_SET": "Your withdrawal address has been set!",
    "WITHDRAWAL_SET_PENDING": "Your withdrawal address has been set! You have {amount} USDC available for withdrawal.",
    "WITHDRAWAL_DONE": "Your withdrawal of {amount} USDC has been processed! {tx_url}",
    "WITHDRAWAL_POOL_LOW": "The pool can't cover your withdrawal of {amount} USDC right now. Your balance is unchanged.",
    "WITHDRAWAL_FAILED": "Your withdrawal failed: {error}. Your balance is unchanged.",

    # ----- balance / help -----
    "BALANCE": (
        "💰 Your tip wallet\n\n"
        "Free tips left today: {tips_left}\n"
        "Internal balance: {free} USDC\n"
        "Extra balance: {extra} USDC\n"
        "Deposit address: {deposit}\n"
        "Withdrawal address: {withdrawal}\n\n"
        "Total tipped: {total_sent} USDC\n"
        "Total received: {total_received} USDC"
    ),
    "NOT_SET": "Not set",
    "HELP": (
        "Reply to a message with $ (or /tip) to tip its author.\n\n"
        "In a private chat with me:\n"
        "/deposit – your USDC deposit address\n"
        "/update – credit deposits you made\n"
        "/balance – balances and quota\n"
        "0x… – set your withdrawal address"
    ),
    "GENERIC_ERROR": "⚠️ Temporary error. Please try again later.",
    "PRIVATE_ONLY": "Please DM me for this command.",
}


def t(key: str, **kwargs) -> str:
    text = TEXTS.get(key, key)
    return text.format(**kwargs) if kwargs else text
