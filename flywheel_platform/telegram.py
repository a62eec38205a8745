"""
Telegram notifier — burn, platform burn, new project and cycle summaries.

Sends via the Bot API sendMessage endpoint with HTML parse mode. Errors
raise; the pipeline decides to swallow them.
"""

import html
import logging
from typing import Optional

import aiohttp

from core.collaborators import Notifier
from core.constitution import DEFAULTS

logger = logging.getLogger("flywheel.platform.telegram")

TELEGRAM_API_URL = "https://api.telegram.org"
EXPLORER_TX_URL = "https://solscan.io/tx/"


def _short(value: str, chars: int = 6) -> str:
    if not value or len(value) <= chars * 2:
        return value or ""
    return f"{value[:chars]}...{value[-chars:]}"


def _fmt_amount(value: float) -> str:
    if value >= 1_000_000_000:
        return f"{value / 1_000_000_000:.2f}B"
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f}M"
    if value >= 1_000:
        return f"{value / 1_000:.2f}K"
    return f"{value:.2f}"


def _tx_links(buy_signature: str, burn_signature: str) -> str:
    return (
        f'<a href="{EXPLORER_TX_URL}{buy_signature}">Buy TX</a> | '
        f'<a href="{EXPLORER_TX_URL}{burn_signature}">Burn TX</a>'
    )


class TelegramNotifier(Notifier):

    def __init__(self, bot_token: str, chat_id: str, timeout: float = DEFAULTS.HTTP_TIMEOUT_SECONDS):
        self._bot_token = bot_token
        self.chat_id = chat_id
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._sent: int = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def send_message(self, text: str) -> None:
        session = await self._get_session()
        url = f"{TELEGRAM_API_URL}/bot{self._bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        async with session.post(url, json=payload) as resp:
            if resp.status != 200:
                text = (await resp.text())[:200]
                raise RuntimeError(f"Telegram sendMessage HTTP {resp.status}: {text}")
        self._sent += 1

    async def notify_burn(self, project, leg) -> None:
        await self.send_message(
            "🔥 <b>BURN EXECUTED</b>\n\n"
            f"<b>Token:</b> {html.escape(project.label)}\n"
            f"<b>SOL Spent:</b> {leg.sol_spent:.4f} SOL\n"
            f"<b>Tokens Burned:</b> {_fmt_amount(leg.tokens_burned)}\n\n"
            + _tx_links(leg.buy_signature, leg.burn_signature)
        )

    async def notify_platform_burn(self, project, leg) -> None:
        await self.send_message(
            "🌊 <b>PLATFORM BURN</b>\n\n"
            f"<b>Tokens Burned:</b> {_fmt_amount(leg.tokens_burned)}\n"
            f"<b>SOL Spent:</b> {leg.sol_spent:.4f} SOL\n"
            f"<b>Source:</b> {html.escape(project.label)} ({_short(project.token_mint)})\n\n"
            + _tx_links(leg.buy_signature, leg.burn_signature)
        )

    async def notify_new_project(self, project) -> None:
        await self.send_message(
            "⚔️ <b>NEW PROJECT REGISTERED</b>\n\n"
            f"<b>Token:</b> {html.escape(project.token_name or project.token_ticker or 'Unknown')}\n"
            f"<b>Ticker:</b> {html.escape(project.token_ticker or '-')}\n"
            f"<b>Mint:</b> <code>{project.token_mint}</code>\n\n"
            f"<b>Deposit Wallet:</b>\n<code>{project.deposit_wallet}</code>"
        )

    async def notify_cycle_summary(self, summary: dict) -> None:
        await self.send_message(
            "📊 <b>CYCLE SUMMARY</b>\n\n"
            f"<b>Projects:</b> {summary.get('total', 0)}\n"
            f"<b>Burned:</b> {summary.get('succeeded', 0)} | "
            f"<b>Partial:</b> {summary.get('partial', 0)} | "
            f"<b>Failed:</b> {summary.get('failed', 0)}\n"
            f"<b>SOL Processed:</b> {summary.get('sol_spent', 0.0):.4f} SOL\n"
            f"<b>Tokens Burned:</b> {_fmt_amount(summary.get('tokens_burned', 0.0))}"
        )

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    def get_status(self) -> dict:
        return {"chat_id": self.chat_id, "sent": self._sent}
