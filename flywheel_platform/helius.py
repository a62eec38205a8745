"""
Helius Webhook Manager — keep deposit wallets on the transfer webhook.

One enhanced TRANSFER webhook (identified by its callback URL) watches every
active deposit wallet. Registration adds one address; sync replaces the
whole list from the ledger.
"""

import logging
from typing import Optional

import aiohttp

from core.collaborators import WebhookRegistrar
from core.constitution import DEFAULTS

logger = logging.getLogger("flywheel.platform.helius")

HELIUS_API_URL = "https://api.helius.xyz/v0"


class HeliusError(Exception):
    pass


class HeliusWebhookManager(WebhookRegistrar):

    def __init__(
        self,
        api_key: str,
        webhook_url: str,
        auth_header: str = "",
        api_url: str = HELIUS_API_URL,
        timeout: float = DEFAULTS.HTTP_TIMEOUT_SECONDS,
    ):
        self._api_key = api_key
        self.webhook_url = webhook_url
        self._auth_header = auth_header
        self.api_url = api_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _request(self, method: str, path: str, body: Optional[dict] = None):
        session = await self._get_session()
        url = f"{self.api_url}{path}"
        try:
            async with session.request(method, url, params={"api-key": self._api_key}, json=body) as resp:
                if resp.status >= 400:
                    text = (await resp.text())[:200]
                    raise HeliusError(f"{method} {path} -> HTTP {resp.status}: {text}")
                if resp.content_type == "application/json":
                    return await resp.json()
                return None
        except aiohttp.ClientError as e:
            raise HeliusError(f"{method} {path}: {type(e).__name__}: {e}") from e

    def _webhook_body(self, addresses: list[str]) -> dict:
        body = {
            "webhookURL": self.webhook_url,
            "transactionTypes": ["TRANSFER"],
            "accountAddresses": addresses,
            "webhookType": "enhanced",
        }
        if self._auth_header:
            body["authHeader"] = self._auth_header
        return body

    # ── raw webhook API ──

    async def list_webhooks(self) -> list[dict]:
        return await self._request("GET", "/webhooks") or []

    async def create_webhook(self, addresses: list[str]) -> dict:
        return await self._request("POST", "/webhooks", self._webhook_body(addresses))

    async def update_webhook(self, webhook_id: str, addresses: list[str]) -> dict:
        return await self._request("PUT", f"/webhooks/{webhook_id}", self._webhook_body(addresses))

    async def find_own_webhook(self) -> Optional[dict]:
        for webhook in await self.list_webhooks():
            if webhook.get("webhookURL") == self.webhook_url:
                return webhook
        return None

    # ── WebhookRegistrar ──

    async def ensure_watched(self, address: str) -> None:
        webhook = await self.find_own_webhook()
        if webhook is None:
            await self.create_webhook([address])
            logger.info(f"Created webhook watching {address}")
            return

        addresses = list(webhook.get("accountAddresses") or [])
        if address in addresses:
            logger.debug(f"{address} already watched")
            return
        await self.update_webhook(webhook["webhookID"], addresses + [address])
        logger.info(f"Webhook now watching {len(addresses) + 1} wallets (+{address})")

    async def sync_all(self, addresses: list[str]) -> int:
        if not addresses:
            logger.info("No wallets to sync")
            return 0
        webhook = await self.find_own_webhook()
        if webhook is None:
            await self.create_webhook(addresses)
        else:
            await self.update_webhook(webhook["webhookID"], addresses)
        logger.info(f"Synced {len(addresses)} wallets to webhook")
        return len(addresses)

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
