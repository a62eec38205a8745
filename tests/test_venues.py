# =============================================================================
# INTEGRATION TESTS — Swap venue adapters against local HTTP stand-ins
# =============================================================================

import asyncio
import base64
from decimal import Decimal

import pytest
from aiohttp import web
from aiohttp import test_utils

from core.adapters.jupiter_adapter import JupiterAdapter
from core.adapters.pumpportal_adapter import PumpPortalAdapter, PumpPortalFeeClaimer
from core.adapters.solanatracker_adapter import SolanaTrackerAdapter
from core.constitution import SOL_MINT
from core.errors import VenueError
from core.wallet import derive_keypair

from fakes import PROJECT_MINT, SEED, unsigned_transaction

KEYPAIR = derive_keypair(SEED, 1)
OWNER = KEYPAIR.pubkey()


# =============================================================================
# HELPERS
# =============================================================================

async def _serve(routes):
    """Start a local aiohttp server with the given (method, path, handler) routes."""
    app = web.Application()
    for method, path, handler in routes:
        app.router.add_route(method, path, handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


# =============================================================================
# PUMPPORTAL
# =============================================================================

class TestPumpPortal:

    def test_buy_payload_and_raw_bytes(self):
        seen = {}

        async def trade(request):
            seen.update(await request.json())
            return web.Response(body=unsigned_transaction(OWNER))

        async def scenario():
            server = await _serve([("POST", "/api/trade-local", trade)])
            adapter = PumpPortalAdapter(slippage_percent=25, priority_fee_sol=0.0005,
                                        trade_url=str(server.make_url("/api/trade-local")))
            try:
                return await adapter.build_buy_transaction(OWNER, PROJECT_MINT, Decimal("0.0441"))
            finally:
                await adapter.close()
                await server.close()

        raw = asyncio.run(scenario())
        assert raw == unsigned_transaction(OWNER)
        assert seen == {
            "publicKey": str(OWNER),
            "action": "buy",
            "mint": PROJECT_MINT,
            "amount": 0.0441,
            "denominatedInSol": "true",
            "slippage": 25,
            "priorityFee": 0.0005,
            "pool": "auto",
        }

    def test_http_error_is_venue_error(self):
        async def trade(request):
            return web.Response(status=400, text="Bad Request: token not found")

        async def scenario():
            server = await _serve([("POST", "/api/trade-local", trade)])
            adapter = PumpPortalAdapter(trade_url=str(server.make_url("/api/trade-local")))
            try:
                await adapter.build_buy_transaction(OWNER, PROJECT_MINT, Decimal("0.01"))
            finally:
                await adapter.close()
                await server.close()

        with pytest.raises(VenueError, match="HTTP 400"):
            asyncio.run(scenario())

    def test_fee_claim_nothing_to_claim(self, rpc):
        async def trade(request):
            return web.Response(status=400, text="No fees to collect")

        async def scenario():
            server = await _serve([("POST", "/api/trade-local", trade)])
            adapter = PumpPortalAdapter(trade_url=str(server.make_url("/api/trade-local")))
            try:
                return await PumpPortalFeeClaimer(adapter, rpc).claim(KEYPAIR, PROJECT_MINT)
            finally:
                await adapter.close()
                await server.close()

        assert asyncio.run(scenario()) is None
        assert rpc.sent == []

    def test_fee_claim_submits_signed_transaction(self, rpc):
        async def trade(request):
            body = await request.json()
            assert body["action"] == "collectCreatorFee"
            return web.Response(body=unsigned_transaction(OWNER))

        async def scenario():
            server = await _serve([("POST", "/api/trade-local", trade)])
            adapter = PumpPortalAdapter(trade_url=str(server.make_url("/api/trade-local")))
            try:
                return await PumpPortalFeeClaimer(adapter, rpc).claim(KEYPAIR, PROJECT_MINT)
            finally:
                await adapter.close()
                await server.close()

        result = asyncio.run(scenario())
        assert result.success
        assert len(rpc.sent) == 1


# =============================================================================
# JUPITER
# =============================================================================

class TestJupiter:

    def test_quote_then_swap(self):
        seen = {}

        async def quote(request):
            seen["quote"] = dict(request.query)
            return web.json_response({"inAmount": "44100000", "outAmount": "123456"})

        async def swap(request):
            seen["swap"] = await request.json()
            encoded = base64.b64encode(unsigned_transaction(OWNER)).decode()
            return web.json_response({"swapTransaction": encoded})

        async def scenario():
            server = await _serve([("GET", "/swap/v1/quote", quote), ("POST", "/swap/v1/swap", swap)])
            adapter = JupiterAdapter(slippage_percent=25, priority_fee_sol=0.0005,
                                     api_url=str(server.make_url("/swap/v1")))
            try:
                return await adapter.build_buy_transaction(OWNER, PROJECT_MINT, Decimal("0.0441"))
            finally:
                await adapter.close()
                await server.close()

        raw = asyncio.run(scenario())
        assert raw == unsigned_transaction(OWNER)
        assert seen["quote"]["inputMint"] == SOL_MINT
        assert seen["quote"]["outputMint"] == PROJECT_MINT
        assert seen["quote"]["amount"] == "44100000"
        assert seen["quote"]["slippageBps"] == "2500"
        assert seen["swap"]["userPublicKey"] == str(OWNER)
        assert seen["swap"]["prioritizationFeeLamports"] == 500_000

    def test_no_route(self):
        async def quote(request):
            return web.json_response({"error": "Could not find any route"})

        async def scenario():
            server = await _serve([("GET", "/swap/v1/quote", quote)])
            adapter = JupiterAdapter(api_url=str(server.make_url("/swap/v1")))
            try:
                await adapter.build_buy_transaction(OWNER, PROJECT_MINT, Decimal("0.0441"))
            finally:
                await adapter.close()
                await server.close()

        with pytest.raises(VenueError, match="no route"):
            asyncio.run(scenario())


# =============================================================================
# SOLANATRACKER
# =============================================================================

class TestSolanaTracker:

    def test_swap_request(self):
        seen = {}

        async def swap(request):
            seen["query"] = dict(request.query)
            seen["api_key"] = request.headers.get("x-api-key")
            return web.json_response({"txn": base64.b64encode(unsigned_transaction(OWNER)).decode()})

        async def scenario():
            server = await _serve([("GET", "/swap", swap)])
            adapter = SolanaTrackerAdapter(api_key="st-key", api_url=str(server.make_url("/")))
            try:
                return await adapter.build_buy_transaction(OWNER, PROJECT_MINT, Decimal("0.0441"))
            finally:
                await adapter.close()
                await server.close()

        raw = asyncio.run(scenario())
        assert raw == unsigned_transaction(OWNER)
        assert seen["api_key"] == "st-key"
        assert seen["query"]["to"] == PROJECT_MINT
        assert seen["query"]["fromAmount"] == "0.0441"
