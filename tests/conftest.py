"""Global test fixtures — hermetic environment, fake chain, temp ledger."""
import pytest

from core.config import FlywheelConfig
from core.ledger import JsonFileLedger

from fakes import PLATFORM_MINT, SEED, FakeRpc

ENV_KEYS = (
    "SEED_PHRASE", "SOLANA_RPC_URL", "HELIUS_API_KEY", "PLATFORM_TOKEN_MINT", "SWAP_VENUES",
    "LEDGER_BACKEND", "SUPABASE_URL", "SUPABASE_KEY", "CRON_SECRET", "WEBHOOK_SECRET",
    "WEBHOOK_URL", "TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID", "FLYWHEEL_DATA_DIR",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """No test sees the developer's .env values."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def config(tmp_path):
    return FlywheelConfig(
        seed_phrase=SEED,
        platform_token_mint=PLATFORM_MINT,
        settlement_timeout_seconds=0.05,
        project_pacing_seconds=0.0,
        data_dir=tmp_path,
        cron_secret="cron-secret",
    )


@pytest.fixture
def rpc():
    return FakeRpc()


@pytest.fixture
def ledger(tmp_path):
    return JsonFileLedger(tmp_path)
