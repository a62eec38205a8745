# =============================================================================
# UNIT TESTS — Deterministic wallet derivation
# =============================================================================

import hashlib

import pytest
from solders.keypair import Keypair

from core.constitution import BURN_ADDRESS_SEED
from core.wallet import burn_address, derive_keypair, wallet_address

from fakes import SEED


class TestDeriveKeypair:

    def test_same_inputs_same_key(self):
        """Derivation is a pure function of (secret, index)."""
        a = derive_keypair(SEED, 7)
        b = derive_keypair(SEED, 7)
        assert a.pubkey() == b.pubkey()
        assert bytes(a) == bytes(b)

    def test_matches_sha256_seed_scheme(self):
        """keypair(i) = Keypair.from_seed(sha256(f"{secret}-{i}"))."""
        expected = Keypair.from_seed(hashlib.sha256(f"{SEED}-3".encode()).digest())
        assert derive_keypair(SEED, 3).pubkey() == expected.pubkey()

    def test_indices_are_injective(self):
        """Distinct indices never collide across a realistic project range."""
        addresses = {wallet_address(SEED, i) for i in range(10_001)}
        assert len(addresses) == 10_001

    def test_different_secret_different_wallets(self):
        assert wallet_address(SEED, 1) != wallet_address(SEED + "x", 1)

    def test_platform_wallet_is_index_zero(self):
        assert wallet_address(SEED, 0) == str(derive_keypair(SEED, 0).pubkey())

    @pytest.mark.parametrize("index", [-1, 1.5, "1", True, None])
    def test_rejects_bad_index(self, index):
        with pytest.raises(ValueError):
            derive_keypair(SEED, index)

    def test_rejects_empty_secret(self):
        with pytest.raises(ValueError):
            derive_keypair("", 1)


class TestBurnAddress:

    def test_is_off_curve(self):
        """No private key can exist for the burn address."""
        assert not burn_address().is_on_curve()

    def test_stable_for_default_seed(self):
        assert burn_address() == burn_address(BURN_ADDRESS_SEED)

    def test_seed_changes_address(self):
        assert burn_address("other-seed") != burn_address()
