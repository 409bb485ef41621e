"""Tests for base58, PDA search and Anchor discriminators."""

import hashlib

import pytest

from builders import addr
from kamino_strategy import addresses
from kamino_strategy.constants import DEFAULT_PUBKEY, KLEND_PROGRAM_ID, VOLTR_VAULT_PROGRAM_ID
from kamino_strategy.errors import AddressDerivationExhausted
from kamino_strategy.pda_utils import (
    account_discriminator,
    b58decode,
    b58encode,
    find_program_address,
    instruction_discriminator,
    is_on_curve,
)


class TestBase58:
    def test_default_pubkey_is_zero_bytes(self):
        assert b58decode(DEFAULT_PUBKEY) == bytes(32)
        assert b58encode(bytes(32)) == DEFAULT_PUBKEY

    def test_leading_zero_bytes_survive(self):
        raw = b"\x00\x00" + hashlib.sha256(b"x").digest()[:30]
        assert b58decode(b58encode(raw)) == raw

    def test_rejects_invalid_character(self):
        with pytest.raises(ValueError):
            b58decode("0" * 32)

    def test_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            b58decode("abc")


class TestProgramAddress:
    def test_derivation_is_deterministic(self):
        seeds = [b"vault_strategy_auth", b58decode(addr("vault")), b58decode(addr("strategy"))]
        first = find_program_address(seeds, VOLTR_VAULT_PROGRAM_ID)
        second = find_program_address(list(seeds), VOLTR_VAULT_PROGRAM_ID)
        assert first == second
        assert 0 <= first[1] <= 255

    def test_result_is_off_curve(self):
        address, _bump = find_program_address([b"lma", b58decode(addr("market"))], KLEND_PROGRAM_ID)
        assert not is_on_curve(b58decode(address))

    def test_different_programs_give_different_addresses(self):
        seeds = [b"lma", b58decode(addr("market"))]
        assert find_program_address(seeds, KLEND_PROGRAM_ID) != find_program_address(seeds, VOLTR_VAULT_PROGRAM_ID)

    def test_oversized_seed_exhausts_search(self):
        with pytest.raises(AddressDerivationExhausted):
            find_program_address([b"x" * 33], KLEND_PROGRAM_ID)

    def test_ed25519_base_point_is_on_curve(self):
        base_point = bytes.fromhex("58" + "66" * 31)
        assert is_on_curve(base_point)

    def test_named_helpers_are_stable(self):
        vault, strategy = addr("vault"), addr("strategy")
        assert addresses.vault_strategy_authority(vault, strategy, VOLTR_VAULT_PROGRAM_ID) == addresses.vault_strategy_authority(
            vault, strategy, VOLTR_VAULT_PROGRAM_ID
        )
        assert addresses.obligation(vault, strategy, KLEND_PROGRAM_ID) != addresses.obligation(
            strategy, vault, KLEND_PROGRAM_ID
        )


class TestDiscriminators:
    def test_initialize_sighash(self):
        assert instruction_discriminator("initialize").hex() == "afaf6d1f0d989bed"

    def test_account_discriminator_namespace(self):
        assert account_discriminator("Reserve") == hashlib.sha256(b"account:Reserve").digest()[:8]
