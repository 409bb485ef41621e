"""Tests for farm reward enumeration and the on-chain pending reward reader."""

from datetime import datetime, timezone

import pytest

from builders import WAD, FakeFarmSource, FakeFetcher, addr, farm_state_bytes, reward_info, user_state_bytes
from kamino_strategy import addresses
from kamino_strategy.constants import ASSOCIATED_TOKEN_PROGRAM_ID, FARMS_PROGRAM_ID, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from kamino_strategy.errors import AccountNotFound
from kamino_strategy.farms import (
    FarmsReader,
    PendingReward,
    UserFarm,
    enumerate_farm_claims,
    issued_between,
)
from kamino_strategy.layouts import TIME_UNIT_SLOTS, USER_STATE_LAYOUT, USER_STATE_SIZE, RewardPoint

AUTHORITY = addr("strategy-authority")
GLOBAL_CONFIG = addr("farm-global-config")
JTO = addr("jto-mint")


def _user_farm(label, amount, mint=JTO, program=TOKEN_PROGRAM_ID):
    return UserFarm(
        user_state_address=addr(f"{label}-user"),
        farm=addr(f"{label}-farm"),
        pending_rewards=(PendingReward(mint, program, amount),),
    )


class TestEnumerateFarmClaims:
    def test_zero_pending_is_skipped(self):
        """Two farms pending 0 and 42 give exactly one claim."""
        source = FakeFarmSource([_user_farm("a", 0), _user_farm("b", 42)])
        claims = enumerate_farm_claims(source, AUTHORITY, 1_700_000_000, GLOBAL_CONFIG)
        assert len(claims) == 1
        assert claims[0].farm_state == addr("b-farm")
        assert claims[0].reward_amount == 42

    def test_negative_and_empty_farms_skipped(self):
        empty = UserFarm(addr("c-user"), addr("c-farm"), ())
        source = FakeFarmSource([_user_farm("a", -5), empty])
        assert enumerate_farm_claims(source, AUTHORITY, 0, GLOBAL_CONFIG) == []

    def test_only_first_reward_is_used(self):
        farm = UserFarm(
            addr("a-user"),
            addr("a-farm"),
            (PendingReward(JTO, TOKEN_PROGRAM_ID, 10), PendingReward(addr("other"), TOKEN_PROGRAM_ID, 99)),
        )
        claims = enumerate_farm_claims(FakeFarmSource([farm]), AUTHORITY, 0, GLOBAL_CONFIG)
        assert [claim.reward_mint for claim in claims] == [JTO]

    def test_derived_addresses(self):
        farm = addr("b-farm")
        claim = enumerate_farm_claims(
            FakeFarmSource([_user_farm("b", 42, program=TOKEN_2022_PROGRAM_ID)]),
            AUTHORITY,
            0,
            GLOBAL_CONFIG,
        )[0]
        assert claim.user_state == addr("b-user")
        assert claim.rewards_vault == addresses.farm_rewards_vault(farm, JTO, FARMS_PROGRAM_ID)
        assert claim.farm_vaults_authority == addresses.farm_vaults_authority(farm, FARMS_PROGRAM_ID)
        assert claim.rewards_treasury_vault == addresses.farm_rewards_treasury_vault(GLOBAL_CONFIG, JTO, FARMS_PROGRAM_ID)
        assert claim.user_reward_ata == addresses.associated_token_address(AUTHORITY, JTO, TOKEN_2022_PROGRAM_ID)
        assert claim.reward_token_program == TOKEN_2022_PROGRAM_ID

    def test_reward_ata_instruction(self):
        claim = enumerate_farm_claims(FakeFarmSource([_user_farm("b", 42)]), AUTHORITY, 0, GLOBAL_CONFIG)[0]
        ix = claim.create_reward_ata_instruction(addr("manager"), AUTHORITY)
        assert ix.program_id == ASSOCIATED_TOKEN_PROGRAM_ID
        assert ix.data == b"\x01"
        assert [meta.pubkey for meta in ix.accounts][:4] == [addr("manager"), claim.user_reward_ata, AUTHORITY, JTO]
        assert ix.accounts[0].is_signer and ix.accounts[0].is_writable
        assert ix.accounts[-1].pubkey == TOKEN_PROGRAM_ID

    def test_skip_is_logged(self, caplog):
        source = FakeFarmSource([_user_farm("a", 0)])
        with caplog.at_level("INFO", logger="kamino_strategy.farms"):
            enumerate_farm_claims(source, AUTHORITY, 0, GLOBAL_CONFIG)
        assert "no rewards to claim for farm" in caplog.text


class TestIssuedBetween:
    def test_single_segment(self):
        assert issued_between([RewardPoint(0, 10)], 1000, 1100) == 1000

    def test_rate_change_mid_window(self):
        curve = [RewardPoint(0, 10), RewardPoint(1050, 20), RewardPoint(2**64 - 1, 0)]
        assert issued_between(curve, 1000, 1100) == 50 * 10 + 50 * 20

    def test_schedule_starts_later(self):
        assert issued_between([RewardPoint(1080, 5)], 1000, 1100) == 100

    def test_empty_window(self):
        assert issued_between([RewardPoint(0, 10)], 1100, 1100) == 0


def _reader_setup(rewards_available=10**12, unclaimed=5, time_unit=0):
    fetcher = FakeFetcher()
    farm = addr("farm-1")
    fetcher.add(
        farm,
        farm_state_bytes(
            [
                reward_info(
                    JTO,
                    rewards_available=rewards_available,
                    curve=[(0, 10)],
                    last_issuance_ts=1000,
                )
            ],
            total_active_stake_scaled=1000 * WAD,
            time_unit=time_unit,
        ),
    )
    fetcher.add_program_account(
        FARMS_PROGRAM_ID,
        addr("user-1"),
        user_state_bytes(farm, AUTHORITY, active_stake_scaled=250 * WAD, rewards_issued_unclaimed=[unclaimed]),
    )
    return fetcher, farm


class TestFarmsReader:
    def test_projects_pending_rewards(self):
        fetcher, farm = _reader_setup()
        farms = FarmsReader(fetcher).get_all_farms_for_user(AUTHORITY, 1100)
        assert len(farms) == 1
        assert farms[0].farm == farm
        assert farms[0].user_state_address == addr("user-1")
        reward = farms[0].pending_rewards[0]
        # 100s * 10/s = 1000 issued, 25% of stake -> 250, plus 5 unclaimed
        assert reward.cumulated_pending_rewards == 255
        assert reward.reward_token_mint == JTO
        assert reward.reward_token_program == TOKEN_PROGRAM_ID

    def test_issuance_capped_by_rewards_available(self):
        fetcher, _farm = _reader_setup(rewards_available=100)
        reward = FarmsReader(fetcher).get_all_farms_for_user(AUTHORITY, 1100)[0].pending_rewards[0]
        assert reward.cumulated_pending_rewards == 25 + 5

    def test_slot_based_farm_is_not_projected(self):
        fetcher, _farm = _reader_setup(time_unit=TIME_UNIT_SLOTS)
        reward = FarmsReader(fetcher).get_all_farms_for_user(AUTHORITY, 1100)[0].pending_rewards[0]
        assert reward.cumulated_pending_rewards == 5

    def test_accepts_datetime(self):
        fetcher, _farm = _reader_setup()
        as_of = datetime.fromtimestamp(1100, tz=timezone.utc)
        reward = FarmsReader(fetcher).get_all_farms_for_user(AUTHORITY, as_of)[0].pending_rewards[0]
        assert reward.cumulated_pending_rewards == 255

    def test_round_trips(self):
        fetcher, _farm = _reader_setup()
        FarmsReader(fetcher).get_all_farms_for_user(AUTHORITY, 1100)
        assert fetcher.count("get_program_accounts") == 1
        assert fetcher.count("get_multiple_accounts") == 1
        _name, (program, filters) = fetcher.calls[0]
        assert program == FARMS_PROGRAM_ID
        assert {"dataSize": USER_STATE_SIZE} in filters
        assert {"memcmp": {"offset": USER_STATE_LAYOUT["owner"], "bytes": AUTHORITY}} in filters

    def test_other_owners_filtered(self):
        fetcher, farm = _reader_setup()
        fetcher.add_program_account(FARMS_PROGRAM_ID, addr("user-2"), user_state_bytes(farm, addr("someone-else")))
        farms = FarmsReader(fetcher).get_all_farms_for_user(AUTHORITY, 1100)
        assert [farm.user_state_address for farm in farms] == [addr("user-1")]

    def test_sorted_by_user_state(self):
        fetcher, farm = _reader_setup()
        fetcher.add_program_account(FARMS_PROGRAM_ID, addr("user-0"), user_state_bytes(farm, AUTHORITY))
        farms = FarmsReader(fetcher).get_all_farms_for_user(AUTHORITY, 1100)
        listed = [farm.user_state_address for farm in farms]
        assert listed == sorted(listed)

    def test_no_user_states(self):
        fetcher = FakeFetcher()
        assert FarmsReader(fetcher).get_all_farms_for_user(AUTHORITY, 0) == []
        assert fetcher.count("get_multiple_accounts") == 0

    def test_missing_farm_state(self):
        fetcher = FakeFetcher()
        fetcher.add_program_account(FARMS_PROGRAM_ID, addr("user-1"), user_state_bytes(addr("gone"), AUTHORITY))
        with pytest.raises(AccountNotFound):
            FarmsReader(fetcher).get_all_farms_for_user(AUTHORITY, 0)
