"""
常用 program id / sysvar / seed 常量。

seed 字面量必须与链上程序逐字节一致，任何偏差都会导出错误的 PDA。
"""

from __future__ import annotations

RPC_DEFAULT = "http://127.0.0.1:8899"
JUPITER_LITE_ENDPOINT = "https://lite-api.jup.ag/swap/v1"

# 全零公钥 (PublicKey.default)，同时也是 System Program 的地址
DEFAULT_PUBKEY = "11111111111111111111111111111111"
SYSTEM_PROGRAM_ID = DEFAULT_PUBKEY
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdSbnjHr1P1a9wYFwS6gkU1GGzLRtXju6Rjt92"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
SYSVAR_RENT_PUBKEY = "SysvarRent111111111111111111111111111111111"
SYSVAR_INSTRUCTIONS_PUBKEY = "Sysvar1nstructions1111111111111111111111111"

KLEND_PROGRAM_ID = "KLend2g3cP87fffoy8q1mQqGKjrxjC8boSyAYavgmjD"
KVAULTS_PROGRAM_ID = "KvauGMspG5k6rtzrqqn7WNn3oZdyKqLKwK2XWQ8FLjd"
FARMS_PROGRAM_ID = "FarmsPZpWu9i7Kky8tPN37rs2TpmMrAZrC7S7vJa91Hr"
VOLTR_VAULT_PROGRAM_ID = "vVoLTRjQmtFpiYoegx285Ze4gsLJ8ZxgFKVcuvmG1a8"

# vault program seeds
SEED_PROTOCOL = b"protocol"
SEED_VAULT_STRATEGY_AUTH = b"vault_strategy_auth"
SEED_VAULT_ASSET_IDLE_AUTH = b"vault_asset_idle_auth"
SEED_VAULT_LP_MINT = b"vault_lp_mint"
SEED_STRATEGY_INIT_RECEIPT = b"strategy_init_receipt"
SEED_DIRECT_WITHDRAW_INIT_RECEIPT = b"direct_withdraw_init_receipt"
SEED_ADAPTOR_ADD_RECEIPT = b"adaptor_add_receipt"
SEED_REQUEST_WITHDRAW_VAULT_RECEIPT = b"request_withdraw_vault_receipt"

# lending program seeds
SEED_LENDING_MARKET_AUTH = b"lma"
SEED_USER_METADATA = b"user_meta"
SEED_RESERVE_LIQ_SUPPLY = b"reserve_liq_supply"
SEED_RESERVE_COLL_MINT = b"reserve_coll_mint"
OBLIGATION_TAG = 0
OBLIGATION_ID = 0

# pooled vault (kvault) seeds
SEED_SHARES = b"shares"
SEED_TOKEN_VAULT = b"token_vault"
SEED_BASE_AUTHORITY = b"authority"
SEED_EVENT_AUTHORITY = b"__event_authority"
SEED_CTOKEN_VAULT = b"ctoken_vault"

# farms seeds
SEED_FARM_USER = b"user"
SEED_REWARDS_VAULT = b"rvault"
SEED_FARM_VAULTS_AUTHORITY = b"authority"
SEED_REWARDS_TREASURY_VAULT = b"tvault"

DEFAULT_SLIPPAGE_BPS = 50
DEFAULT_MAX_SWAP_ACCOUNTS = 18
