"""
Vault program instruction builders.

每条指令 = Anchor sighash(8 bytes) + Borsh 参数；账户 = 固定角色（按 schema 顺序）
+ remaining accounts（协议账户 -> reserve metas -> swap 账户，顺序不可调整）。

参数布局::

    initialize_strategy                 Option<Vec<u8>> disc, Option<Vec<u8>> args
    deposit_strategy / withdraw_strategy u64 amount, Option<Vec<u8>> disc, Option<Vec<u8>> args
    initialize_direct_withdraw_strategy Option<Vec<u8>> disc, Option<Vec<u8>> args, bool allow_user_args
    request_withdraw_vault              u64 amount, bool is_amount_in_lp, bool is_withdraw_all
    direct_withdraw_strategy            Option<Vec<u8>> user_args
"""

from __future__ import annotations

import logging
import struct
from typing import Mapping, Optional, Sequence

from kamino_strategy import addresses
from kamino_strategy.accounts import AccountMeta, AccountSchema, Instruction
from kamino_strategy.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    VOLTR_VAULT_PROGRAM_ID,
)
from kamino_strategy.pda_utils import instruction_discriminator
from kamino_strategy.schemas import (
    CREATE_ATA_IDEMPOTENT,
    DIRECT_WITHDRAW_STRATEGY,
    INITIALIZE_DIRECT_WITHDRAW_STRATEGY,
    INITIALIZE_STRATEGY,
    REQUEST_WITHDRAW_VAULT,
    STRATEGY_TRANSFER,
)

log = logging.getLogger(__name__)

CREATE_IDEMPOTENT_TAG = b"\x01"


# === Borsh helpers ===

def encode_u64(value: int) -> bytes:
    if value < 0 or value >= 1 << 64:
        raise ValueError(f"u64 out of range: {value}")
    return struct.pack("<Q", value)


def encode_bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def encode_option_bytes(value: Optional[bytes]) -> bytes:
    if value is None:
        return b"\x00"
    return b"\x01" + struct.pack("<I", len(value)) + bytes(value)


def _assemble(
    name: str,
    schema: AccountSchema,
    fixed: Mapping[str, str],
    remaining: Sequence[AccountMeta],
    args: bytes,
    program_id: str,
) -> Instruction:
    accounts = schema.build(fixed) + list(remaining)
    data = instruction_discriminator(name) + args
    log.debug("%s: %d fixed + %d remaining accounts, %d data bytes", name, len(schema), len(remaining), len(data))
    return Instruction(program_id=program_id, accounts=accounts, data=data)


def _strategy_roles(vault: str, strategy: str, adaptor_program: str, vault_program: str) -> dict:
    return {
        "protocol": addresses.protocol_address(vault_program),
        "vault": vault,
        "strategy": strategy,
        "adaptor_add_receipt": addresses.adaptor_add_receipt(vault, adaptor_program, vault_program),
        "strategy_init_receipt": addresses.strategy_init_receipt(vault, strategy, vault_program),
        "adaptor_program": adaptor_program,
    }


def initialize_strategy(
    *,
    payer: str,
    manager: str,
    vault: str,
    strategy: str,
    adaptor_program: str,
    discriminator: Optional[bytes],
    remaining_accounts: Sequence[AccountMeta] = (),
    additional_args: Optional[bytes] = None,
    vault_program: str = VOLTR_VAULT_PROGRAM_ID,
) -> Instruction:
    fixed = _strategy_roles(vault, strategy, adaptor_program, vault_program)
    fixed.update(
        payer=payer,
        manager=manager,
        vault_strategy_auth=addresses.vault_strategy_authority(vault, strategy, vault_program),
        system_program=SYSTEM_PROGRAM_ID,
    )
    args = encode_option_bytes(discriminator) + encode_option_bytes(additional_args)
    return _assemble("initialize_strategy", INITIALIZE_STRATEGY, fixed, remaining_accounts, args, vault_program)


def _transfer_roles(
    manager: str,
    vault: str,
    strategy: str,
    asset_mint: str,
    asset_token_program: str,
    adaptor_program: str,
    vault_program: str,
) -> dict:
    idle_auth = addresses.vault_asset_idle_authority(vault, vault_program)
    strategy_auth = addresses.vault_strategy_authority(vault, strategy, vault_program)
    fixed = _strategy_roles(vault, strategy, adaptor_program, vault_program)
    fixed.update(
        manager=manager,
        vault_asset_idle_auth=idle_auth,
        vault_asset_idle_ata=addresses.associated_token_address(idle_auth, asset_mint, asset_token_program),
        vault_strategy_auth=strategy_auth,
        vault_strategy_asset_ata=addresses.associated_token_address(strategy_auth, asset_mint, asset_token_program),
        vault_asset_mint=asset_mint,
        asset_token_program=asset_token_program,
    )
    return fixed


def deposit_strategy(
    *,
    manager: str,
    vault: str,
    strategy: str,
    asset_mint: str,
    adaptor_program: str,
    amount: int,
    discriminator: Optional[bytes],
    remaining_accounts: Sequence[AccountMeta] = (),
    additional_args: Optional[bytes] = None,
    asset_token_program: str = TOKEN_PROGRAM_ID,
    vault_program: str = VOLTR_VAULT_PROGRAM_ID,
) -> Instruction:
    fixed = _transfer_roles(manager, vault, strategy, asset_mint, asset_token_program, adaptor_program, vault_program)
    args = encode_u64(amount) + encode_option_bytes(discriminator) + encode_option_bytes(additional_args)
    return _assemble("deposit_strategy", STRATEGY_TRANSFER, fixed, remaining_accounts, args, vault_program)


def withdraw_strategy(
    *,
    manager: str,
    vault: str,
    strategy: str,
    asset_mint: str,
    adaptor_program: str,
    amount: int,
    discriminator: Optional[bytes],
    remaining_accounts: Sequence[AccountMeta] = (),
    additional_args: Optional[bytes] = None,
    asset_token_program: str = TOKEN_PROGRAM_ID,
    vault_program: str = VOLTR_VAULT_PROGRAM_ID,
) -> Instruction:
    """Claims reuse this with ``amount=0`` and the swap payload as ``additional_args``."""
    fixed = _transfer_roles(manager, vault, strategy, asset_mint, asset_token_program, adaptor_program, vault_program)
    args = encode_u64(amount) + encode_option_bytes(discriminator) + encode_option_bytes(additional_args)
    return _assemble("withdraw_strategy", STRATEGY_TRANSFER, fixed, remaining_accounts, args, vault_program)


def initialize_direct_withdraw_strategy(
    *,
    payer: str,
    admin: str,
    vault: str,
    strategy: str,
    adaptor_program: str,
    discriminator: Optional[bytes] = None,
    additional_args: Optional[bytes] = None,
    allow_user_args: bool = False,
    vault_program: str = VOLTR_VAULT_PROGRAM_ID,
) -> Instruction:
    fixed = _strategy_roles(vault, strategy, adaptor_program, vault_program)
    fixed.update(
        payer=payer,
        admin=admin,
        direct_withdraw_init_receipt=addresses.direct_withdraw_init_receipt(vault, strategy, vault_program),
        system_program=SYSTEM_PROGRAM_ID,
    )
    args = encode_option_bytes(discriminator) + encode_option_bytes(additional_args) + encode_bool(allow_user_args)
    return _assemble(
        "initialize_direct_withdraw_strategy",
        INITIALIZE_DIRECT_WITHDRAW_STRATEGY,
        fixed,
        (),
        args,
        vault_program,
    )


def request_withdraw_vault(
    *,
    payer: str,
    user: str,
    vault: str,
    amount: int,
    is_amount_in_lp: bool,
    is_withdraw_all: bool,
    lp_token_program: str = TOKEN_PROGRAM_ID,
    vault_program: str = VOLTR_VAULT_PROGRAM_ID,
) -> Instruction:
    lp_mint = addresses.vault_lp_mint(vault, vault_program)
    receipt = addresses.request_withdraw_vault_receipt(vault, user, vault_program)
    fixed = {
        "payer": payer,
        "user_transfer_authority": user,
        "protocol": addresses.protocol_address(vault_program),
        "vault": vault,
        "vault_lp_mint": lp_mint,
        "user_lp_ata": addresses.associated_token_address(user, lp_mint, lp_token_program),
        "request_withdraw_lp_ata": addresses.associated_token_address(receipt, lp_mint, lp_token_program),
        "request_withdraw_vault_receipt": receipt,
        "lp_token_program": lp_token_program,
        "system_program": SYSTEM_PROGRAM_ID,
    }
    args = encode_u64(amount) + encode_bool(is_amount_in_lp) + encode_bool(is_withdraw_all)
    return _assemble("request_withdraw_vault", REQUEST_WITHDRAW_VAULT, fixed, (), args, vault_program)


def direct_withdraw_strategy(
    *,
    user: str,
    vault: str,
    strategy: str,
    asset_mint: str,
    adaptor_program: str,
    remaining_accounts: Sequence[AccountMeta] = (),
    user_args: Optional[bytes] = None,
    asset_token_program: str = TOKEN_PROGRAM_ID,
    lp_token_program: str = TOKEN_PROGRAM_ID,
    vault_program: str = VOLTR_VAULT_PROGRAM_ID,
) -> Instruction:
    idle_auth = addresses.vault_asset_idle_authority(vault, vault_program)
    strategy_auth = addresses.vault_strategy_authority(vault, strategy, vault_program)
    lp_mint = addresses.vault_lp_mint(vault, vault_program)
    receipt = addresses.request_withdraw_vault_receipt(vault, user, vault_program)
    fixed = _strategy_roles(vault, strategy, adaptor_program, vault_program)
    fixed.update(
        user=user,
        direct_withdraw_init_receipt=addresses.direct_withdraw_init_receipt(vault, strategy, vault_program),
        vault_asset_idle_auth=idle_auth,
        vault_strategy_auth=strategy_auth,
        vault_lp_mint=lp_mint,
        request_withdraw_vault_receipt=receipt,
        request_withdraw_lp_ata=addresses.associated_token_address(receipt, lp_mint, lp_token_program),
        vault_asset_mint=asset_mint,
        vault_asset_idle_ata=addresses.associated_token_address(idle_auth, asset_mint, asset_token_program),
        vault_strategy_asset_ata=addresses.associated_token_address(strategy_auth, asset_mint, asset_token_program),
        user_asset_ata=addresses.associated_token_address(user, asset_mint, asset_token_program),
        asset_token_program=asset_token_program,
        lp_token_program=lp_token_program,
        system_program=SYSTEM_PROGRAM_ID,
    )
    args = encode_option_bytes(user_args)
    return _assemble(
        "direct_withdraw_strategy",
        DIRECT_WITHDRAW_STRATEGY,
        fixed,
        remaining_accounts,
        args,
        vault_program,
    )


def create_associated_token_account_idempotent(
    *,
    payer: str,
    associated_token: str,
    owner: str,
    mint: str,
    token_program: str = TOKEN_PROGRAM_ID,
) -> Instruction:
    """CreateIdempotent：账户已存在时是 no-op，因此不需要先查询。"""
    fixed = {
        "payer": payer,
        "associated_token": associated_token,
        "owner": owner,
        "mint": mint,
        "system_program": SYSTEM_PROGRAM_ID,
        "token_program": token_program,
    }
    return Instruction(
        program_id=ASSOCIATED_TOKEN_PROGRAM_ID,
        accounts=CREATE_ATA_IDEMPOTENT.build(fixed),
        data=CREATE_IDEMPOTENT_TAG,
    )


def ensure_token_account(payer: str, owner: str, mint: str, token_program: str = TOKEN_PROGRAM_ID) -> Instruction:
    return create_associated_token_account_idempotent(
        payer=payer,
        associated_token=addresses.associated_token_address(owner, mint, token_program),
        owner=owner,
        mint=mint,
        token_program=token_program,
    )
