"""
base58 / PDA 辅助函数，供地址推导、账户解码与指令组装复用。

所有公钥在本包内都以 base58 字符串传递，只有在计算 seed 或写入指令数据时
才转换成 32 字节。
"""

from __future__ import annotations

import hashlib
from typing import Iterable, Sequence, Tuple

from kamino_strategy.errors import AddressDerivationExhausted

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {c: i for i, c in enumerate(BASE58_ALPHABET)}
ED25519_P = 2**255 - 19
ED25519_D = (-121665 * pow(121666, -1, ED25519_P)) % ED25519_P
MAX_SEED_LEN = 32
PDA_MARKER = b"ProgramDerivedAddress"


def b58encode(data: bytes) -> str:
    num = int.from_bytes(data, "big")
    encoded = ""
    while num > 0:
        num, rem = divmod(num, 58)
        encoded = BASE58_ALPHABET[rem] + encoded
    pad = len(data) - len(data.lstrip(b"\x00"))
    return "1" * pad + encoded


def b58decode(data: str) -> bytes:
    """Decode a base58 public key into exactly 32 bytes."""
    num = 0
    for ch in data:
        try:
            num = num * 58 + _B58_INDEX[ch]
        except KeyError as exc:
            raise ValueError(f"invalid base58 character {ch!r} in {data!r}") from exc
    pad = len(data) - len(data.lstrip("1"))
    raw = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    raw = b"\x00" * pad + raw
    if len(raw) != 32:
        raise ValueError(f"{data!r} is not a 32-byte public key (got {len(raw)} bytes)")
    return raw


def is_on_curve(pubkey: bytes) -> bool:
    if len(pubkey) != 32:
        return False
    y = int.from_bytes(pubkey, "little") & ((1 << 255) - 1)
    y2 = (y * y) % ED25519_P
    u = (y2 - 1) % ED25519_P
    v = (ED25519_D * y2 + 1) % ED25519_P
    if v == 0:
        return False
    x2 = (u * pow(v, ED25519_P - 2, ED25519_P)) % ED25519_P
    x = pow(x2, (ED25519_P + 3) // 8, ED25519_P)
    if (x * x - x2) % ED25519_P != 0:
        x = (x * pow(2, (ED25519_P - 1) // 4, ED25519_P)) % ED25519_P
        if (x * x - x2) % ED25519_P != 0:
            return False
    return True


def create_program_address(
    seeds: Iterable[bytes],
    program_id: bytes,
) -> bytes:
    hasher = hashlib.sha256()
    for seed in seeds:
        if len(seed) > MAX_SEED_LEN:
            raise ValueError("seed 长度超过 32 字节")
        hasher.update(seed)
    hasher.update(program_id)
    hasher.update(PDA_MARKER)
    digest = hasher.digest()
    if is_on_curve(digest):
        raise ValueError("PDA 落在曲线上")
    return digest


def find_program_address(
    seeds: Sequence[bytes],
    program_id: str,
) -> Tuple[str, int]:
    """
    Return ``(address, bump)`` for ``seeds`` under ``program_id``.

    Bumps are searched from 255 downwards, so the first valid one is the
    canonical bump every on-chain program checks against.
    """
    program_bytes = b58decode(program_id)
    seeds_tuple = tuple(bytes(seed) for seed in seeds)
    for bump in range(255, -1, -1):
        try:
            addr = create_program_address(
                seeds_tuple + (bytes([bump]),),
                program_bytes,
            )
        except ValueError:
            continue
        return b58encode(addr), bump
    raise AddressDerivationExhausted(
        f"无法找到合法 PDA: program={program_id} seeds={[s.hex() for s in seeds_tuple]}"
    )


def derive_address(seeds: Sequence[bytes], program_id: str) -> str:
    address, _bump = find_program_address(seeds, program_id)
    return address


def pubkey_seed(address: str) -> bytes:
    return b58decode(address)


def u8_seed(value: int) -> bytes:
    return value.to_bytes(1, "little")


def find_ata(
    owner: str,
    mint: str,
    token_program: str,
    associated_token_program: str,
) -> str:
    # 允许 owner 本身就是 PDA (allowOwnerOffCurve)，不做曲线校验
    return derive_address(
        (b58decode(owner), b58decode(token_program), b58decode(mint)),
        associated_token_program,
    )


def anchor_discriminator(namespace: str, name: str) -> bytes:
    """Anchor 的 8 字节前缀: sha256("<namespace>:<name>")[:8]。"""
    return hashlib.sha256(f"{namespace}:{name}".encode("utf-8")).digest()[:8]


def instruction_discriminator(name: str) -> bytes:
    return anchor_discriminator("global", name)


def account_discriminator(name: str) -> bytes:
    return anchor_discriminator("account", name)


__all__ = [
    "BASE58_ALPHABET",
    "b58encode",
    "b58decode",
    "is_on_curve",
    "create_program_address",
    "find_program_address",
    "derive_address",
    "pubkey_seed",
    "u8_seed",
    "find_ata",
    "anchor_discriminator",
    "instruction_discriminator",
    "account_discriminator",
]
