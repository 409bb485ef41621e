"""
Account metas, instructions and ordered account-role schemas.

An instruction's account list is a positional contract with the program that
consumes it: every slot has a fixed role and writability. :class:`AccountSchema`
names those roles so a list is filled by role and checked (length, writability,
signer flags) before it leaves the package.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from kamino_strategy.errors import AccountSchemaError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountMeta:
    pubkey: str
    is_signer: bool
    is_writable: bool

    def to_json(self) -> Dict[str, Any]:
        return {
            "pubkey": self.pubkey,
            "isSigner": self.is_signer,
            "isWritable": self.is_writable,
        }


@dataclass
class Instruction:
    program_id: str
    accounts: List[AccountMeta]
    data: bytes

    def to_json(self) -> Dict[str, Any]:
        return {
            "programId": self.program_id,
            "accounts": [meta.to_json() for meta in self.accounts],
            "data": self.data.hex(),
        }


@dataclass(frozen=True)
class AccountSlot:
    name: str
    writable: bool
    signer: bool = False


@dataclass(frozen=True)
class AccountSchema:
    name: str
    slots: Tuple[AccountSlot, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.slots)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(slot.name for slot in self.slots)

    def build(self, addresses: Mapping[str, str]) -> List[AccountMeta]:
        """Fill every slot by role name; missing or unknown roles are errors."""
        expected = set(self.names)
        missing = [name for name in self.names if name not in addresses]
        unknown = sorted(set(addresses) - expected)
        if missing or unknown:
            raise AccountSchemaError(
                f"{self.name}: missing roles {missing}, unknown roles {unknown}"
            )
        metas = [
            AccountMeta(pubkey=addresses[slot.name], is_signer=slot.signer, is_writable=slot.writable)
            for slot in self.slots
        ]
        log.debug("%s: built %d accounts", self.name, len(metas))
        return metas

    def validate(self, metas: Sequence[AccountMeta]) -> None:
        if len(metas) != len(self.slots):
            raise AccountSchemaError(
                f"{self.name}: expected {len(self.slots)} accounts, got {len(metas)}"
            )
        for idx, (slot, meta) in enumerate(zip(self.slots, metas)):
            if meta.is_writable != slot.writable or meta.is_signer != slot.signer:
                raise AccountSchemaError(
                    f"{self.name}[{idx}] {slot.name}: expected writable={slot.writable} "
                    f"signer={slot.signer}, got writable={meta.is_writable} signer={meta.is_signer}"
                )

    def slot_of(self, metas: Sequence[AccountMeta], name: str) -> AccountMeta:
        return metas[self.names.index(name)]


def compose_remaining_accounts(
    protocol: Sequence[AccountMeta],
    *,
    reserves: Sequence[AccountMeta] = (),
    swap: Sequence[AccountMeta] = (),
) -> List[AccountMeta]:
    """
    Concatenate remaining-account groups in their fixed order:
    protocol accounts, then vault-wide reserve metas, then the swap leg.
    """
    return [*protocol, *reserves, *swap]


def unique_addresses(instructions: Iterable[Instruction]) -> List[str]:
    seen: Dict[str, None] = {}
    for ix in instructions:
        for meta in ix.accounts:
            seen.setdefault(meta.pubkey, None)
    return list(seen)
