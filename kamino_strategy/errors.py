from __future__ import annotations


class StrategyError(RuntimeError):
    """Base class for every failure raised while resolving or composing a strategy operation."""


class RpcError(StrategyError):
    pass


class ConfigError(StrategyError):
    pass


class AccountNotFound(StrategyError):
    def __init__(self, address: str, label: str = "account") -> None:
        super().__init__(f"{label} {address} 不存在")
        self.address = address
        self.label = label


class ReserveNotFound(AccountNotFound):
    def __init__(self, address: str) -> None:
        super().__init__(address, "reserve")


class DecodeError(StrategyError):
    pass


class ReserveDecodeError(DecodeError):
    pass


class ReserveUnavailable(StrategyError):
    """A reserve (or its oracle) listed by a vault allocation could not be loaded."""


class NoActiveAllocation(StrategyError):
    pass


class SwapUnavailable(StrategyError):
    pass


class AddressDerivationExhausted(StrategyError):
    pass


class AccountSchemaError(StrategyError):
    pass
