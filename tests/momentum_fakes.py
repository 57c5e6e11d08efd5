"""In-memory ledger, transaction and protocol doubles shared by the swap tests."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from exchanges.sui import CoinObject, ExecutionResult, InfrastructureError, SUI_COIN_TYPE
from helpers.sui_keys import load_signing_identity
from strategies.momentum_swapper import FixedAmount, TradingConfiguration


BASE_TYPE = "0x" + "a" * 64 + "::usdt::USDT"
QUOTE_TYPE = "0x" + "b" * 64 + "::usdc::USDC"
POOL_ID = "0x" + "c" * 64
PACKAGE_ID = "0x" + "d" * 64
VERSION_ID = "0x" + "e" * 64

TEST_SEED_HEX = "11" * 32


def make_identity():
    return load_signing_identity(TEST_SEED_HEX)


def make_config(trade_size: Any = None, **overrides: Any) -> TradingConfiguration:
    params: Dict[str, Any] = dict(
        pool_id=POOL_ID,
        base_token=BASE_TYPE,
        quote_token=QUOTE_TYPE,
        trade_size=trade_size or FixedAmount(Decimal("0.1")),
        rpc_url="http://localhost:9000",
        clmm_package_id=PACKAGE_ID,
        global_config=VERSION_ID,
        swap_interval_seconds=0.01,
    )
    params.update(overrides)
    return TradingConfiguration(**params)


class RecordingTransaction:
    """Stands in for ``AsyncTransaction`` and records every command in order."""

    _ARITY = {"flash_swap": 3, "swap_receipt_debts": 2}

    def __init__(self, fail_targets: Iterable[str] = ()):
        self.commands: List[tuple] = []
        self.fail_targets = tuple(fail_targets)
        self._counter = 0

    def _result(self, count: int = 1) -> Any:
        self._counter += 1
        if count == 1:
            return f"result{self._counter}"
        return [f"result{self._counter}_{index}" for index in range(count)]

    async def merge_coins(self, *, merge_to: Any, merge_from: List[Any]) -> None:
        self.commands.append(("merge_coins", merge_to, list(merge_from)))

    async def split_coin(self, *, coin: Any, amounts: List[Any]) -> Any:
        self.commands.append(("split_coin", coin, list(amounts)))
        return self._result()

    async def move_call(self, *, target: str, arguments: List[Any], type_arguments: Optional[List[str]] = None) -> Any:
        function = target.split("::")[-1]
        if function in self.fail_targets:
            raise RuntimeError(f"{function} unavailable")
        self.commands.append(("move_call", target, list(arguments), list(type_arguments or [])))
        return self._result(self._ARITY.get(function, 1))

    async def transfer_objects(self, *, transfers: List[Any], recipient: Any) -> None:
        self.commands.append(("transfer_objects", list(transfers), recipient))

    def names(self) -> List[str]:
        names = []
        for command in self.commands:
            if command[0] == "move_call":
                names.append(command[1].split("::")[-1])
            else:
                names.append(command[0])
        return names


class FakeLedger:
    """Balances, coins and metadata keyed by coin type."""

    def __init__(
        self,
        balances: Optional[Dict[str, int]] = None,
        coins: Optional[Dict[str, List[CoinObject]]] = None,
        decimals: Optional[Dict[str, int]] = None,
        failing_balances: Iterable[str] = (),
        execute_result: Optional[ExecutionResult] = None,
        execute_error: Optional[Exception] = None,
        fail_targets: Iterable[str] = (),
        metadata_failures: int = 0,
    ):
        self.balances = dict(balances or {})
        self.coins = dict(coins or {})
        self.decimals = dict(decimals or {})
        self.failing_balances = set(failing_balances)
        self.execute_result = execute_result or ExecutionResult(status="success", digest="0xdigest")
        self.execute_error = execute_error
        self.fail_targets = tuple(fail_targets)
        self.metadata_failures = metadata_failures
        self.metadata_calls: List[str] = []
        self.executed: List[Any] = []
        self.transactions: List[RecordingTransaction] = []

    async def get_balance(self, owner: str, coin_type: str) -> int:
        if coin_type in self.failing_balances:
            raise RuntimeError(f"balance lookup failed for {coin_type}")
        return self.balances.get(coin_type, 0)

    async def get_coins(self, owner: str, coin_type: str) -> List[CoinObject]:
        return list(self.coins.get(coin_type, []))

    async def get_coin_decimals(self, coin_type: str) -> Optional[int]:
        self.metadata_calls.append(coin_type)
        if self.metadata_failures > 0:
            self.metadata_failures -= 1
            raise InfrastructureError(f"Metadata ({coin_type}) request failed: timeout")
        return self.decimals.get(coin_type)

    def new_transaction(self) -> RecordingTransaction:
        txn = RecordingTransaction(self.fail_targets)
        self.transactions.append(txn)
        return txn

    async def execute(self, txn: Any, gas_budget: Optional[int] = None) -> ExecutionResult:
        self.executed.append((txn, gas_budget))
        if self.execute_error is not None:
            raise self.execute_error
        return self.execute_result


def funded_ledger(gas: int = 10 ** 9, base: int = 10 * 10 ** 6, quote: int = 10 * 10 ** 6, **kwargs: Any) -> FakeLedger:
    return FakeLedger(
        balances={SUI_COIN_TYPE: gas, BASE_TYPE: base, QUOTE_TYPE: quote},
        coins={
            BASE_TYPE: [CoinObject(object_id="0x" + "1" * 64, balance=base)] if base else [],
            QUOTE_TYPE: [CoinObject(object_id="0x" + "2" * 64, balance=quote)] if quote else [],
        },
        **kwargs,
    )


def plain_args(monkeypatch, *modules: Any) -> None:
    """Replace pysui argument wrappers with tagged tuples so commands compare by value."""
    for module in modules:
        for name, tag in (
            ("object_arg", "object"),
            ("address_arg", "address"),
            ("pure_bool", "bool"),
            ("pure_u64", "u64"),
            ("pure_u128", "u128"),
        ):
            if hasattr(module, name):
                monkeypatch.setattr(module, name, lambda value, _tag=tag: (_tag, value))
