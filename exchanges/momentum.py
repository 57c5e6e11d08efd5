"""
Momentum (MMT) CLMM swap composition for Sui programmable transactions.

``MomentumPool.swap`` mirrors the SDK's high-level entry point: a flash swap
against the pool, repayment of the receipt debt from the caller's input coin,
and delivery of the output coin to the recipient, all inside the caller's
transaction. ``MomentumPool.flash_swap`` exposes the raw trade-module call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

from .sui import CLOCK_OBJECT_ID, address_arg, object_arg, pure_bool, pure_u64, pure_u128


MIN_SQRT_PRICE = 4295048016
MAX_SQRT_PRICE = 79226673515401279992447579055


@dataclass(frozen=True)
class PoolParams:
    """Pool object id and its ordered coin types (X is base, Y is quote)."""

    object_id: str
    token_x_type: str
    token_y_type: str


def default_sqrt_price_limit(is_x_to_y: bool) -> int:
    """Widest admissible limit, i.e. no price bound."""
    return MIN_SQRT_PRICE + 1 if is_x_to_y else MAX_SQRT_PRICE - 1


def _as_list(result: Any) -> List[Any]:
    if isinstance(result, (list, tuple)):
        return list(result)
    return [result]


class MomentumPool:
    """Compose Momentum trade-module calls into an ``AsyncTransaction``."""

    def __init__(self, package_id: str, version_object_id: str, clock_object_id: str = CLOCK_OBJECT_ID):
        self.package_id = package_id
        self.version_object_id = version_object_id
        self.clock_object_id = clock_object_id

    def _target(self, function: str) -> str:
        return f"{self.package_id}::trade::{function}"

    async def flash_swap(
        self,
        txn: Any,
        pool: PoolParams,
        *,
        is_x_to_y: bool,
        amount: int,
        sqrt_price_limit: int,
        version_object_id: Optional[str] = None,
        exact_input: bool = True,
    ) -> List[Any]:
        """Issue ``trade::flash_swap`` and return its (balance_x, balance_y, receipt) results."""
        result = await txn.move_call(
            target=self._target("flash_swap"),
            arguments=[
                object_arg(pool.object_id),
                pure_bool(is_x_to_y),
                pure_bool(exact_input),
                pure_u64(amount),
                pure_u128(sqrt_price_limit),
                object_arg(self.clock_object_id),
                object_arg(version_object_id or self.version_object_id),
            ],
            type_arguments=[pool.token_x_type, pool.token_y_type],
        )
        return _as_list(result)

    async def swap(
        self,
        txn: Any,
        pool: PoolParams,
        amount: int,
        input_coin: Any,
        is_x_to_y: bool,
        recipient: str,
        sqrt_price_limit: int = 0,
        use_mvr: bool = False,
    ) -> None:
        """Swap ``amount`` of ``input_coin`` through ``pool`` and send the proceeds to ``recipient``.

        A ``sqrt_price_limit`` of 0 means no limit. Move registry name
        resolution is not available through pysui, so ``use_mvr`` must stay
        False.
        """
        if use_mvr:
            raise ValueError("Move registry targets are not supported; use the package id")
        if amount <= 0:
            raise ValueError(f"Swap amount must be positive, got {amount}")

        limit = sqrt_price_limit or default_sqrt_price_limit(is_x_to_y)
        results = await self.flash_swap(txn, pool, is_x_to_y=is_x_to_y, amount=amount, sqrt_price_limit=limit)
        if len(results) < 3:
            raise RuntimeError(f"flash_swap returned {len(results)} results; expected balance_x, balance_y, receipt")
        receive_x, receive_y, receipt = results[:3]

        debts = _as_list(
            await txn.move_call(
                target=self._target("swap_receipt_debts"),
                arguments=[receipt],
                type_arguments=[],
            )
        )
        if len(debts) < 2:
            raise RuntimeError("swap_receipt_debts did not return both debt amounts")
        debt_x, debt_y = debts[:2]

        input_type = pool.token_x_type if is_x_to_y else pool.token_y_type
        other_type = pool.token_y_type if is_x_to_y else pool.token_x_type
        pay_coin = await txn.split_coin(coin=input_coin, amounts=[debt_x if is_x_to_y else debt_y])
        pay_balance = await txn.move_call(
            target="0x2::coin::into_balance",
            arguments=[pay_coin],
            type_arguments=[input_type],
        )
        zero_balance = await txn.move_call(
            target="0x2::balance::zero",
            arguments=[],
            type_arguments=[other_type],
        )
        pay_x, pay_y = (pay_balance, zero_balance) if is_x_to_y else (zero_balance, pay_balance)

        await txn.move_call(
            target=self._target("repay_flash_swap"),
            arguments=[
                object_arg(pool.object_id),
                receipt,
                pay_x,
                pay_y,
                object_arg(self.version_object_id),
            ],
            type_arguments=[pool.token_x_type, pool.token_y_type],
        )

        # Exact-input swaps leave nothing on the input side
        spent_balance, output_balance = (receive_x, receive_y) if is_x_to_y else (receive_y, receive_x)
        await txn.move_call(
            target="0x2::balance::destroy_zero",
            arguments=[spent_balance],
            type_arguments=[input_type],
        )
        output_coin = await txn.move_call(
            target="0x2::coin::from_balance",
            arguments=[output_balance],
            type_arguments=[other_type],
        )
        await txn.transfer_objects(transfers=[output_coin, input_coin], recipient=address_arg(recipient))
