"""Momentum pool swap engine.

One ``MomentumSwapper`` owns the signing identity and the ledger connection for
a run. A swap is four steps:

    1. ``inspect_wallet``  - fresh gas/base/quote balances.
    2. ``resolve_trade_amount`` - raw amount for the configured trade size.
    3. ``build_swap``      - merge/split coins and compose the pool call.
    4. ``submit``          - sign, execute, and map the status to a ``SwapOutcome``.

Base is the pool's X coin and quote its Y coin, so BASE_TO_QUOTE is x-to-y.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_FLOOR
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from exchanges.momentum import MomentumPool, PoolParams
from exchanges.sui import (
    CoinObject,
    InfrastructureError,
    ProtocolExecutionFailure,
    SUI_COIN_TYPE,
    SuiLedgerClient,
    address_arg,
    object_arg,
)
from helpers.sui_keys import SigningIdentity


_LOGGER = logging.getLogger(__name__)

SUI_PRECISION = 10 ** 9
STABLE_PRECISION = 10 ** 6
DEFAULT_PRECISION = 10 ** 9

# The flash_swap fallback ships with its own bound and version object; it does
# not honour TradingConfiguration.slippage_tolerance.
FALLBACK_SQRT_PRICE_LIMIT = 1000
FALLBACK_VERSION_OBJECT_ID = "0x2375a0b1ec12010aaea3b2545acfa2ad34cfbba03ce4b59f4c39e1e25eed1b2a"


class InsufficientHoldings(RuntimeError):
    """No spendable coin objects exist for the source asset."""


@dataclass(frozen=True)
class FixedAmount:
    amount: Decimal

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError(f"Fixed swap amount must be positive, got {self.amount}")


@dataclass(frozen=True)
class UseEntireBalance:
    pass


TradeSize = Union[FixedAmount, UseEntireBalance]


@dataclass(frozen=True)
class TradingConfiguration:
    """Immutable per-run trading parameters."""

    pool_id: str
    base_token: str
    quote_token: str
    trade_size: TradeSize
    rpc_url: str
    clmm_package_id: str
    global_config: str
    slippage_tolerance: Decimal = Decimal("0.02")
    network: str = "testnet"
    swap_interval_seconds: float = 5.0
    min_gas_balance: Decimal = Decimal("0.05")
    low_gas_warning: Decimal = Decimal("0.1")
    gas_budget: Optional[int] = None
    use_coin_metadata: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.trade_size, (FixedAmount, UseEntireBalance)):
            raise ValueError(f"Unsupported trade size strategy: {self.trade_size!r}")
        if not (Decimal("0") <= self.slippage_tolerance < Decimal("1")):
            raise ValueError(f"Slippage tolerance must be in [0, 1), got {self.slippage_tolerance}")
        if self.swap_interval_seconds <= 0:
            raise ValueError(f"Swap interval must be positive, got {self.swap_interval_seconds}")
        if self.network not in ("mainnet", "testnet", "devnet"):
            raise ValueError(f"Unsupported network '{self.network}'")

    @property
    def use_all_balance(self) -> bool:
        return isinstance(self.trade_size, UseEntireBalance)

    def pool_params(self) -> PoolParams:
        return PoolParams(object_id=self.pool_id, token_x_type=self.base_token, token_y_type=self.quote_token)


class SwapDirection(Enum):
    BASE_TO_QUOTE = "BASE_TO_QUOTE"
    QUOTE_TO_BASE = "QUOTE_TO_BASE"

    def flipped(self) -> "SwapDirection":
        if self is SwapDirection.BASE_TO_QUOTE:
            return SwapDirection.QUOTE_TO_BASE
        return SwapDirection.BASE_TO_QUOTE

    @property
    def source_side(self) -> str:
        return "base" if self is SwapDirection.BASE_TO_QUOTE else "quote"

    @property
    def target_side(self) -> str:
        return "quote" if self is SwapDirection.BASE_TO_QUOTE else "base"

    @property
    def is_x_to_y(self) -> bool:
        return self is SwapDirection.BASE_TO_QUOTE


@dataclass(frozen=True)
class WalletSnapshot:
    """Point-in-time balances; never reused across cycles."""

    gas: Decimal
    base: Decimal
    quote: Decimal
    base_symbol: str
    quote_symbol: str
    base_raw: int = 0
    quote_raw: int = 0
    base_precision: int = DEFAULT_PRECISION
    quote_precision: int = DEFAULT_PRECISION

    def balance(self, side: str) -> Decimal:
        return self.base if side == "base" else self.quote

    def raw_balance(self, side: str) -> int:
        return self.base_raw if side == "base" else self.quote_raw

    def precision(self, side: str) -> int:
        return self.base_precision if side == "base" else self.quote_precision

    def symbol(self, side: str) -> str:
        return self.base_symbol if side == "base" else self.quote_symbol

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gas": str(self.gas),
            "base": str(self.base),
            "quote": str(self.quote),
            "base_symbol": self.base_symbol,
            "quote_symbol": self.quote_symbol,
        }


@dataclass(frozen=True)
class SwapOutcome:
    success: bool
    timestamp: datetime
    amount: Decimal
    from_token: str
    to_token: str
    tx_digest: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "tx_digest": self.tx_digest,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
            "amount": str(self.amount),
            "from_token": self.from_token,
            "to_token": self.to_token,
        }


@dataclass(frozen=True)
class SwapEvent:
    """Discrete, serializable engine event handed to the presentation layer."""

    kind: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "timestamp": self.timestamp.isoformat(), "data": dict(self.data)}


EventSink = Callable[[SwapEvent], None]


@dataclass
class PendingSwap:
    """An assembled, unsigned swap transaction."""

    transaction: Any
    direction: SwapDirection
    raw_amount: int
    amount: Decimal
    from_token: str
    to_token: str
    route: str
    coin_count: int


def token_symbol(coin_type: str, fallback: str) -> str:
    symbol = coin_type.split("::")[-1] if coin_type else ""
    return symbol or fallback


def heuristic_precision(coin_type: str) -> int:
    """Guess 10**decimals from the coin type string."""
    if "::sui::SUI" in coin_type:
        return SUI_PRECISION
    if "::usdc::" in coin_type or "::USDC" in coin_type:
        return STABLE_PRECISION
    if "::usdt::" in coin_type or "::USDT" in coin_type:
        return STABLE_PRECISION
    return DEFAULT_PRECISION


def to_decimal_amount(raw: int, precision: int) -> Decimal:
    return Decimal(int(raw)) / Decimal(precision)


def resolve_trade_amount(strategy: TradeSize, snapshot: WalletSnapshot, side: str) -> Tuple[int, Decimal]:
    """Return ``(raw_amount, decimal_amount)`` to trade from ``side``."""
    precision = snapshot.precision(side)
    if isinstance(strategy, UseEntireBalance):
        raw = snapshot.raw_balance(side)
        return raw, to_decimal_amount(raw, precision)
    raw = int((strategy.amount * Decimal(precision)).to_integral_value(rounding=ROUND_FLOOR))
    return raw, strategy.amount


def is_eligible(strategy: TradeSize, snapshot: WalletSnapshot, side: str) -> bool:
    balance = snapshot.balance(side)
    if isinstance(strategy, UseEntireBalance):
        return balance > 0
    return balance >= strategy.amount


def required_amount(strategy: TradeSize) -> str:
    return "any" if isinstance(strategy, UseEntireBalance) else str(strategy.amount)


@dataclass(frozen=True)
class SwapLeg:
    pool: PoolParams
    amount: int
    input_coin: Any
    is_x_to_y: bool
    recipient: str


class PrimaryRoute:
    """Protocol swap entry point only; errors propagate."""

    name = "primary"
    has_fallback = False

    async def compose(
        self,
        protocol: MomentumPool,
        txn: Any,
        leg: SwapLeg,
        on_fallback: Callable[[Exception], None],
    ) -> str:
        await protocol.swap(
            txn,
            leg.pool,
            leg.amount,
            leg.input_coin,
            leg.is_x_to_y,
            leg.recipient,
            sqrt_price_limit=0,
            use_mvr=False,
        )
        return self.name


class PrimaryWithFallbackRoute(PrimaryRoute):
    """Protocol swap, falling back to a bare ``trade::flash_swap`` on any error."""

    has_fallback = True

    async def compose(
        self,
        protocol: MomentumPool,
        txn: Any,
        leg: SwapLeg,
        on_fallback: Callable[[Exception], None],
    ) -> str:
        try:
            return await super().compose(protocol, txn, leg, on_fallback)
        except ValueError:
            # Rejected inputs would fail the fallback as well
            raise
        except Exception as exc:  # noqa: BLE001 - any other primary failure selects the fallback
            on_fallback(exc)
        await protocol.flash_swap(
            txn,
            leg.pool,
            is_x_to_y=leg.is_x_to_y,
            amount=leg.amount,
            sqrt_price_limit=FALLBACK_SQRT_PRICE_LIMIT,
            version_object_id=FALLBACK_VERSION_OBJECT_ID,
        )
        return "fallback"


# TODO: confirm with the pool operators whether QUOTE_TO_BASE should also get the flash_swap fallback
SWAP_ROUTES: Dict[SwapDirection, PrimaryRoute] = {
    SwapDirection.BASE_TO_QUOTE: PrimaryWithFallbackRoute(),
    SwapDirection.QUOTE_TO_BASE: PrimaryRoute(),
}


def _noop_sink(event: SwapEvent) -> None:
    return None


class MomentumSwapper:
    """Balance inspection, trade sizing, transaction assembly and submission for one pool."""

    def __init__(
        self,
        config: TradingConfiguration,
        identity: SigningIdentity,
        ledger: Optional[SuiLedgerClient] = None,
        protocol: Optional[MomentumPool] = None,
        event_sink: Optional[EventSink] = None,
    ):
        self.config = config
        self.identity = identity
        self.ledger = ledger if ledger is not None else SuiLedgerClient(identity, config.rpc_url)
        self.protocol = protocol if protocol is not None else MomentumPool(
            package_id=config.clmm_package_id,
            version_object_id=config.global_config,
        )
        self.event_sink: EventSink = event_sink or _noop_sink
        self._precision_cache: Dict[str, int] = {}

    @property
    def address(self) -> str:
        return self.identity.address

    def token_type(self, side: str) -> str:
        return self.config.base_token if side == "base" else self.config.quote_token

    def token_symbol(self, side: str) -> str:
        return token_symbol(self.token_type(side), side.upper())

    def _emit(self, kind: str, **data: Any) -> None:
        self.event_sink(SwapEvent(kind=kind, data=data))

    async def precision_for(self, coin_type: str) -> int:
        """10**decimals for ``coin_type``: coin metadata first, then the type-name heuristic."""
        cached = self._precision_cache.get(coin_type)
        if cached is not None:
            return cached

        precision: Optional[int] = None
        if self.config.use_coin_metadata:
            try:
                decimals = await self.ledger.get_coin_decimals(coin_type)
            except InfrastructureError as exc:
                # Not cached: the next cycle asks the ledger again
                _LOGGER.warning("Metadata lookup for %s failed, using heuristic precision: %s", coin_type, exc)
                return heuristic_precision(coin_type)
            if decimals is not None and decimals >= 0:
                precision = 10 ** decimals
        if precision is None:
            precision = heuristic_precision(coin_type)
        self._precision_cache[coin_type] = precision
        return precision

    async def _token_balance(self, coin_type: str) -> int:
        # A coin type the wallet has never held may error instead of returning 0
        try:
            return await self.ledger.get_balance(self.address, coin_type)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.debug("Balance read for %s failed, treating as zero: %s", coin_type, exc)
            return 0

    async def inspect_wallet(self) -> WalletSnapshot:
        """Read gas, base and quote balances.

        Raises:
            InfrastructureError: the gas balance could not be read.
        """
        try:
            gas_raw = await self.ledger.get_balance(self.address, SUI_COIN_TYPE)
        except InfrastructureError:
            raise
        except Exception as exc:
            raise InfrastructureError(f"Failed to read SUI gas balance: {exc}") from exc

        base_raw = await self._token_balance(self.config.base_token)
        quote_raw = await self._token_balance(self.config.quote_token)
        base_precision = await self.precision_for(self.config.base_token)
        quote_precision = await self.precision_for(self.config.quote_token)

        return WalletSnapshot(
            gas=to_decimal_amount(gas_raw, SUI_PRECISION),
            base=to_decimal_amount(base_raw, base_precision),
            quote=to_decimal_amount(quote_raw, quote_precision),
            base_symbol=self.token_symbol("base"),
            quote_symbol=self.token_symbol("quote"),
            base_raw=base_raw,
            quote_raw=quote_raw,
            base_precision=base_precision,
            quote_precision=quote_precision,
        )

    async def build_swap(self, direction: SwapDirection, raw_amount: int, use_all: bool) -> PendingSwap:
        """Assemble the swap transaction for ``direction`` without submitting it.

        Raises:
            InsufficientHoldings: the wallet owns no coin of the source type.
            ValueError: the amount to swap is zero raw units.
        """
        source_type = self.token_type(direction.source_side)
        target_type = self.token_type(direction.target_side)
        if not use_all and raw_amount <= 0:
            raise ValueError(f"Swap amount rounds to {raw_amount} raw units of {token_symbol(source_type, 'source')}")

        coins: List[CoinObject] = await self.ledger.get_coins(self.address, source_type)
        if not coins:
            raise InsufficientHoldings(f"No {token_symbol(source_type, 'source')} coins available to swap")
        if use_all and sum(coin.balance for coin in coins) <= 0:
            raise ValueError(f"{token_symbol(source_type, 'source')} coins hold no balance to swap")

        txn = self.ledger.new_transaction()

        primary_coin = object_arg(coins[0].object_id)
        if len(coins) > 1:
            await txn.merge_coins(
                merge_to=primary_coin,
                merge_from=[object_arg(coin.object_id) for coin in coins[1:]],
            )

        if use_all:
            input_coin = primary_coin
            raw_amount = sum(coin.balance for coin in coins)
        else:
            input_coin = await txn.split_coin(coin=primary_coin, amounts=[raw_amount])

        leg = SwapLeg(
            pool=self.config.pool_params(),
            amount=raw_amount,
            input_coin=input_coin,
            is_x_to_y=direction.is_x_to_y,
            recipient=self.address,
        )

        def _on_fallback(exc: Exception) -> None:
            self._emit(
                "route_fallback",
                direction=direction.value,
                error=str(exc),
                sqrt_price_limit=FALLBACK_SQRT_PRICE_LIMIT,
                version_object_id=FALLBACK_VERSION_OBJECT_ID,
                slippage_tolerance=str(self.config.slippage_tolerance),
            )

        route = SWAP_ROUTES[direction]
        route_taken = await route.compose(self.protocol, txn, leg, _on_fallback)

        if not use_all:
            await txn.transfer_objects(transfers=[primary_coin], recipient=address_arg(self.address))

        precision = await self.precision_for(source_type)
        return PendingSwap(
            transaction=txn,
            direction=direction,
            raw_amount=raw_amount,
            amount=to_decimal_amount(raw_amount, precision),
            from_token=source_type,
            to_token=target_type,
            route=route_taken,
            coin_count=len(coins),
        )

    async def submit(self, pending: PendingSwap) -> SwapOutcome:
        """Sign and execute ``pending``; never raises."""
        timestamp = datetime.now(timezone.utc)
        try:
            result = await self.ledger.execute(pending.transaction, self.config.gas_budget)
            if not result.succeeded:
                raise ProtocolExecutionFailure(f"Transaction failed: {result.error or result.status}")
        except Exception as exc:  # noqa: BLE001 - every submission failure becomes a failed outcome
            return SwapOutcome(
                success=False,
                timestamp=timestamp,
                amount=pending.amount,
                from_token=pending.from_token,
                to_token=pending.to_token,
                error=str(exc) or exc.__class__.__name__,
            )

        return SwapOutcome(
            success=True,
            timestamp=timestamp,
            amount=pending.amount,
            from_token=pending.from_token,
            to_token=pending.to_token,
            tx_digest=result.digest,
        )

    async def swap(self, direction: SwapDirection, snapshot: Optional[WalletSnapshot] = None) -> SwapOutcome:
        """Resolve, build and submit one swap in ``direction``.

        ``InsufficientHoldings`` propagates; any other build error, including
        an amount below one raw unit, is reported as a failed outcome and
        nothing is submitted.
        """
        if snapshot is None:
            snapshot = await self.inspect_wallet()

        side = direction.source_side
        raw_amount, amount = resolve_trade_amount(self.config.trade_size, snapshot, side)
        from_token = self.token_type(side)
        to_token = self.token_type(direction.target_side)

        try:
            pending = await self.build_swap(direction, raw_amount, self.config.use_all_balance)
        except InsufficientHoldings:
            raise
        except Exception as exc:  # noqa: BLE001
            return SwapOutcome(
                success=False,
                timestamp=datetime.now(timezone.utc),
                amount=amount,
                from_token=from_token,
                to_token=to_token,
                error=str(exc) or exc.__class__.__name__,
            )

        return await self.submit(pending)
