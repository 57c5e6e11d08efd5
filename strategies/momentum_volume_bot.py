"""Alternating-direction volume bot for a single Momentum pool.

The controller swaps base->quote, then quote->base, and so on, one cycle every
``SWAP_INTERVAL_SECONDS``. A cycle that finds too little of the source asset
flips direction without trading; a failed swap keeps the direction so the next
cycle retries it from fresh balances.

Environment (``.env`` is loaded automatically):
    SUI_PRIVATE_KEY            -> bech32 / hex / base64 ed25519 key (required)
    MOMENTUM_POOL_ID           -> pool object id (required)
    MOMENTUM_CLMM_PACKAGE_ID   -> CLMM package id (required)
    MOMENTUM_GLOBAL_CONFIG     -> protocol version object id (required)
    BASE_TOKEN / QUOTE_TOKEN   -> full coin types of the pool's X / Y (required)
    SUI_RPC_URL                -> defaults to the public fullnode for NETWORK
    NETWORK                    -> mainnet | testnet (default: testnet)
    SWAP_AMOUNT                -> decimal per swap or ALL (default: 0.1)
    SLIPPAGE_TOLERANCE         -> fraction (default: 0.02)
    SWAP_INTERVAL_SECONDS      -> seconds between cycles (default: 5)
    SUI_GAS_BUDGET             -> optional gas budget in MIST
    MIN_GAS_BALANCE            -> pre-flight SUI floor (default: 0.05)
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import logging
import os
import signal
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Set, Tuple

import dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.append(str(PROJECT_ROOT))

from exchanges.sui import InfrastructureError, fullnode_url
from helpers.logger import TradingLogger
from helpers.sui_keys import InvalidKeyFormat, load_signing_identity
from strategies.momentum_swapper import (
    EventSink,
    FixedAmount,
    InsufficientHoldings,
    MomentumSwapper,
    SwapDirection,
    SwapEvent,
    SwapOutcome,
    TradingConfiguration,
    UseEntireBalance,
    is_eligible,
    required_amount,
    token_symbol,
)


_LOGGER = logging.getLogger(__name__)

# Rough USD marks for volume reporting only
TOKEN_PRICES: Dict[str, Decimal] = {
    "SUI": Decimal("3.5"),
    "USDT": Decimal("1.0"),
    "USDC": Decimal("1.0"),
}

ESTIMATED_GAS_PER_SWAP = Decimal("0.0015")

REQUIRED_ENV_VARS = (
    "SUI_PRIVATE_KEY",
    "MOMENTUM_POOL_ID",
    "MOMENTUM_CLMM_PACKAGE_ID",
    "MOMENTUM_GLOBAL_CONFIG",
    "BASE_TOKEN",
    "QUOTE_TOKEN",
)


class RunState(Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"


def estimate_usd_volume(amount: Decimal, coin_type: str) -> Decimal:
    """Value ``amount`` with the static price table; unknown symbols count 1:1."""
    symbol = token_symbol(coin_type, "UNKNOWN").upper()
    price = TOKEN_PRICES.get(symbol)
    if price is None:
        return amount
    return amount * price


@dataclass
class RunStatistics:
    """Counters accumulated over the whole process lifetime."""

    total_swaps: int = 0
    successful_swaps: int = 0
    failed_swaps: int = 0
    total_volume: Decimal = Decimal("0")
    total_volume_usd: Decimal = Decimal("0")
    total_gas_spent: Decimal = Decimal("0")
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_swap_time: Optional[datetime] = None

    def record(self, outcome: SwapOutcome, now: Optional[datetime] = None) -> Decimal:
        """Fold one attempted swap in and return its estimated USD volume."""
        self.total_swaps += 1
        self.last_swap_time = now or datetime.now(timezone.utc)
        if not outcome.success:
            self.failed_swaps += 1
            return Decimal("0")

        volume_usd = estimate_usd_volume(outcome.amount, outcome.from_token)
        self.successful_swaps += 1
        self.total_volume += outcome.amount
        self.total_volume_usd += volume_usd
        self.total_gas_spent += ESTIMATED_GAS_PER_SWAP
        return volume_usd

    def success_rate(self) -> Decimal:
        if self.total_swaps == 0:
            return Decimal("0")
        return (Decimal(self.successful_swaps) * Decimal("100") / Decimal(self.total_swaps)).quantize(Decimal("0.1"))

    def runtime_minutes(self, now: Optional[datetime] = None) -> int:
        current = now or datetime.now(timezone.utc)
        return int((current - self.start_time).total_seconds() // 60)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runtime_minutes": self.runtime_minutes(),
            "total_swaps": self.total_swaps,
            "successful_swaps": self.successful_swaps,
            "failed_swaps": self.failed_swaps,
            "success_rate": str(self.success_rate()),
            "total_volume": str(self.total_volume),
            "total_volume_usd": str(self.total_volume_usd.quantize(Decimal("0.01"))),
            "total_gas_spent": str(self.total_gas_spent),
            "start_time": self.start_time.isoformat(),
            "last_swap_time": self.last_swap_time.isoformat() if self.last_swap_time else None,
        }


def _parse_decimal(name: str, raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid decimal value for {name}: '{raw}'") from exc


def load_configuration_from_env(environ: Optional[Mapping[str, str]] = None) -> Tuple[TradingConfiguration, str]:
    """Build the run configuration and return it with the raw private key."""
    env = os.environ if environ is None else environ

    missing = [name for name in REQUIRED_ENV_VARS if not (env.get(name) or "").strip()]
    if missing:
        raise EnvironmentError(f"Missing required environment variables: {', '.join(missing)}")

    network = (env.get("NETWORK") or "testnet").strip().lower()
    rpc_url = (env.get("SUI_RPC_URL") or "").strip() or fullnode_url(network)

    swap_amount_raw = (env.get("SWAP_AMOUNT") or "0.1").strip()
    if swap_amount_raw.upper() == "ALL":
        trade_size: Any = UseEntireBalance()
    else:
        trade_size = FixedAmount(_parse_decimal("SWAP_AMOUNT", swap_amount_raw))

    interval_raw = (env.get("SWAP_INTERVAL_SECONDS") or "5").strip()
    try:
        interval = float(interval_raw)
    except ValueError as exc:
        raise ValueError(f"Invalid SWAP_INTERVAL_SECONDS '{interval_raw}'") from exc

    gas_budget_raw = (env.get("SUI_GAS_BUDGET") or "").strip()
    try:
        gas_budget = int(gas_budget_raw) if gas_budget_raw else None
    except ValueError as exc:
        raise ValueError(f"Invalid SUI_GAS_BUDGET '{gas_budget_raw}'") from exc

    config = TradingConfiguration(
        pool_id=env["MOMENTUM_POOL_ID"].strip(),
        base_token=env["BASE_TOKEN"].strip(),
        quote_token=env["QUOTE_TOKEN"].strip(),
        trade_size=trade_size,
        rpc_url=rpc_url,
        clmm_package_id=env["MOMENTUM_CLMM_PACKAGE_ID"].strip(),
        global_config=env["MOMENTUM_GLOBAL_CONFIG"].strip(),
        slippage_tolerance=_parse_decimal("SLIPPAGE_TOLERANCE", (env.get("SLIPPAGE_TOLERANCE") or "0.02").strip()),
        network=network,
        swap_interval_seconds=interval,
        min_gas_balance=_parse_decimal("MIN_GAS_BALANCE", (env.get("MIN_GAS_BALANCE") or "0.05").strip()),
        gas_budget=gas_budget,
    )
    return config, env["SUI_PRIVATE_KEY"].strip()


class MomentumVolumeBot:
    """Owns direction, statistics and the cycle schedule for one swapper."""

    def __init__(
        self,
        swapper: MomentumSwapper,
        *,
        event_sink: Optional[EventSink] = None,
        initial_direction: SwapDirection = SwapDirection.BASE_TO_QUOTE,
    ) -> None:
        self.swapper = swapper
        self.config = swapper.config
        self.event_sink: EventSink = event_sink or swapper.event_sink
        self.stats = RunStatistics()
        self.direction = initial_direction
        self.state = RunState.IDLE
        self.cycle_count = 0
        self._cycle_in_progress = False
        self._scheduler_task: Optional[asyncio.Task] = None
        self._cycle_tasks: Set[asyncio.Task] = set()
        self._stopped = asyncio.Event()

    def _emit(self, kind: str, **data: Any) -> None:
        self.event_sink(SwapEvent(kind=kind, data=data))

    def _notice(self, message: str, level: str = "INFO") -> None:
        self._emit("notice", message=message, level=level)

    def _set_state(self, state: RunState) -> None:
        previous = self.state
        self.state = state
        self._emit("controller_state", previous=previous.value, state=state.value)

    def _flip_direction(self, reason: str) -> None:
        previous = self.direction
        self.direction = previous.flipped()
        source = self.swapper.token_symbol(self.direction.source_side)
        target = self.swapper.token_symbol(self.direction.target_side)
        self._emit(
            "direction_changed",
            previous=previous.value,
            direction=self.direction.value,
            reason=reason,
            route=f"{source} -> {target}",
        )

    def _emit_statistics(self) -> None:
        self._emit("statistics", **self.stats.to_dict())

    @property
    def is_running(self) -> bool:
        return self.state is RunState.RUNNING

    async def preflight(self) -> bool:
        """Check gas and that at least one side can be traded."""
        try:
            snapshot = await self.swapper.inspect_wallet()
        except InfrastructureError as exc:
            self._emit("preflight", passed=False, reason=f"balance read failed: {exc}", warnings=[])
            return False

        self._emit("balance_snapshot", **snapshot.to_dict())

        warnings = []
        if snapshot.gas < self.config.low_gas_warning:
            warnings.append(f"SUI gas below {self.config.low_gas_warning}; top up to keep paying fees")

        strategy = self.config.trade_size
        if snapshot.gas < self.config.min_gas_balance:
            self._emit(
                "preflight",
                passed=False,
                reason=f"SUI gas {snapshot.gas} below minimum {self.config.min_gas_balance}",
                warnings=warnings,
            )
            return False

        if not (is_eligible(strategy, snapshot, "base") or is_eligible(strategy, snapshot, "quote")):
            self._emit(
                "preflight",
                passed=False,
                reason=(
                    f"need {required_amount(strategy)} {snapshot.base_symbol} or {snapshot.quote_symbol}; "
                    f"have {snapshot.base} / {snapshot.quote}"
                ),
                warnings=warnings,
            )
            return False

        self._emit("preflight", passed=True, reason="balances sufficient", warnings=warnings)
        return True

    async def start(self) -> bool:
        """Pre-flight, run one cycle immediately, then schedule the rest.

        Returns False (and leaves the state unchanged) when already running,
        already stopped, or when pre-flight fails.
        """
        if self.state is RunState.RUNNING:
            self._notice("start() ignored: bot is already running", "WARNING")
            return False
        if self.state is RunState.STOPPED:
            self._notice("start() ignored: bot was stopped and cannot be restarted", "WARNING")
            return False

        strategy = self.config.trade_size
        self._emit(
            "startup",
            network=self.config.network,
            address=self.swapper.address,
            pool_id=self.config.pool_id,
            base_token=self.config.base_token,
            quote_token=self.config.quote_token,
            use_all_balance=isinstance(strategy, UseEntireBalance),
            amount=str(strategy.amount) if isinstance(strategy, FixedAmount) else None,
            interval_seconds=self.config.swap_interval_seconds,
            slippage_tolerance=str(self.config.slippage_tolerance),
            key_format=self.swapper.identity.key_format,
        )

        if not await self.preflight():
            return False

        self._stopped.clear()
        self._set_state(RunState.RUNNING)
        await self.run_cycle()

        if self.state is RunState.RUNNING:
            self._scheduler_task = asyncio.create_task(self._schedule_cycles())
            self._notice(f"Swapping every {self.config.swap_interval_seconds}s; Ctrl+C to stop")
        return True

    async def stop(self) -> None:
        """Stop scheduling new cycles; an in-flight cycle is left to finish."""
        if self.state is not RunState.RUNNING:
            self._notice("stop() ignored: bot is not running", "WARNING")
            return

        self._set_state(RunState.STOPPED)
        task = self._scheduler_task
        self._scheduler_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._emit_statistics()
        self._stopped.set()

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    async def wait_for_cycles(self) -> None:
        """Wait for scheduled cycles that were already running when ``stop()`` was called."""
        tasks = list(self._cycle_tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _schedule_cycles(self) -> None:
        interval = self.config.swap_interval_seconds
        while self.state is RunState.RUNNING:
            await asyncio.sleep(interval)
            if self.state is not RunState.RUNNING:
                break
            if self._cycle_in_progress:
                self._emit("cycle_skipped", reason="previous cycle still in progress", cycle=self.cycle_count)
                continue
            task = asyncio.create_task(self.run_cycle())
            self._cycle_tasks.add(task)
            task.add_done_callback(self._on_cycle_done)

    def _on_cycle_done(self, task: asyncio.Task) -> None:
        self._cycle_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _LOGGER.error("Swap cycle crashed", exc_info=exc)
            self._notice(f"Swap cycle crashed: {exc}", "ERROR")

    async def run_cycle(self) -> Optional[SwapOutcome]:
        """Run one cycle unless another is in progress.

        Returns the swap outcome, or None when the cycle aborted before a swap
        was attempted (ineligible balance, no coins, or overlap).
        """
        if self._cycle_in_progress:
            self._emit("cycle_skipped", reason="previous cycle still in progress", cycle=self.cycle_count)
            return None
        self._cycle_in_progress = True
        try:
            return await self._perform_cycle()
        finally:
            self._cycle_in_progress = False

    def _failed_outcome(self, direction: SwapDirection, error: str) -> SwapOutcome:
        strategy = self.config.trade_size
        amount = strategy.amount if isinstance(strategy, FixedAmount) else Decimal("0")
        return SwapOutcome(
            success=False,
            timestamp=datetime.now(timezone.utc),
            amount=amount,
            from_token=self.swapper.token_type(direction.source_side),
            to_token=self.swapper.token_type(direction.target_side),
            error=error,
        )

    async def _perform_cycle(self) -> Optional[SwapOutcome]:
        self.cycle_count += 1
        direction = self.direction
        self._emit("cycle_start", cycle=self.cycle_count, direction=direction.value)

        try:
            snapshot = await self.swapper.inspect_wallet()
        except InfrastructureError as exc:
            outcome = self._failed_outcome(direction, str(exc))
            self._record(outcome, direction)
            return outcome

        self._emit("balance_snapshot", **snapshot.to_dict())

        side = direction.source_side
        strategy = self.config.trade_size
        eligible = is_eligible(strategy, snapshot, side)
        self._emit(
            "eligibility",
            direction=direction.value,
            eligible=eligible,
            symbol=snapshot.symbol(side),
            balance=str(snapshot.balance(side)),
            required=required_amount(strategy),
        )
        if not eligible:
            self._flip_direction("insufficient balance")
            return None

        try:
            outcome = await self.swapper.swap(direction, snapshot)
        except InsufficientHoldings as exc:
            self._notice(str(exc), "WARNING")
            self._flip_direction("no spendable coins")
            return None

        self._record(outcome, direction)
        if outcome.success:
            self._flip_direction("alternate after successful swap")
        return outcome

    def _record(self, outcome: SwapOutcome, direction: SwapDirection) -> None:
        volume_usd = self.stats.record(outcome)
        payload = outcome.to_dict()
        payload.update(
            direction=direction.value,
            volume_usd=str(volume_usd.quantize(Decimal("0.01"))),
            estimated_gas=str(ESTIMATED_GAS_PER_SWAP) if outcome.success else "0",
        )
        self._emit("swap_outcome", **payload)
        self._emit_statistics()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def _parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Alternate swaps through a Momentum pool on Sui to generate volume")
    parser.add_argument("--env-file", default=None, help="Optional path to a .env file to load before starting")
    parser.add_argument("--interval", default=None, type=float, help="Override SWAP_INTERVAL_SECONDS")
    parser.add_argument("--log-level", default="INFO", help="Log level for the activity log")
    parser.add_argument("--no-console-log", action="store_true", help="Disable console logging output")
    return parser.parse_args(list(argv) if argv is not None else None)


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, stopper: asyncio.Event) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stopper.set)
        except NotImplementedError:  # pragma: no cover - Windows fallback
            signal.signal(sig, lambda *_: stopper.set())


async def _async_main(args: argparse.Namespace) -> int:
    if args.env_file:
        if not dotenv.load_dotenv(args.env_file):
            _LOGGER.warning("Env file '%s' not found or empty; using existing process environment", args.env_file)
    else:
        dotenv.load_dotenv()

    config, secret = load_configuration_from_env()
    if args.interval:
        config = dataclasses.replace(config, swap_interval_seconds=args.interval)

    identity = load_signing_identity(secret)
    ticker = f"{token_symbol(config.base_token, 'BASE')}-{token_symbol(config.quote_token, 'QUOTE')}"
    logger = TradingLogger("momentum", ticker, log_to_console=not args.no_console_log, level=args.log_level)

    swapper = MomentumSwapper(config, identity, event_sink=logger.log_event)
    bot = MomentumVolumeBot(swapper, event_sink=logger.log_event)

    loop = asyncio.get_running_loop()
    stopper = asyncio.Event()
    _install_signal_handlers(loop, stopper)

    if not await bot.start():
        return 1

    stop_task = asyncio.create_task(stopper.wait())
    stopped_task = asyncio.create_task(bot.wait_stopped())
    done, pending = await asyncio.wait({stop_task, stopped_task}, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    if stop_task in done:
        logger.log("Shutdown requested via signal; stopping bot", "WARNING")
    await bot.stop()
    await bot.wait_for_cycles()
    return 0


def main(argv: Optional[Iterable[str]] = None) -> None:
    args = _parse_args(argv)
    _configure_logging(args.log_level)
    try:
        exit_code = asyncio.run(_async_main(args))
    except KeyboardInterrupt:  # pragma: no cover - CLI convenience
        _LOGGER.warning("Interrupted by user")
        return
    except (EnvironmentError, InvalidKeyFormat, ValueError) as exc:
        _LOGGER.error("Cannot start bot: %s", exc)
        sys.exit(1)
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
