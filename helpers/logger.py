"""
Trading logger with structured swap events and a CSV swap journal.
"""

import os
import csv
import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

import pytz


class TradingLogger:
    """File/console logger for a single pool run.

    Besides plain ``log`` calls the logger renders the engine's structured
    events (anything exposing ``kind`` and ``to_dict()``) into one readable line
    each, and appends every swap outcome to ``<exchange>_<ticker>_swaps.csv``.
    """

    def __init__(self, exchange: str, ticker: str, log_to_console: bool = False, level: str = "INFO"):
        self.exchange = exchange
        self.ticker = ticker
        project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
        logs_dir = os.getenv('LOG_DIR') or os.path.join(project_root, 'logs')
        os.makedirs(logs_dir, exist_ok=True)

        swap_file_name = f"{exchange}_{ticker}_swaps.csv"
        activity_file_name = f"{exchange}_{ticker}_activity.log"

        account_name = os.getenv('ACCOUNT_NAME')
        if account_name:
            swap_file_name = f"{exchange}_{ticker}_{account_name}_swaps.csv"
            activity_file_name = f"{exchange}_{ticker}_{account_name}_activity.log"

        self.log_file = os.path.join(logs_dir, swap_file_name)
        self.debug_log_file = os.path.join(logs_dir, activity_file_name)
        self.timezone = pytz.timezone(os.getenv('TIMEZONE', 'Asia/Ho_Chi_Minh'))
        self.logger = self._setup_logger(log_to_console, level)

    def _setup_logger(self, log_to_console: bool, level: str) -> logging.Logger:
        logger = logging.getLogger(f"volume_bot_{self.exchange}_{self.ticker}")
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))

        # Keep swap output out of the root logger
        logger.propagate = False

        if logger.handlers:
            return logger

        class TimeZoneFormatter(logging.Formatter):
            def __init__(self, fmt=None, datefmt=None, tz=None):
                super().__init__(fmt=fmt, datefmt=datefmt)
                self.tz = tz

            def formatTime(self, record, datefmt=None):
                dt = datetime.fromtimestamp(record.created, tz=self.tz)
                if datefmt:
                    return dt.strftime(datefmt)
                return dt.isoformat()

        formatter = TimeZoneFormatter(
            "%(asctime)s.%(msecs)03d - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            tz=self.timezone
        )

        file_handler = logging.FileHandler(self.debug_log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        if log_to_console:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

        return logger

    def log(self, message: str, level: str = "INFO"):
        """Log a message with the specified level."""
        formatted_message = f"[{self.exchange.upper()}_{self.ticker.upper()}] {message}"
        level_no = getattr(logging, level.upper(), logging.INFO)
        if not isinstance(level_no, int):
            level_no = logging.INFO
        self.logger.log(level_no, formatted_message)

    def log_event(self, event: Any) -> None:
        """Render a structured engine event.

        The full payload always goes to the activity file at DEBUG as JSON; a
        short human line is emitted at the level the event kind calls for.
        """
        payload = event.to_dict()
        kind = payload.get("kind", "event")
        data: Dict[str, Any] = payload.get("data") or {}

        self.log(f"event={kind} {json.dumps(data, default=_json_default, sort_keys=True)}", "DEBUG")

        line, level = _render_event(kind, data)
        if line:
            self.log(line, level)

        if kind == "swap_outcome":
            self.log_transaction(
                tx_digest=data.get("tx_digest") or "",
                direction=data.get("direction") or "",
                amount=data.get("amount"),
                from_token=data.get("from_token") or "",
                to_token=data.get("to_token") or "",
                status="SUCCESS" if data.get("success") else "FAILED",
                error=data.get("error"),
            )

    def log_transaction(
        self,
        tx_digest: str,
        direction: str,
        amount: Any,
        from_token: str,
        to_token: str,
        status: str,
        error: Optional[str] = None,
    ):
        """Append a swap to the CSV journal."""
        try:
            timestamp = datetime.now(self.timezone).strftime("%Y-%m-%d %H:%M:%S")
            row = [timestamp, tx_digest, direction, amount, from_token, to_token, status, error or ""]

            file_exists = os.path.isfile(self.log_file)

            with open(self.log_file, 'a', newline='', encoding='utf-8') as csvfile:
                writer = csv.writer(csvfile)
                if not file_exists:
                    writer.writerow(['Timestamp', 'Digest', 'Direction', 'Amount', 'From', 'To', 'Status', 'Error'])
                writer.writerow(row)

        except OSError as e:
            self.log(f"Failed to log swap: {e}", "ERROR")


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _symbol(coin_type: Optional[str]) -> str:
    if not coin_type:
        return "?"
    return coin_type.split("::")[-1]


def _render_event(kind: str, data: Dict[str, Any]) -> Tuple[str, str]:
    if kind == "startup":
        strategy = "ALL BALANCE" if data.get("use_all_balance") else f"{data.get('amount')} tokens"
        return (
            f"Initialized on {data.get('network')} | wallet={data.get('address')} | pool={data.get('pool_id')} | "
            f"pair={_symbol(data.get('base_token'))}/{_symbol(data.get('quote_token'))} | strategy={strategy} | "
            f"interval={data.get('interval_seconds')}s | slippage={data.get('slippage_tolerance')} | "
            f"key_format={data.get('key_format')}",
            "INFO",
        )
    if kind == "preflight":
        level = "INFO" if data.get("passed") else "ERROR"
        warnings = data.get("warnings") or []
        suffix = f" | warnings: {'; '.join(warnings)}" if warnings else ""
        return f"Pre-flight {'passed' if data.get('passed') else 'failed'}: {data.get('reason')}{suffix}", level
    if kind == "controller_state":
        return f"Controller {data.get('previous')} -> {data.get('state')}", "INFO"
    if kind == "notice":
        return str(data.get("message", "")), str(data.get("level") or "INFO")
    if kind == "cycle_skipped":
        return f"Skipping tick after cycle #{data.get('cycle')}: {data.get('reason')}", "WARNING"
    if kind == "cycle_start":
        return f"Cycle #{data.get('cycle')} starting ({data.get('direction')})", "INFO"
    if kind == "balance_snapshot":
        return (
            f"Balances: {data.get('base')} {data.get('base_symbol')}, {data.get('quote')} {data.get('quote_symbol')} "
            f"(gas {data.get('gas')} SUI)",
            "INFO",
        )
    if kind == "eligibility":
        if data.get("eligible"):
            return "", "DEBUG"
        return (
            f"Insufficient {data.get('symbol')} for {data.get('direction')}: balance={data.get('balance')} "
            f"required={data.get('required')}",
            "WARNING",
        )
    if kind == "direction_changed":
        return f"Direction {data.get('previous')} -> {data.get('direction')} ({data.get('reason')})", "INFO"
    if kind == "route_fallback":
        return (
            f"Primary swap route failed ({data.get('error')}); using flash_swap fallback with fixed "
            f"sqrt price limit {data.get('sqrt_price_limit')} (configured slippage {data.get('slippage_tolerance')} "
            "not applied)",
            "WARNING",
        )
    if kind == "swap_outcome":
        if data.get("success"):
            return (
                f"Swap succeeded: {data.get('amount')} {_symbol(data.get('from_token'))} -> "
                f"{_symbol(data.get('to_token'))} | volume=${data.get('volume_usd')} | "
                f"gas~{data.get('estimated_gas')} SUI | tx={data.get('tx_digest')}",
                "INFO",
            )
        return (
            f"Swap failed: {_symbol(data.get('from_token'))} -> {_symbol(data.get('to_token'))} | {data.get('error')}",
            "ERROR",
        )
    if kind == "statistics":
        return (
            "Stats | runtime={runtime}m | swaps={total} | ok={ok} ({rate}%) | failed={failed} | "
            "volume={volume} (${usd}) | gas~{gas} SUI | last={last}".format(
                runtime=data.get("runtime_minutes"),
                total=data.get("total_swaps"),
                ok=data.get("successful_swaps"),
                rate=data.get("success_rate"),
                failed=data.get("failed_swaps"),
                volume=data.get("total_volume"),
                usd=data.get("total_volume_usd"),
                gas=data.get("total_gas_spent"),
                last=data.get("last_swap_time") or "-",
            ),
            "INFO",
        )
    return f"{kind}: {data}", "INFO"
