import csv
from decimal import Decimal

from helpers.logger import TradingLogger
from strategies.momentum_swapper import SwapEvent

from momentum_fakes import BASE_TYPE, QUOTE_TYPE


def _logger(monkeypatch, tmp_path, ticker):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    monkeypatch.delenv("ACCOUNT_NAME", raising=False)
    return TradingLogger("momentum", ticker, log_to_console=False, level="DEBUG")


def _flush(logger):
    for handler in logger.logger.handlers:
        handler.flush()


def test_swap_outcome_is_journaled_to_csv(monkeypatch, tmp_path):
    logger = _logger(monkeypatch, tmp_path, "CSV-JOURNAL")

    logger.log_event(
        SwapEvent(
            kind="swap_outcome",
            data={
                "success": True,
                "tx_digest": "0xabc",
                "direction": "BASE_TO_QUOTE",
                "amount": "0.1",
                "from_token": BASE_TYPE,
                "to_token": QUOTE_TYPE,
                "volume_usd": "0.10",
                "estimated_gas": "0.0015",
            },
        )
    )

    with open(tmp_path / "momentum_CSV-JOURNAL_swaps.csv", newline="", encoding="utf-8") as handle:
        rows = list(csv.reader(handle))

    assert rows[0][:3] == ["Timestamp", "Digest", "Direction"]
    assert rows[1][1:7] == ["0xabc", "BASE_TO_QUOTE", "0.1", BASE_TYPE, QUOTE_TYPE, "SUCCESS"]


def test_events_are_rendered_to_activity_log(monkeypatch, tmp_path):
    logger = _logger(monkeypatch, tmp_path, "ACTIVITY")

    logger.log_event(SwapEvent(kind="route_fallback", data={"error": "boom", "sqrt_price_limit": 1000, "slippage_tolerance": "0.02"}))
    logger.log_event(SwapEvent(kind="balance_snapshot", data={"gas": Decimal("1.5"), "base": "2", "quote": "3", "base_symbol": "USDT", "quote_symbol": "USDC"}))
    _flush(logger)

    content = (tmp_path / "momentum_ACTIVITY_activity.log").read_text(encoding="utf-8")

    assert "WARNING - [MOMENTUM_ACTIVITY] Primary swap route failed (boom)" in content
    assert "Balances: 2 USDT, 3 USDC (gas 1.5 SUI)" in content
    assert '"gas": "1.5"' in content


def test_non_swap_events_do_not_touch_the_journal(monkeypatch, tmp_path):
    logger = _logger(monkeypatch, tmp_path, "NO-JOURNAL")

    logger.log_event(SwapEvent(kind="notice", data={"message": "hello", "level": "INFO"}))

    assert not (tmp_path / "momentum_NO-JOURNAL_swaps.csv").exists()
