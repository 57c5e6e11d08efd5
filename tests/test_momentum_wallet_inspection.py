import asyncio
from decimal import Decimal

import pytest

from exchanges.sui import InfrastructureError, SUI_COIN_TYPE
from strategies.momentum_swapper import MomentumSwapper

from momentum_fakes import BASE_TYPE, QUOTE_TYPE, FakeLedger, make_config, make_identity


def _swapper(ledger: FakeLedger, **config_overrides) -> MomentumSwapper:
    return MomentumSwapper(make_config(**config_overrides), make_identity(), ledger=ledger, protocol=object())


def test_snapshot_converts_with_heuristic_precision():
    ledger = FakeLedger(balances={SUI_COIN_TYPE: 1_500_000_000, BASE_TYPE: 50_000, QUOTE_TYPE: 10_000_000})
    swapper = _swapper(ledger)

    snapshot = asyncio.run(swapper.inspect_wallet())

    assert snapshot.gas == Decimal("1.5")
    assert snapshot.base == Decimal("0.05")
    assert snapshot.quote == Decimal("10")
    assert snapshot.base_raw == 50_000
    assert (snapshot.base_symbol, snapshot.quote_symbol) == ("USDT", "USDC")


def test_failed_token_read_counts_as_zero():
    ledger = FakeLedger(balances={SUI_COIN_TYPE: 10 ** 9, QUOTE_TYPE: 10 ** 6}, failing_balances={BASE_TYPE})
    swapper = _swapper(ledger)

    snapshot = asyncio.run(swapper.inspect_wallet())

    assert snapshot.base == Decimal("0")
    assert snapshot.quote == Decimal("1")


def test_failed_gas_read_raises_infrastructure_error():
    ledger = FakeLedger(failing_balances={SUI_COIN_TYPE})
    swapper = _swapper(ledger)

    with pytest.raises(InfrastructureError):
        asyncio.run(swapper.inspect_wallet())


def test_coin_metadata_overrides_heuristic_and_is_cached():
    ledger = FakeLedger(
        balances={SUI_COIN_TYPE: 10 ** 9, BASE_TYPE: 10 ** 9, QUOTE_TYPE: 10 ** 6},
        decimals={BASE_TYPE: 9},
    )
    swapper = _swapper(ledger)

    async def scenario():
        first = await swapper.inspect_wallet()
        ledger.balances[BASE_TYPE] = 2 * 10 ** 9
        second = await swapper.inspect_wallet()
        return first, second

    first, second = asyncio.run(scenario())

    assert first.base == Decimal("1")
    assert first.base_precision == 10 ** 9
    assert first.quote_precision == 10 ** 6
    # balances are always re-read; only precision is cached
    assert second.base == Decimal("2")
    assert ledger.metadata_calls.count(BASE_TYPE) == 1


def test_metadata_lookup_can_be_disabled():
    ledger = FakeLedger(balances={SUI_COIN_TYPE: 10 ** 9, BASE_TYPE: 10 ** 6}, decimals={BASE_TYPE: 9})
    swapper = _swapper(ledger, use_coin_metadata=False)

    snapshot = asyncio.run(swapper.inspect_wallet())

    assert snapshot.base == Decimal("1")
    assert ledger.metadata_calls == []


def test_transient_metadata_failure_is_not_cached():
    deep_type = "0x" + "9" * 64 + "::deep::DEEP"
    ledger = FakeLedger(
        balances={SUI_COIN_TYPE: 10 ** 9, deep_type: 5_000_000},
        decimals={deep_type: 6},
        metadata_failures=1,
    )
    swapper = _swapper(ledger, base_token=deep_type)

    async def scenario():
        first = await swapper.inspect_wallet()
        second = await swapper.inspect_wallet()
        return first, second

    first, second = asyncio.run(scenario())

    # first read falls back to the 9-decimal guess; the retry finds the real 6
    assert first.base == Decimal("0.005")
    assert second.base == Decimal("5")
    assert second.base_precision == 10 ** 6
    assert ledger.metadata_calls.count(deep_type) == 2


def test_coin_without_metadata_caches_heuristic():
    deep_type = "0x" + "9" * 64 + "::deep::DEEP"
    ledger = FakeLedger(balances={SUI_COIN_TYPE: 10 ** 9, deep_type: 10 ** 9})
    swapper = _swapper(ledger, base_token=deep_type)

    async def scenario():
        await swapper.inspect_wallet()
        return await swapper.inspect_wallet()

    snapshot = asyncio.run(scenario())

    assert snapshot.base == Decimal("1")
    assert ledger.metadata_calls.count(deep_type) == 1
