"""Reconciliation of on-chain markets with locally persisted bets."""

import asyncio

from constants import FALLBACK_MARKETS
from exceptions import ChainUnavailable, MarketNotFound
from reconciliation import (
    ReconciliationEngine,
    attach_bets,
    load_persisted_markets,
    market_window_from_env,
)
from conftest import (
    CLOSING_TIME_S,
    NOW_MS,
    FakeChainReader,
    make_bet,
    make_market,
    make_record,
)


def build_engine(chain, storage, **kwargs):
    kwargs.setdefault("tx_fallback_map", {})
    kwargs.setdefault("market_window", None)
    return ReconciliationEngine(chain, storage, clock=lambda: NOW_MS, **kwargs)


def test_chain_markets_are_mapped_open_and_empty(storage):
    chain = FakeChainReader(
        records=[make_record(1), make_record(2)],
        tx_map={1: "0xaaa", 2: "0xbbb"},
    )
    result = asyncio.run(build_engine(chain, storage).reconcile())

    assert result.source == "chain"
    assert not result.used_fallback
    assert [m.id for m in result.markets] == ["1", "2"]
    market = result.markets[0]
    assert market.status == "open"
    assert market.bets == []
    assert market.initial_pool == 0
    assert market.min_bet == 0 and market.max_bet == 0
    assert market.closes_at == CLOSING_TIME_S * 1000
    assert market.created_at == NOW_MS
    assert market.tx_hash == "0xaaa"


def test_fallback_when_chain_unreachable_is_deterministic(storage):
    chain = FakeChainReader(count_error=ChainUnavailable("connection refused"))
    engine = build_engine(chain, storage)

    first = asyncio.run(engine.reconcile())
    second = asyncio.run(engine.reconcile())

    assert first.source == "fallback_error"
    assert "connection refused" in first.error
    assert first.markets == second.markets
    assert [m.id for m in first.markets] == [m.id for m in FALLBACK_MARKETS]
    assert [m.tx_hash for m in first.markets] == [m.tx_hash for m in FALLBACK_MARKETS]


def test_zero_markets_falls_back_but_is_distinguishable(storage):
    chain = FakeChainReader(records=[])
    result = asyncio.run(build_engine(chain, storage).reconcile())
    assert result.source == "fallback_empty"
    assert result.error is None
    assert len(result.markets) == len(FALLBACK_MARKETS)


def test_unexpected_error_falls_back(storage):
    chain = FakeChainReader(records=[make_record(1), RuntimeError("bad decode")])
    result = asyncio.run(build_engine(chain, storage).reconcile())
    assert result.source == "fallback_error"
    assert result.error == "bad decode"


def test_fallback_markets_are_copies(storage):
    chain = FakeChainReader(count_error=ChainUnavailable("down"))
    result = asyncio.run(build_engine(chain, storage).reconcile())
    result.markets[0].bets = [make_bet(result.markets[0].id)]
    assert FALLBACK_MARKETS[0].bets == []


def test_missing_market_is_skipped(storage):
    chain = FakeChainReader(
        records=[make_record(1), MarketNotFound(2), make_record(3)],
        tx_map={1: "0x1", 3: "0x3"},
    )
    result = asyncio.run(build_engine(chain, storage).reconcile())
    assert result.source == "chain"
    assert [m.id for m in result.markets] == ["1", "3"]


def test_tx_hash_resolution_prefers_bulk_then_static_then_per_market(storage):
    chain = FakeChainReader(
        records=[make_record(1), make_record(2), make_record(3), make_record(4)],
        tx_map={1: "0xbulk1"},
        per_market={1: "0xnarrow1", 2: "0xnarrow2", 3: "0xnarrow3"},
    )
    engine = build_engine(chain, storage, tx_fallback_map={1: "0xstatic1", 2: "0xstatic2"})
    result = asyncio.run(engine.reconcile())

    hashes = {m.id: m.tx_hash for m in result.markets}
    assert hashes == {"1": "0xbulk1", "2": "0xstatic2", "3": "0xnarrow3", "4": None}
    assert sorted(chain.per_market_calls) == [3, 4]


def test_static_table_used_when_logs_have_nothing(storage):
    chain = FakeChainReader(records=[make_record(7)], tx_map={}, per_market={})
    engine = build_engine(chain, storage, tx_fallback_map={7: "0xstatic7"})
    result = asyncio.run(engine.reconcile())
    assert result.markets[0].tx_hash == "0xstatic7"


def test_bulk_scan_failure_degrades_to_per_market_lookup(storage):
    chain = FakeChainReader(
        records=[make_record(1)],
        tx_map_error=ChainUnavailable("rate limited"),
        per_market={1: "0xnarrow1"},
    )
    result = asyncio.run(build_engine(chain, storage).reconcile())
    assert result.source == "chain"
    assert result.markets[0].tx_hash == "0xnarrow1"


def test_unexpected_bulk_scan_error_degrades_to_per_market_lookup(storage):
    chain = FakeChainReader(
        records=[make_record(1)],
        tx_map_error=TypeError("bad log entry"),
        per_market={1: "0xnarrow1"},
    )
    result = asyncio.run(build_engine(chain, storage).reconcile())
    assert result.source == "chain"
    assert result.markets[0].tx_hash == "0xnarrow1"


def test_per_market_lookup_error_leaves_hash_unset(storage):
    chain = FakeChainReader(
        records=[make_record(1), make_record(2)],
        tx_map={2: "0xbulk2"},
        per_market={1: KeyError("transactionHash")},
    )
    result = asyncio.run(build_engine(chain, storage).reconcile())
    assert result.source == "chain"
    assert [m.tx_hash for m in result.markets] == [None, "0xbulk2"]


def test_market_window_from_env(monkeypatch):
    monkeypatch.setenv("UMIQ_MARKET_WINDOW", "3")
    assert market_window_from_env() == 3
    monkeypatch.setenv("UMIQ_MARKET_WINDOW", "abc")
    assert market_window_from_env() is None
    monkeypatch.setenv("UMIQ_MARKET_WINDOW", "0")
    assert market_window_from_env() is None
    monkeypatch.delenv("UMIQ_MARKET_WINDOW")
    assert market_window_from_env() is None


def test_market_window_reads_only_newest(storage):
    chain = FakeChainReader(records=[make_record(i) for i in range(1, 6)])
    result = asyncio.run(build_engine(chain, storage, market_window=2).reconcile())
    assert [m.id for m in result.markets] == ["4", "5"]


def test_persisted_bets_are_reattached_by_id(storage):
    storage.save([
        make_market("1", bets=[make_bet("1", amount=2, side="yes")]),
        make_market("99", bets=[make_bet("99", amount=5, side="no")]),
    ])
    chain = FakeChainReader(records=[make_record(1), make_record(2)])
    result = asyncio.run(build_engine(chain, storage).reconcile())

    by_id = {m.id: m for m in result.markets}
    assert [b.amount for b in by_id["1"].bets] == [2]
    assert by_id["2"].bets == []
    assert "99" not in by_id


def test_merge_is_idempotent(storage):
    persisted = [
        make_market("1", bets=[make_bet("1", amount=1, side="yes"), make_bet("1", amount=3, side="no", user_id="0xbob")]),
        make_market("2", bets=[make_bet("2", amount=4, side="no")]),
    ]
    storage.save(persisted)
    chain = FakeChainReader(records=[make_record(1), make_record(2)])
    engine = build_engine(chain, storage)

    result = asyncio.run(engine.reconcile())
    storage.save(result.markets)
    again = asyncio.run(engine.reconcile())

    expected = {m.id: m.bets for m in persisted}
    for markets in (result.markets, again.markets):
        assert {m.id: m.bets for m in markets} == expected


def test_bets_survive_fallback_path(storage):
    fallback_id = FALLBACK_MARKETS[0].id
    storage.save([make_market(fallback_id, bets=[make_bet(fallback_id, amount=1.5)])])
    chain = FakeChainReader(count_error=ChainUnavailable("down"))
    result = asyncio.run(build_engine(chain, storage).reconcile())
    assert result.markets[0].bets[0].amount == 1.5


def test_attach_bets_drops_malformed_entries():
    markets = [make_market("1"), make_market("2")]
    good = make_bet("1", amount=1).model_dump()
    stored = [
        "not a market",
        {"id": "1", "bets": [good, {"id": "x", "amount": -1}]},
        {"id": "2", "bets": "nope"},
        {"bets": [good]},
    ]
    merged = attach_bets(markets, stored)
    assert len(merged[0].bets) == 1
    assert merged[1].bets == []


def test_attach_bets_without_stored_state():
    markets = [make_market("1")]
    assert attach_bets(markets, None) == markets


def test_load_persisted_markets_skips_invalid(storage):
    storage.set_item("umiq_markets", [
        make_market("1").model_dump(mode="json"),
        {"id": "broken"},
    ])
    markets = load_persisted_markets(storage)
    assert [m.id for m in markets] == ["1"]
