import asyncio
import os
import time
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from constants import FALLBACK_MARKETS, TX_FALLBACK_MAP
from exceptions import ChainUnavailable, MarketNotFound
from logger import setup_logger
from models import Bet, Market, MarketRecord, ReconcileResult

load_dotenv()

logger = setup_logger("reconciliation")

def market_window_from_env() -> Optional[int]:
    """Newest-N market window from UMIQ_MARKET_WINDOW; unset or invalid reads all markets"""
    value = os.getenv("UMIQ_MARKET_WINDOW")
    if not value:
        return None
    try:
        window = int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer UMIQ_MARKET_WINDOW={value!r}")
        return None
    if window <= 0:
        logger.warning(f"Ignoring non-positive UMIQ_MARKET_WINDOW={window}")
        return None
    return window


MARKET_WINDOW = market_window_from_env()


def now_ms() -> int:
    return int(time.time() * 1000)


def attach_bets(markets: List[Market], stored) -> List[Market]:
    """
    Re-attach persisted bet history to freshly fetched markets.

    Bets are matched to markets purely by id string equality. Stored entries
    that are not well-formed are ignored, and individual bets that fail
    validation are dropped.
    """
    if not stored:
        return markets

    bet_map: Dict[str, List[Bet]] = {}
    for entry in stored:
        if not isinstance(entry, dict):
            continue
        market_id = entry.get("id")
        raw_bets = entry.get("bets")
        if market_id is None or not isinstance(raw_bets, list) or not raw_bets:
            continue

        bets = []
        for raw in raw_bets:
            try:
                bets.append(Bet.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Dropping malformed stored bet for market {market_id}: {e.error_count()} errors")
        if bets:
            bet_map[str(market_id)] = bets

    merged = []
    for market in markets:
        if market.id in bet_map:
            merged.append(market.model_copy(update={"bets": list(bet_map[market.id])}))
        else:
            merged.append(market)
    return merged


def load_persisted_markets(storage) -> List[Market]:
    """Validated markets from local storage, skipping entries that no longer parse"""
    markets = []
    for entry in storage.load() or []:
        try:
            markets.append(Market.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping stored market that failed validation: {e.error_count()} errors")
    return markets


class ReconciliationEngine:
    """
    Builds the authoritative market list from on-chain metadata and the
    locally persisted bet history.
    """

    def __init__(
        self,
        chain_reader,
        storage,
        fallback_markets: Optional[List[Market]] = None,
        tx_fallback_map: Optional[Dict[int, str]] = None,
        market_window: Optional[int] = MARKET_WINDOW,
        clock=now_ms,
    ):
        self.chain_reader = chain_reader
        self.storage = storage
        self.fallback_markets = FALLBACK_MARKETS if fallback_markets is None else fallback_markets
        self.tx_fallback_map = TX_FALLBACK_MAP if tx_fallback_map is None else tx_fallback_map
        self.market_window = market_window
        self.clock = clock

    async def reconcile(self) -> ReconcileResult:
        logger.info("Starting on-chain market sync")

        source = "chain"
        error = None
        try:
            markets = await self._fetch_chain_markets()
            if not markets:
                logger.warning("No on-chain markets found, using fallback markets")
                markets = self._fallback()
                source = "fallback_empty"
        except asyncio.CancelledError:
            raise
        except ChainUnavailable as e:
            logger.error(f"Chain unavailable, using fallback markets: {str(e)}")
            markets = self._fallback()
            source = "fallback_error"
            error = str(e)
        except Exception as e:
            logger.exception(f"Unexpected error during market sync, using fallback markets: {str(e)}")
            markets = self._fallback()
            source = "fallback_error"
            error = str(e)

        stored = await asyncio.to_thread(self.storage.load)
        merged = attach_bets(markets, stored)

        logger.info(f"Reconciled {len(merged)} markets (source: {source})")
        return ReconcileResult(markets=merged, source=source, error=error)

    def _fallback(self) -> List[Market]:
        return [m.model_copy(deep=True) for m in self.fallback_markets]

    async def _fetch_chain_markets(self) -> List[Market]:
        count = await asyncio.to_thread(self.chain_reader.get_market_count)
        if count == 0:
            return []

        try:
            tx_map = await asyncio.to_thread(self.chain_reader.get_creation_tx_map)
        except Exception as e:
            logger.warning(f"Bulk creation log scan failed, resolving per market: {str(e)}")
            tx_map = {}

        start = 1
        if self.market_window:
            start = max(1, count - self.market_window + 1)
        logger.info(f"Fetching markets {start} to {count}")

        fetched = await asyncio.gather(
            *(self._fetch_market(index, tx_map) for index in range(start, count + 1))
        )

        markets = []
        seen = set()
        for market in fetched:
            if market is None or market.id in seen:
                continue
            seen.add(market.id)
            markets.append(market)
        return markets

    async def _fetch_market(self, index: int, tx_map: Dict[int, str]) -> Optional[Market]:
        try:
            record = await asyncio.to_thread(self.chain_reader.get_market, index)
        except MarketNotFound as e:
            logger.warning(f"Skipping market: {str(e)}")
            return None

        tx_hash = await self.resolve_tx_hash(record.id, tx_map)
        return self._to_market(record, tx_hash)

    async def resolve_tx_hash(self, market_id: int, tx_map: Dict[int, str]) -> Optional[str]:
        """Bulk log map, then the static table, then a per-market log query"""
        tx_hash = tx_map.get(market_id) or self.tx_fallback_map.get(market_id)
        if tx_hash:
            return tx_hash

        logger.info(f"Fetching creation tx for market {market_id} individually")
        try:
            tx_hash = await asyncio.to_thread(self.chain_reader.get_creation_tx, market_id)
        except Exception as e:
            logger.warning(f"Creation tx lookup failed for market {market_id}: {str(e)}")
            return None
        return tx_hash or None

    def _to_market(self, record: MarketRecord, tx_hash: Optional[str]) -> Market:
        closes_at = record.closing_time * 1000
        # The contract does not expose a creation time; use sync time, kept before closing
        created_at = min(self.clock(), closes_at - 1)
        return Market(
            id=str(record.id),
            title=record.title,
            description=record.description,
            creator_id=record.creator or "onchain",
            created_at=created_at,
            closes_at=closes_at,
            initial_pool=0,
            min_bet=0,
            max_bet=0,
            status="open",
            bets=[],
            tx_hash=tx_hash,
        )
