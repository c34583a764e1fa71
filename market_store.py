import asyncio
import random
from typing import Dict, List, Optional

from bet_calculator import calculate_payouts
from constants import DEFIQ_INITIAL_RANGE, DEFIQ_WIN_INCREMENT
from exceptions import UnknownMarket
from logger import setup_logger
from models import Bet, BetSide, ClaimableReward, Market, ReconcileResult

logger = setup_logger("market_store")


class MarketStore:
    """
    Owns the reconciled market list, claimable rewards and DeFiQ scores for
    a session. Every mutation that touches markets or scores is written
    through to local storage before returning.
    """

    def __init__(self, storage, engine=None, rng: Optional[random.Random] = None):
        self.storage = storage
        self.engine = engine
        self.rng = rng or random.Random()
        self._markets: List[Market] = []
        self._rewards: List[ClaimableReward] = []
        self._defiq: Dict[str, int] = {}
        self._refresh_seq = 0
        self._inflight = set()
        self._closed = False
        self.is_loading = False
        self.last_sync: Optional[ReconcileResult] = None

    # Reads

    def get_markets(self) -> List[Market]:
        return list(self._markets)

    def get_market(self, market_id: str) -> Optional[Market]:
        return next((m for m in self._markets if m.id == market_id), None)

    def get_claimable_rewards(self, user_id: Optional[str] = None) -> List[ClaimableReward]:
        if user_id is None:
            return list(self._rewards)
        return [r for r in self._rewards if r.user_id == user_id]

    def get_defiq(self, address: str) -> int:
        key = address.lower()
        if key not in self._defiq:
            stored = self.storage.load_defiq(key)
            if stored is None:
                return 0
            self._defiq[key] = stored
        return self._defiq[key]

    # Mutations

    def _require_market(self, market_id: str) -> Market:
        market = self.get_market(market_id)
        if market is None:
            raise UnknownMarket(market_id)
        return market

    def _persist(self):
        self.storage.save(self._markets)

    def set_markets(self, markets: List[Market]):
        self._markets = list(markets)
        self._persist()
        logger.info(f"Market list replaced ({len(self._markets)} markets)")

    def add_market(self, market: Market) -> bool:
        if self.get_market(market.id) is not None:
            logger.warning(f"Market {market.id} already exists, not adding it again")
            return False
        self._markets = [market] + self._markets
        self._persist()
        logger.info(f"Added market {market.id}: {market.title}")
        return True

    def add_bet(self, bet: Bet) -> bool:
        try:
            market = self._require_market(bet.market_id)
        except UnknownMarket as e:
            logger.warning(f"Ignoring orphaned bet {bet.id}: {e}")
            return False

        market.bets = market.bets + [bet]
        self._persist()
        logger.info(f"Added bet {bet.id} to market {market.id}: {bet.amount} on {bet.side} by {bet.user_id}")
        return True

    def resolve_market(self, market_id: str, result: BetSide) -> List[ClaimableReward]:
        """
        Resolve a market, record a claimable reward for every winning bet and
        credit each winner's DeFiQ score. Unknown or already resolved markets
        are left untouched.
        """
        try:
            market = self._require_market(market_id)
        except UnknownMarket as e:
            logger.warning(f"Cannot resolve: {e}")
            return []

        if market.status == "resolved":
            logger.warning(f"Market {market_id} is already resolved with result {market.result}")
            return []

        market.status = "resolved"
        market.result = result
        self._persist()

        created = []
        for payout in calculate_payouts(market, result):
            reward = ClaimableReward(
                user_id=payout["userId"],
                market_id=market.id,
                amount=payout["amount"],
            )
            self._rewards.append(reward)
            created.append(reward)
            self.set_defiq(reward.user_id, self.get_defiq(reward.user_id) + DEFIQ_WIN_INCREMENT)

        if not created:
            logger.info(f"Market {market_id} resolved {result} with no winning bets")
        else:
            logger.info(f"Market {market_id} resolved {result}, {len(created)} rewards created")
        return created

    def claim_reward(self, user_id: str, market_id: str) -> Optional[ClaimableReward]:
        reward = next(
            (r for r in self._rewards
             if r.user_id == user_id and r.market_id == market_id and not r.claimed),
            None
        )
        if reward is None:
            logger.info(f"No unclaimed reward for {user_id} on market {market_id}")
            return None
        reward.claimed = True
        logger.info(f"Reward of {reward.amount} claimed by {user_id} on market {market_id}")
        return reward

    def set_defiq(self, address: str, score: int):
        key = address.lower()
        self._defiq[key] = int(score)
        self.storage.save_defiq(key, int(score))

    def connect_wallet(self, address: str) -> int:
        """DeFiQ score for a wallet, seeded randomly the first time it connects"""
        key = address.lower()
        if key in self._defiq:
            return self._defiq[key]
        stored = self.storage.load_defiq(key)
        if stored is not None:
            self._defiq[key] = stored
            return stored
        score = self.rng.randint(*DEFIQ_INITIAL_RANGE)
        self.set_defiq(key, score)
        logger.info(f"Initialized DeFiQ score {score} for {key}")
        return score

    # Sync

    async def refresh(self) -> Optional[ReconcileResult]:
        """
        Reconcile with the chain and replace the market list.

        Overlapping refreshes are resolved in favour of the most recent
        request; results of superseded requests are discarded. Returns None
        when the result was discarded or the store has been closed.
        """
        if self.engine is None:
            raise RuntimeError("MarketStore has no reconciliation engine")
        if self._closed:
            return None

        self._refresh_seq += 1
        seq = self._refresh_seq
        self.is_loading = True

        task = asyncio.ensure_future(self.engine.reconcile())
        self._inflight.add(task)
        try:
            result = await task
        except asyncio.CancelledError:
            if self._closed:
                logger.info("Refresh cancelled by store shutdown")
                return None
            raise
        finally:
            self._inflight.discard(task)
            if seq == self._refresh_seq:
                self.is_loading = False

        if self._closed or seq != self._refresh_seq:
            logger.info(f"Discarding stale refresh #{seq} (latest is #{self._refresh_seq})")
            return None

        self.set_markets(result.markets)
        self.last_sync = result
        return result

    def close(self):
        """Stop accepting refresh results and cancel in-flight chain reads"""
        self._closed = True
        for task in list(self._inflight):
            task.cancel()
