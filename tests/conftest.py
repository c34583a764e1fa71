import os
import tempfile

# Keep test log files out of the working tree
os.environ.setdefault("UMIQ_LOG_DIR", tempfile.mkdtemp(prefix="umiq-logs-"))

import pytest

from exceptions import MarketNotFound
from local_storage import LocalStorage
from models import Bet, Market, MarketRecord

NOW_MS = 1_700_000_000_000
CLOSING_TIME_S = 1_800_000_000


def make_market(market_id="1", bets=None, initial_pool=0, **kwargs):
    fields = dict(
        id=market_id,
        title=f"Market {market_id}",
        description="Test market",
        creator_id="0x1111111111111111111111111111111111111111",
        created_at=NOW_MS,
        closes_at=NOW_MS + 86_400_000,
        initial_pool=initial_pool,
        bets=bets or [],
    )
    fields.update(kwargs)
    return Market(**fields)


def make_bet(market_id="1", amount=1, side="yes", user_id="0xalice", bet_id=None):
    return Bet(
        id=bet_id or f"bet-{user_id}-{side}-{amount}",
        user_id=user_id,
        market_id=market_id,
        amount=amount,
        side=side,
        timestamp=NOW_MS,
    )


def make_record(market_id, title=None):
    return MarketRecord(
        id=market_id,
        creator="0x2222222222222222222222222222222222222222",
        title=title or f"On-chain market {market_id}",
        description="Created on-chain",
        closing_time=CLOSING_TIME_S,
    )


class FakeChainReader:
    """In-memory stand-in for ChainReader; records[i] answers index i + 1"""

    def __init__(self, records=None, tx_map=None, per_market=None, count=None,
                 count_error=None, tx_map_error=None):
        self.records = list(records or [])
        self.tx_map = dict(tx_map or {})
        self.per_market = dict(per_market or {})
        self.count = count
        self.count_error = count_error
        self.tx_map_error = tx_map_error
        self.per_market_calls = []

    def get_market_count(self):
        if self.count_error is not None:
            raise self.count_error
        return len(self.records) if self.count is None else self.count

    def get_market(self, index):
        if index < 1 or index > len(self.records):
            raise MarketNotFound(index)
        record = self.records[index - 1]
        if isinstance(record, Exception):
            raise record
        return record

    def get_creation_tx_map(self):
        if self.tx_map_error is not None:
            raise self.tx_map_error
        return dict(self.tx_map)

    def get_creation_tx(self, market_id):
        self.per_market_calls.append(market_id)
        tx_hash = self.per_market.get(market_id)
        if isinstance(tx_hash, Exception):
            raise tx_hash
        return tx_hash


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "storage"))
