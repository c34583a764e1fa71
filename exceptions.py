class MarketClientError(Exception):
    """Base class for degraded conditions raised inside the client core."""


class ChainUnavailable(MarketClientError):
    """RPC endpoint unreachable, or no contract code at the configured address."""


class MarketNotFound(MarketClientError):
    def __init__(self, index):
        super().__init__(f"Market index {index} is out of range")
        self.index = index


class LogParseError(MarketClientError):
    def __init__(self, tx_hash, reason):
        super().__init__(f"Could not decode MarketCreated log in {tx_hash}: {reason}")
        self.tx_hash = tx_hash


class PersistenceError(MarketClientError):
    """Local storage read or write failed."""


class UnknownMarket(MarketClientError):
    def __init__(self, market_id):
        super().__init__(f"Market {market_id} is not in the current market list")
        self.market_id = market_id
