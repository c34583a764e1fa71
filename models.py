from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Literal, Any

BetSide = Literal["yes", "no"]
MarketStatus = Literal["open", "closed", "resolved"]
ReconcileSource = Literal["chain", "fallback_empty", "fallback_error"]

# Field order of the getMarket() tuple returned by the deployed contract
MARKET_RECORD_FIELDS = (
    "id",
    "creator",
    "title",
    "description",
    "closingTime",
    "totalYesBets",
    "totalNoBets",
    "isResolved",
    "outcome",
    "isClosed",
)


class Bet(BaseModel):
    id: str
    user_id: str
    market_id: str
    amount: float = Field(gt=0)
    side: BetSide
    timestamp: int
    tx_hash: Optional[str] = None

    model_config = {"frozen": True}


class Market(BaseModel):
    id: str
    title: str
    description: str = ""
    creator_id: str
    created_at: int
    closes_at: int
    initial_pool: float = Field(default=0, ge=0)
    min_bet: float = 0
    max_bet: float = 0
    status: MarketStatus = "open"
    result: Optional[BetSide] = None
    bets: List[Bet] = []
    tx_hash: Optional[str] = None

    @model_validator(mode="after")
    def check_lifecycle(self):
        if self.closes_at <= self.created_at:
            raise ValueError("closes_at must be later than created_at")
        if self.status == "resolved" and self.result is None:
            raise ValueError("resolved market requires a result")
        if self.status != "resolved" and self.result is not None:
            raise ValueError("result is only set on resolved markets")
        return self


class ClaimableReward(BaseModel):
    user_id: str
    market_id: str
    amount: float
    claimed: bool = False


class MarketRecord(BaseModel):
    """Decoded getMarket() return value, schema version 1."""

    schema_version: int = 1
    id: int
    creator: str
    title: str
    description: str
    closing_time: int
    total_yes_bets: int = 0
    total_no_bets: int = 0
    is_resolved: bool = False
    outcome: bool = False
    is_closed: bool = False

    @classmethod
    def from_contract(cls, raw: Any) -> "MarketRecord":
        """
        Build a record from the ABI-decoded struct.

        Accepts either the positional tuple web3 returns for a struct output or
        a mapping keyed by the Solidity field names. Raises ValueError when a
        field is missing.
        """
        if isinstance(raw, dict):
            values = raw
        else:
            raw = tuple(raw)
            if len(raw) != len(MARKET_RECORD_FIELDS):
                raise ValueError(
                    f"getMarket returned {len(raw)} fields, expected {len(MARKET_RECORD_FIELDS)}"
                )
            values = dict(zip(MARKET_RECORD_FIELDS, raw))

        missing = [name for name in MARKET_RECORD_FIELDS if name not in values]
        if missing:
            raise ValueError(f"getMarket result missing fields: {', '.join(missing)}")

        return cls(
            id=values["id"],
            creator=values["creator"],
            title=values["title"],
            description=values["description"],
            closing_time=values["closingTime"],
            total_yes_bets=values["totalYesBets"],
            total_no_bets=values["totalNoBets"],
            is_resolved=values["isResolved"],
            outcome=values["outcome"],
            is_closed=values["isClosed"],
        )


class ReconcileResult(BaseModel):
    markets: List[Market]
    source: ReconcileSource
    error: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.source != "chain"


# API request bodies

class PlaceBetRequest(BaseModel):
    user_id: str
    market_id: str
    amount: float = Field(gt=0)
    side: BetSide
    tx_hash: Optional[str] = None


class ResolveMarketRequest(BaseModel):
    result: BetSide


class ClaimRewardRequest(BaseModel):
    user_id: str
    market_id: str


class DefiqUpdate(BaseModel):
    score: int


class ConnectWalletRequest(BaseModel):
    address: str


class CreateMarketRequest(BaseModel):
    title: str
    description: str = ""
    creator_id: str
    closes_at: int
    initial_pool: float = Field(default=0, ge=0)
    min_bet: float = 0
    max_bet: float = 0
    tx_hash: Optional[str] = None


class OnChainBetRequest(BaseModel):
    user_id: str
    market_id: str
    side: BetSide
    quantity: int = Field(gt=0)
