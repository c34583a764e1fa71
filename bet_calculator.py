import pandas as pd
from typing import List, Dict, Optional

from models import Market, Bet, BetSide

# Reported when no volume has been placed on either side
NEUTRAL_PROBABILITY = 0.5

SUMMARY_COLUMNS = [
    "market_id",
    "title",
    "status",
    "total_pool",
    "yes_volume",
    "no_volume",
    "yes_probability",
    "bet_count",
]

# Function to calculate the total pool


def total_pool(market: Market) -> float:
    return market.initial_pool + sum(bet.amount for bet in market.bets)

# Function to calculate the volume placed on one side


def side_volume(market: Market, side: BetSide) -> float:
    return sum(bet.amount for bet in market.bets if bet.side == side)

# Function to calculate the implied probability of a side


def implied_probability(market: Market, side: BetSide) -> float:
    yes_volume = side_volume(market, "yes")
    no_volume = side_volume(market, "no")
    volume = yes_volume + no_volume
    if volume <= 0:
        return NEUTRAL_PROBABILITY
    return (yes_volume if side == "yes" else no_volume) / volume

# Function to calculate a winning bet's share of the pool


def payout_share(bet: Bet, market: Market, result: BetSide) -> Optional[float]:
    """
    Pro-rata share of the whole pool owed to a bet, or None when the bet
    lost or nobody backed the winning side.
    """
    if bet.side != result:
        return None
    winning_volume = side_volume(market, result)
    if winning_volume <= 0:
        return None
    return bet.amount / winning_volume * total_pool(market)

# Function to calculate payouts for every winning bet


def calculate_payouts(market: Market, result: BetSide) -> List[Dict]:
    payouts = []
    for bet in market.bets:
        share = payout_share(bet, market, result)
        if share is None:
            continue
        payouts.append({
            "betId": bet.id,
            "userId": bet.user_id,
            "amount": share,
        })
    return payouts


def display_status(market: Market, now_ms: int) -> str:
    """Status for display; open markets past their closing time show as closed"""
    if market.status == "open" and market.closes_at <= now_ms:
        return "closed"
    return market.status


def market_stats(market: Market) -> Dict:
    return {
        "market_id": market.id,
        "title": market.title,
        "status": market.status,
        "total_pool": total_pool(market),
        "yes_volume": side_volume(market, "yes"),
        "no_volume": side_volume(market, "no"),
        "yes_probability": implied_probability(market, "yes"),
        "bet_count": len(market.bets),
    }


def summarize_markets(markets: List[Market]) -> pd.DataFrame:
    """One row of derived stats per market, recomputed on every call"""
    return pd.DataFrame([market_stats(m) for m in markets], columns=SUMMARY_COLUMNS)


if __name__ == "__main__":
    from local_storage import LocalStorage
    from reconciliation import load_persisted_markets

    markets = load_persisted_markets(LocalStorage())

    df = summarize_markets(markets)
    print(df.head())

    df.to_csv("market_stats.csv", index=False)
    print("Market stats saved to market_stats.csv")
