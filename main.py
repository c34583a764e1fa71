from fastapi import FastAPI, HTTPException, Depends, Request
from dotenv import load_dotenv
import asyncio
import json
import time
import uuid

from models import (
    Bet,
    Market,
    PlaceBetRequest,
    ResolveMarketRequest,
    ClaimRewardRequest,
    DefiqUpdate,
    ConnectWalletRequest,
    CreateMarketRequest,
    OnChainBetRequest,
)
from bet_calculator import market_stats, summarize_markets, display_status
from chain_reader import ChainReader
from exceptions import ChainUnavailable
from local_storage import LocalStorage
from market_store import MarketStore
from reconciliation import ReconciliationEngine
from web3 import Web3
from market_transactions import place_bet
from web3_provider import explorer_url
from logger import setup_logger

logger = setup_logger('umiq_api')

load_dotenv()
logger.info("Environment variables loaded")

app = FastAPI()
logger.info("FastAPI application initialized")


def build_store():
    storage = LocalStorage()
    engine = ReconciliationEngine(ChainReader(), storage)
    return MarketStore(storage, engine)


def get_store(request: Request) -> MarketStore:
    return request.app.state.store


def serialize_market(market: Market, now_ms: int):
    data = market.model_dump(mode="json")
    data["display_status"] = display_status(market, now_ms)
    data["explorer_url"] = explorer_url(market.tx_hash)
    return data


def _now_ms():
    return int(time.time() * 1000)


@app.on_event("startup")
async def startup_event():
    logger.info("Application starting up - reconciling markets with the chain")
    app.state.store = build_store()
    result = await app.state.store.refresh()
    if result is not None:
        logger.info(f"Loaded {len(result.markets)} markets (source: {result.source})")


@app.on_event("shutdown")
async def shutdown_event():
    store = getattr(app.state, "store", None)
    if store is not None:
        store.close()


@app.get("/")
async def root():
    return {"message": "UMIq prediction market client API"}


@app.get("/api/markets")
async def get_markets(store: MarketStore = Depends(get_store)):
    now = _now_ms()
    last_sync = store.last_sync
    return {
        "markets": [serialize_market(m, now) for m in store.get_markets()],
        "source": last_sync.source if last_sync else None,
        "is_loading": store.is_loading,
    }


@app.post("/api/markets/refresh")
async def refresh_markets(store: MarketStore = Depends(get_store)):
    logger.info("Refreshing markets from chain")
    result = await store.refresh()
    if result is None:
        return {"refreshed": False, "count": len(store.get_markets())}
    return {
        "refreshed": True,
        "count": len(result.markets),
        "source": result.source,
        "error": result.error,
    }


@app.post("/api/markets")
async def create_market(payload: CreateMarketRequest, store: MarketStore = Depends(get_store)):
    now = _now_ms()
    if payload.closes_at <= now:
        raise HTTPException(status_code=400, detail="Closing time must be in the future")

    market = Market(
        id=f"local-{uuid.uuid4().hex[:12]}",
        created_at=now,
        **payload.model_dump(),
    )
    store.add_market(market)
    return {"market": serialize_market(market, now)}


@app.get("/api/markets/{market_id}/stats")
async def get_market_stats(market_id: str, store: MarketStore = Depends(get_store)):
    market = store.get_market(market_id)
    if not market:
        raise HTTPException(status_code=404, detail="Market not found")
    return {"stats": market_stats(market)}


@app.post("/api/bets")
async def add_bet(payload: PlaceBetRequest, store: MarketStore = Depends(get_store)):
    bet = Bet(
        id=uuid.uuid4().hex,
        timestamp=_now_ms(),
        **payload.model_dump(),
    )
    if not store.add_bet(bet):
        raise HTTPException(status_code=404, detail="Market not found")
    return {"bet": bet.model_dump(mode="json")}


@app.post("/api/markets/{market_id}/resolve")
async def resolve_market(market_id: str, payload: ResolveMarketRequest, store: MarketStore = Depends(get_store)):
    market = store.get_market(market_id)
    if not market:
        raise HTTPException(status_code=404, detail="Market not found")
    if market.status == "resolved":
        raise HTTPException(status_code=400, detail="Market is already resolved")

    rewards = store.resolve_market(market_id, payload.result)
    return {"rewards": [r.model_dump() for r in rewards]}


@app.get("/api/rewards")
async def get_rewards(user_id: str = None, store: MarketStore = Depends(get_store)):
    return {"rewards": [r.model_dump() for r in store.get_claimable_rewards(user_id)]}


@app.post("/api/rewards/claim")
async def claim_reward(payload: ClaimRewardRequest, store: MarketStore = Depends(get_store)):
    reward = store.claim_reward(payload.user_id, payload.market_id)
    if reward is None:
        raise HTTPException(status_code=404, detail="No unclaimed reward found")
    return {"reward": reward.model_dump()}


@app.get("/api/defiq/{address}")
async def get_defiq(address: str, store: MarketStore = Depends(get_store)):
    return {"address": address, "score": store.get_defiq(address)}


@app.put("/api/defiq/{address}")
async def set_defiq(address: str, payload: DefiqUpdate, store: MarketStore = Depends(get_store)):
    store.set_defiq(address, payload.score)
    return {"address": address, "score": payload.score}


@app.post("/api/wallet/connect")
async def connect_wallet(payload: ConnectWalletRequest, store: MarketStore = Depends(get_store)):
    score = store.connect_wallet(payload.address)
    return {"address": payload.address, "score": score}


@app.get("/api/stats")
async def get_stats(store: MarketStore = Depends(get_store)):
    df = summarize_markets(store.get_markets())
    return {"stats": json.loads(df.to_json(orient="records"))}


@app.post("/api/bets/onchain")
async def place_onchain_bet(payload: OnChainBetRequest, store: MarketStore = Depends(get_store)):
    market = store.get_market(payload.market_id)
    if not market:
        raise HTTPException(status_code=404, detail="Market not found")
    if not market.id.isdigit():
        raise HTTPException(status_code=400, detail="Only on-chain markets accept bets")

    try:
        tx = await asyncio.to_thread(place_bet, int(market.id), payload.side, payload.quantity)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ChainUnavailable as e:
        logger.error(f"Chain unavailable for on-chain bet on market {market.id}: {str(e)}")
        raise HTTPException(status_code=503, detail=f"Chain unavailable: {str(e)}")
    except RuntimeError as e:
        logger.error(f"On-chain bet on market {market.id} failed: {str(e)}")
        raise HTTPException(status_code=502, detail=str(e))

    bet = Bet(
        id=uuid.uuid4().hex,
        user_id=payload.user_id,
        market_id=market.id,
        amount=float(Web3.from_wei(tx["value"], "ether")),
        side=payload.side,
        timestamp=_now_ms(),
        tx_hash=tx["tx_hash"],
    )
    store.add_bet(bet)
    return {"bet": bet.model_dump(mode="json")}
