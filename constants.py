from models import Market

APP_NAMESPACE = "umiq"

# Local storage keys
MARKETS_STORAGE_KEY = f"{APP_NAMESPACE}_markets"
DEFIQ_STORAGE_PREFIX = f"{APP_NAMESPACE}_defiq_"

# DeFiQ reputation
DEFIQ_WIN_INCREMENT = 10
DEFIQ_INITIAL_RANGE = (40, 150)

# Native token paid per share by placeBet (0.5 STT)
SHARE_PRICE_WEI = 5 * 10**17

MARKET_CREATED_SIGNATURE = "MarketCreated(uint256,address,string)"

PREDICTION_MARKET_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "uint256", "name": "marketId", "type": "uint256"},
            {"indexed": True, "internalType": "address", "name": "creator", "type": "address"},
            {"indexed": False, "internalType": "string", "name": "title", "type": "string"},
        ],
        "name": "MarketCreated",
        "type": "event",
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "marketId", "type": "uint256"},
            {"internalType": "bool", "name": "prediction", "type": "bool"},
        ],
        "name": "placeBet",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "marketId", "type": "uint256"}],
        "name": "getMarket",
        "outputs": [
            {
                "components": [
                    {"internalType": "uint256", "name": "id", "type": "uint256"},
                    {"internalType": "address", "name": "creator", "type": "address"},
                    {"internalType": "string", "name": "title", "type": "string"},
                    {"internalType": "string", "name": "description", "type": "string"},
                    {"internalType": "uint256", "name": "closingTime", "type": "uint256"},
                    {"internalType": "uint256", "name": "totalYesBets", "type": "uint256"},
                    {"internalType": "uint256", "name": "totalNoBets", "type": "uint256"},
                    {"internalType": "bool", "name": "isResolved", "type": "bool"},
                    {"internalType": "bool", "name": "outcome", "type": "bool"},
                    {"internalType": "bool", "name": "isClosed", "type": "bool"},
                ],
                "internalType": "struct SimpleSomniaMarket.Market",
                "name": "",
                "type": "tuple",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getMarketCount",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Creation transactions of markets deployed before the log index was reliable.
# Consulted only when the bulk log scan misses a market.
TX_FALLBACK_MAP = {
    1: "0x578faaf1f6e06db0ce634b67a71afc567f23a7f6913cbb5d16d09b777fa55ef6",
    2: "0x08e456bf38295ab13f2c0c24ddacf0e12c383384f39953c70a50a4060faf4401",
    3: "0x978bf9cafe42b2b99c22fca654aa9084522a358c3a6b7cf808c2e68da0862f7c",
    4: "0x9b23e9ad9ab4fb6f2ac5d2fe22b4fe085483046505e2fb1903060cac56339ba9",
    5: "0x31862ef548e35faf206b8847940c958d2f17d6f509ec0530f1800c3e13cc0e69",
    6: "0x1f2b10a921c5fb250ef4f4a491270ca0ca9f7da79df0c6714a26877683185f52",
    7: "0x2e3c0f662c94fa692922d261a559d9720c7c92707a41ff55debf206ded65ae29",
    8: "0x3bc7f20c8e2a0d13034b297ec8bb38433c5ff6c353bdb951ea8804c3e250d8e2",
}

DAY_MS = 86_400_000
# 2026-01-01T00:00:00Z, fixed so the demonstration set never changes
FALLBACK_EPOCH_MS = 1_767_225_600_000

FALLBACK_MARKETS = [
    Market(
        id="fallback-1",
        title="Will SpaceX land on Mars in 2027?",
        description="Space exploration prediction market",
        creator_id="0x4567890123456789012345678901234567890123",
        created_at=FALLBACK_EPOCH_MS - 1 * DAY_MS,
        closes_at=FALLBACK_EPOCH_MS + 730 * DAY_MS,
        initial_pool=300,
        min_bet=1,
        max_bet=50,
        tx_hash="0x9b23e9ad9ab4fb6f2ac5d2fe22b4fe085483046505e2fb1903060cac56339ba9",
    ),
    Market(
        id="fallback-2",
        title="Will Neuralink expand human trials?",
        description="Neuralink human trial prediction",
        creator_id="0x5678901234567890123456789012345678901234",
        created_at=FALLBACK_EPOCH_MS - 2 * DAY_MS,
        closes_at=FALLBACK_EPOCH_MS + 730 * DAY_MS,
        initial_pool=400,
        min_bet=2,
        max_bet=100,
        tx_hash="0x31862ef548e35faf206b8847940c958d2f17d6f509ec0530f1800c3e13cc0e69",
    ),
    Market(
        id="fallback-3",
        title="Will OpenAI release a new flagship model?",
        description="OpenAI model release prediction",
        creator_id="0x6789012345678901234567890123456789012345",
        created_at=FALLBACK_EPOCH_MS - 3 * DAY_MS,
        closes_at=FALLBACK_EPOCH_MS + 545 * DAY_MS,
        initial_pool=250,
        min_bet=0.5,
        max_bet=25,
        tx_hash="0x1f2b10a921c5fb250ef4f4a491270ca0ca9f7da79df0c6714a26877683185f52",
    ),
    Market(
        id="fallback-4",
        title="Will Palantir reach $50B market cap?",
        description="Palantir market cap prediction",
        creator_id="0x7890123456789012345678901234567890123456",
        created_at=FALLBACK_EPOCH_MS - 4 * DAY_MS,
        closes_at=FALLBACK_EPOCH_MS + 730 * DAY_MS,
        initial_pool=180,
        min_bet=0.1,
        max_bet=18,
        tx_hash="0x2e3c0f662c94fa692922d261a559d9720c7c92707a41ff55debf206ded65ae29",
    ),
    Market(
        id="fallback-5",
        title="Will Coinbase list a new major token?",
        description="Coinbase new token listing prediction",
        creator_id="0x8901234567890123456789012345678901234567",
        created_at=FALLBACK_EPOCH_MS - 5 * DAY_MS,
        closes_at=FALLBACK_EPOCH_MS + 455 * DAY_MS,
        initial_pool=120,
        min_bet=0.05,
        max_bet=12,
        tx_hash="0x3bc7f20c8e2a0d13034b297ec8bb38433c5ff6c353bdb951ea8804c3e250d8e2",
    ),
    Market(
        id="fallback-6",
        title="Will Binance launch a new DeFi product?",
        description="Binance DeFi product launch prediction",
        creator_id="0x9012345678901234567890123456789012345678",
        created_at=FALLBACK_EPOCH_MS - 6 * DAY_MS,
        closes_at=FALLBACK_EPOCH_MS + 485 * DAY_MS,
        initial_pool=160,
        min_bet=0.1,
        max_bet=16,
        tx_hash="0x90c8e3999c041fdd720cda32c8addeac2870e039acc1ed40739cd4284af945e6",
    ),
    Market(
        id="fallback-7",
        title="Will Kraken add new trading pairs?",
        description="Kraken new trading pairs prediction",
        creator_id="0xa012345678901234567890123456789012345678",
        created_at=FALLBACK_EPOCH_MS - 7 * DAY_MS,
        closes_at=FALLBACK_EPOCH_MS + 425 * DAY_MS,
        initial_pool=90,
        min_bet=0.05,
        max_bet=9,
        tx_hash="0x76d48435cecac86d81170b19eaec3d3b0aeeeb71b8d3523c97e6d97b693d942d",
    ),
    Market(
        id="fallback-8",
        title="Will Solana reach $200 again?",
        description="Solana price recovery prediction",
        creator_id="0x2012345678901234567890123456789012345678",
        created_at=FALLBACK_EPOCH_MS - 8 * DAY_MS,
        closes_at=FALLBACK_EPOCH_MS + 485 * DAY_MS,
        initial_pool=140,
        min_bet=0.1,
        max_bet=14,
        tx_hash="0x08e456bf38295ab13f2c0c24ddacf0e12c383384f39953c70a50a4060faf4401",
    ),
]
