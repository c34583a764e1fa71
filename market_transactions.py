from web3 import Web3
import os
from dotenv import load_dotenv
from logger import setup_logger
from web3_provider import get_web3, CONTRACT_ADDRESS
from constants import PREDICTION_MARKET_ABI, SHARE_PRICE_WEI

logger = setup_logger('market_transactions')

load_dotenv()

PRIVATE_KEY = os.getenv("PRIVATE_KEY")
ACCOUNT_ADDRESS = os.getenv("ACCOUNT_ADDRESS")

if PRIVATE_KEY and ACCOUNT_ADDRESS:
    logger.info(f"Signer configured: ACCOUNT_ADDRESS={ACCOUNT_ADDRESS[:6]}...{ACCOUNT_ADDRESS[-4:] if len(ACCOUNT_ADDRESS) > 10 else ''}")
else:
    logger.warning("PRIVATE_KEY or ACCOUNT_ADDRESS not set; bets cannot be placed from this process")


def bet_value_wei(quantity):
    """Native token owed for a number of shares; fractional shares are dropped"""
    return SHARE_PRICE_WEI * max(0, int(quantity))


def place_bet(market_id, side, quantity, w3=None, account_address=None, private_key=None):
    """
    Send a payable placeBet transaction for an on-chain market

    Args:
        market_id: On-chain market id
        side: "yes" or "no"
        quantity: Number of shares to buy at SHARE_PRICE_WEI each
        w3: Web3 instance (defaults to the shared provider)
        account_address: Sender address (defaults to ACCOUNT_ADDRESS)
        private_key: Signing key (defaults to PRIVATE_KEY)

    Returns:
        Dictionary with the transaction hash, market id, side and value sent
    """
    account_address = account_address or ACCOUNT_ADDRESS
    private_key = private_key or PRIVATE_KEY
    if not account_address or not private_key:
        raise ValueError("A signer is required to place bets")
    if side not in ("yes", "no"):
        raise ValueError(f"Invalid side: {side}")

    value = bet_value_wei(quantity)
    if value <= 0:
        raise ValueError("Bet quantity must be at least one share")

    w3 = w3 or get_web3()
    contract = w3.eth.contract(
        address=Web3.to_checksum_address(CONTRACT_ADDRESS),
        abi=PREDICTION_MARKET_ABI
    )

    logger.info(f"Placing bet on market {market_id}: {quantity} shares on {side}")

    tx = contract.functions.placeBet(int(market_id), side == "yes").build_transaction({
        'from': account_address,
        'value': value,
        'nonce': w3.eth.get_transaction_count(account_address),
    })

    signed_tx = w3.eth.account.sign_transaction(tx, private_key=private_key)
    tx_hash = w3.eth.send_raw_transaction(signed_tx.raw_transaction)

    logger.info(f"placeBet transaction sent, hash: {Web3.to_hex(tx_hash)}")

    receipt = w3.eth.wait_for_transaction_receipt(tx_hash)
    if receipt.get("status") == 0:
        logger.error(f"placeBet transaction {Web3.to_hex(tx_hash)} reverted")
        raise RuntimeError(f"placeBet transaction {Web3.to_hex(tx_hash)} reverted")

    return {
        'tx_hash': Web3.to_hex(tx_hash),
        'market_id': int(market_id),
        'side': side,
        'value': value
    }
