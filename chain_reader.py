from web3 import Web3
from web3.exceptions import ContractLogicError
from logger import setup_logger
from web3_provider import get_web3, CONTRACT_ADDRESS
from constants import PREDICTION_MARKET_ABI, MARKET_CREATED_SIGNATURE
from exceptions import ChainUnavailable, MarketNotFound, LogParseError
from models import MarketRecord
from typing import Dict, Optional, Tuple

logger = setup_logger("chain_reader")

MARKET_CREATED_TOPIC = Web3.to_hex(Web3.keccak(text=MARKET_CREATED_SIGNATURE))


def market_id_topic(market_id: int) -> str:
    """Indexed uint256 topic for a market id (32-byte, left padded)"""
    return "0x" + int(market_id).to_bytes(32, "big").hex()


class ChainReader:
    """
    Read-only access to the prediction market contract.

    Every call goes to the RPC endpoint; nothing is cached between calls.
    """

    def __init__(self, w3=None, contract_address: Optional[str] = None, abi=None):
        self._w3 = w3
        self.contract_address = contract_address or CONTRACT_ADDRESS
        self.abi = abi or PREDICTION_MARKET_ABI
        self._contract = None

    @property
    def w3(self):
        if self._w3 is None:
            # Raises ChainUnavailable when the endpoint is down
            self._w3 = get_web3()
        return self._w3

    @property
    def contract(self):
        if self._contract is None:
            self._contract = self.w3.eth.contract(
                address=Web3.to_checksum_address(self.contract_address),
                abi=self.abi
            )
        return self._contract

    def get_market_count(self) -> int:
        """Total number of markets recorded on-chain"""
        try:
            code = self.w3.eth.get_code(Web3.to_checksum_address(self.contract_address))
            if not code or len(code) == 0:
                logger.error(f"No contract found at address {self.contract_address}")
                raise ChainUnavailable(f"No contract code at {self.contract_address}")

            count = int(self.contract.functions.getMarketCount().call())
            logger.info(f"Contract {self.contract_address} reports {count} markets")
            return count
        except ChainUnavailable:
            raise
        except Exception as e:
            logger.error(f"Error reading market count: {str(e)}")
            raise ChainUnavailable(str(e)) from e

    def get_market(self, index: int) -> MarketRecord:
        """Fetch one market by its 1-based index"""
        if index < 1:
            raise MarketNotFound(index)
        try:
            raw = self.contract.functions.getMarket(index).call()
        except ContractLogicError as e:
            logger.warning(f"getMarket({index}) reverted: {str(e)}")
            raise MarketNotFound(index) from e
        except Exception as e:
            logger.error(f"Error fetching market {index} from contract: {str(e)}")
            raise ChainUnavailable(str(e)) from e

        record = MarketRecord.from_contract(raw)
        # The contract returns a zeroed struct for ids it never assigned
        if record.id == 0:
            raise MarketNotFound(index)
        return record

    def _decode_creation_log(self, log) -> Tuple[int, str]:
        """Market id and creation tx hash of a MarketCreated log"""
        try:
            tx_hash = Web3.to_hex(log["transactionHash"])
        except Exception as e:
            raise LogParseError(None, f"unusable transactionHash ({str(e)})") from e
        try:
            event = self.contract.events.MarketCreated().process_log(log)
            return int(event["args"]["marketId"]), tx_hash
        except Exception as e:
            raise LogParseError(tx_hash, str(e)) from e

    def get_creation_tx_map(self) -> Dict[int, str]:
        """
        Scan every MarketCreated log from genesis and index creation
        transactions by market id. Malformed logs are skipped.
        """
        logger.info("Fetching MarketCreated event logs")
        try:
            logs = self.w3.eth.get_logs({
                "address": Web3.to_checksum_address(self.contract_address),
                "topics": [MARKET_CREATED_TOPIC],
                "fromBlock": 0,
                "toBlock": "latest",
            })
        except Exception as e:
            logger.error(f"Error fetching MarketCreated logs: {str(e)}")
            raise ChainUnavailable(str(e)) from e

        logger.info(f"Found {len(logs)} MarketCreated logs")

        tx_map = {}
        for log in logs:
            try:
                market_id, tx_hash = self._decode_creation_log(log)
            except LogParseError as e:
                logger.warning(str(e))
                continue
            tx_map[market_id] = tx_hash

        return tx_map

    def get_creation_tx(self, market_id: int) -> Optional[str]:
        """Narrow log query for a single market's creation transaction"""
        try:
            logs = self.w3.eth.get_logs({
                "address": Web3.to_checksum_address(self.contract_address),
                "topics": [MARKET_CREATED_TOPIC, market_id_topic(market_id)],
                "fromBlock": 0,
                "toBlock": "latest",
            })
        except Exception as e:
            logger.warning(f"Creation log lookup failed for market {market_id}: {str(e)}")
            return None

        if not logs:
            return None
        try:
            return Web3.to_hex(logs[0]["transactionHash"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Creation log for market {market_id} has no usable transactionHash: {str(e)}")
            return None
