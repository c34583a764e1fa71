from web3 import Web3
import os
from dotenv import load_dotenv
from logger import setup_logger
from exceptions import ChainUnavailable

logger = setup_logger('web3_provider')

load_dotenv()

RPC_URL = os.getenv("SOMNIA_RPC_URL", "https://dream-rpc.somnia.network/")
CONTRACT_ADDRESS = os.getenv("CONTRACT_ADDRESS", "0x5FbDB2315678afecb367f032d93F642f64180aa3")
EXPLORER_TX_URL = os.getenv("EXPLORER_TX_URL", "https://shannon-explorer.somnia.network/tx/")

class Web3Provider:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            instance = super(Web3Provider, cls).__new__(cls)
            instance._initialize()
            # Only cache a provider that actually connected
            cls._instance = instance
        return cls._instance

    def _initialize(self):
        self.rpc_url = RPC_URL
        self.contract_address = CONTRACT_ADDRESS

        logger.info(f"Configuration loaded: RPC_URL={self.rpc_url}, CONTRACT_ADDRESS={self.contract_address}")

        self.w3 = Web3(Web3.HTTPProvider(self.rpc_url))
        if self.w3.is_connected():
            logger.info(f"Connected to blockchain at {self.rpc_url}")
        else:
            logger.error(f"Failed to connect to RPC endpoint at {self.rpc_url}")
            raise ChainUnavailable(f"Failed to connect to {self.rpc_url}")

    def get_web3(self):
        return self.w3

    @classmethod
    def reset(cls):
        cls._instance = None


def get_web3():
    return Web3Provider().get_web3()


def explorer_url(tx_hash):
    """Block explorer link for a transaction, or None when no hash is known"""
    if not tx_hash:
        return None
    return f"{EXPLORER_TX_URL}{tx_hash}"
