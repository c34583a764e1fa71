import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from constants import MARKETS_STORAGE_KEY, DEFIQ_STORAGE_PREFIX
from exceptions import PersistenceError
from logger import setup_logger

load_dotenv()

logger = setup_logger("local_storage")

STORAGE_DIR = os.getenv("UMIQ_STORAGE_DIR", ".umiq")

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class LocalStorage:
    """
    Durable key/value mirror of client state, one JSON file per key.

    Values are stored and returned as plain JSON structures. Read and write
    failures never escape: a missing or unreadable value reads as None and a
    failed write leaves the in-memory state as the only copy.
    """

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or STORAGE_DIR)

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def _read(self, key: str) -> Any:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Could not read {path}: {e}") from e

    def _write(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Could not write {path}: {e}") from e

    def get_item(self, key: str) -> Any:
        try:
            return self._read(key)
        except PersistenceError as e:
            logger.warning(f"Treating stored value as absent: {e}")
            return None

    def set_item(self, key: str, value: Any) -> bool:
        try:
            self._write(key, value)
            return True
        except PersistenceError as e:
            logger.error(f"Persistence failed, keeping in-memory state only: {e}")
            return False

    def load(self) -> Optional[List[Dict[str, Any]]]:
        """Last saved market list, or None if never saved or unreadable"""
        stored = self.get_item(MARKETS_STORAGE_KEY)
        if stored is not None and not isinstance(stored, list):
            logger.warning(f"Stored markets are a {type(stored).__name__}, not a list; ignoring")
            return None
        return stored

    def save(self, markets) -> bool:
        """Overwrite the saved market list"""
        payload = [m.model_dump(mode="json") if hasattr(m, "model_dump") else m for m in markets]
        return self.set_item(MARKETS_STORAGE_KEY, payload)

    def load_defiq(self, address: str) -> Optional[int]:
        value = self.get_item(f"{DEFIQ_STORAGE_PREFIX}{address.lower()}")
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value

    def save_defiq(self, address: str, score: int) -> bool:
        return self.set_item(f"{DEFIQ_STORAGE_PREFIX}{address.lower()}", int(score))
