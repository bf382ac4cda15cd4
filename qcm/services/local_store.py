import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from qcm.shared.enums import StorageKey

logger = logging.getLogger(__name__)


class LocalStore:
    """
    Small persisted key/value store for the respondent's session identity,
    question count and transcript, backed by a JSON file.

    Writes go straight to disk. A failing read or write is logged and
    ignored: the conversation never stops because local state could not be
    kept.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        try:
            with self.path.open(encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read local store {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring local store {self.path}: not a JSON object")
            return {}
        return data

    def _flush(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(self._data, f, ensure_ascii=False)
            tmp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Could not write local store {self.path}: {e}")

    def get_item(self, key: StorageKey, default: Optional[Any] = None) -> Any:
        return self._data.get(StorageKey(key).value, default)

    def set_item(self, key: StorageKey, value: Any) -> None:
        self._data[StorageKey(key).value] = value
        self._flush()

    def remove_item(self, key: StorageKey) -> None:
        if self._data.pop(StorageKey(key).value, None) is not None:
            self._flush()

    def remove_items(self, keys: Iterable[StorageKey]) -> None:
        removed = False
        for key in keys:
            removed |= self._data.pop(StorageKey(key).value, None) is not None
        if removed:
            self._flush()

    def clear(self) -> None:
        self._data = {}
        self._flush()
