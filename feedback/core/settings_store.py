"""
Réglages clé/valeur persistés (équivalent des user defaults)
"""

import json
import logging
import os
import tempfile
import threading
from typing import Any

logger = logging.getLogger(__name__)


class MemorySettings:
    """Réglages en mémoire (tests, previews)"""

    def __init__(self, values: dict | None = None):
        self._values = dict(values or {})

    def get_bool(self, key: str) -> bool:
        return bool(self._values.get(key, False))

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value


class JsonFileSettings(MemorySettings):
    """Réglages écrits dans un fichier JSON à chaque modification"""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        super().__init__(self._read())

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable settings file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            super().set(key, value)
            dirpath = os.path.dirname(os.path.abspath(self.path))
            # écriture atomique : fichier temporaire puis remplacement
            with tempfile.NamedTemporaryFile("w", dir=dirpath, delete=False, encoding="utf-8") as tmp:
                json.dump(self._values, tmp, indent=2)
                tmp_path = tmp.name
            os.replace(tmp_path, self.path)
