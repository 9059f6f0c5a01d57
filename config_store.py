"""
Persistence for the SystemConfig singleton.

The JSON file store is the production backend; MemoryConfigStore backs tests.
Both serialize writers through one lock so setup and license activation cannot
lose each other's updates within a process.
"""

import json
import logging
import os
import tempfile
import threading
from typing import Callable, Optional

from schemas import SystemConfig

logger = logging.getLogger(__name__)


class ConfigStore:
    def __init__(self):
        self._lock = threading.Lock()

    def _load(self) -> Optional[SystemConfig]:
        raise NotImplementedError

    def _save(self, config: SystemConfig) -> None:
        raise NotImplementedError

    def read(self) -> SystemConfig:
        return self._load() or SystemConfig()

    def ensure(self) -> SystemConfig:
        """Create the default config if none has been persisted yet."""
        with self._lock:
            config = self._load()
            if config is None:
                config = SystemConfig()
                self._save(config)
                logger.info("Created default system config")
            return config

    def update(self, mutate: Callable[[SystemConfig], SystemConfig]) -> SystemConfig:
        """Read-modify-write under the writer lock.

        ``mutate`` receives a copy of the current config and returns the new
        one. If it raises, nothing is written.
        """
        with self._lock:
            current = self._load() or SystemConfig()
            updated = mutate(current.model_copy())
            self._save(updated)
            return updated


class JSONFileConfigStore(ConfigStore):
    def __init__(self, path: str):
        super().__init__()
        self.path = path

    def _load(self) -> Optional[SystemConfig]:
        if not os.path.exists(self.path):
            return None
        with open(self.path, "r", encoding="utf-8") as f:
            return SystemConfig.model_validate(json.load(f))

    def _save(self, config: SystemConfig) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".systemConfig-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(config.model_dump(mode="json"), f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise


class MemoryConfigStore(ConfigStore):
    def __init__(self, config: Optional[SystemConfig] = None):
        super().__init__()
        self._config = config

    def _load(self) -> Optional[SystemConfig]:
        return self._config.model_copy() if self._config is not None else None

    def _save(self, config: SystemConfig) -> None:
        self._config = config.model_copy()
