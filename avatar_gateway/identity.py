"""Device identity persistence.

The gateway recognizes returning installs by a stable device id and lets
them skip re-pairing with a device token it issued earlier. Both values are
kept in a small key-value store that survives process restarts.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from uuid import uuid4

_LOGGER = logging.getLogger(__name__)

DEVICE_ID_KEY = "avatar-gateway.device-id"
DEVICE_TOKEN_KEY = "avatar-gateway.device-token"


class KeyValueStore(Protocol):
    """Minimal persistent string store."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Process-local store, used when no persistence is configured."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """Store backed by a single JSON object on disk.

    Reads are cached after the first load. Writes replace the file
    atomically. I/O and decode failures are logged and degrade to an empty
    store; identity persistence must never block a connection.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._data: dict[str, str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if self._data is not None:
            return self._data
        data: dict[str, str] = {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raw = {}
        except (OSError, ValueError) as err:
            _LOGGER.warning("Ignoring unreadable identity file %s: %s", self._path, err)
            raw = {}
        if isinstance(raw, dict):
            data = {str(k): v for k, v in raw.items() if isinstance(v, str)}
        self._data = data
        return data

    def _flush(self) -> None:
        data = self._load()
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as err:
            _LOGGER.warning("Failed to persist identity file %s: %s", self._path, err)

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        self._load()[key] = value
        self._flush()

    def delete(self, key: str) -> None:
        if self._load().pop(key, None) is not None:
            self._flush()


@dataclass(frozen=True)
class DeviceIdentity:
    """Install-stable device id plus the last issued device token."""

    device_id: str
    device_token: str | None = None


class IdentityStore:
    """Load and save the device identity through a key-value store."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @property
    def device_id(self) -> str:
        """Return the persisted device id, generating it on first use."""
        device_id = self._store.get(DEVICE_ID_KEY)
        if not device_id:
            device_id = uuid4().hex
            self._store.set(DEVICE_ID_KEY, device_id)
            _LOGGER.info("Generated new device id %s", device_id)
        return device_id

    @property
    def device_token(self) -> str | None:
        return self._store.get(DEVICE_TOKEN_KEY) or None

    def load(self) -> DeviceIdentity:
        return DeviceIdentity(device_id=self.device_id, device_token=self.device_token)

    def save_device_token(self, token: str) -> None:
        if token == self._store.get(DEVICE_TOKEN_KEY):
            return
        self._store.set(DEVICE_TOKEN_KEY, token)
        _LOGGER.debug("Device token saved")

    def clear_device_token(self) -> None:
        self._store.delete(DEVICE_TOKEN_KEY)
