"""Local storage — the device-local key-value mirror.

Holds one JSON array per collection and tenant under
"<namespace>_<tenant>_<collection>" plus a few scalar settings (local
limit). Two backends:

  FileLocalStorage    one <key>.json file per key under instance/local_store
  MemoryLocalStorage  a dict, used by tests and LOCAL_STORE_BACKEND=memory

get() never raises: a missing or corrupt entry returns the default.
"""

import json
import logging
import os
import re

from flask import current_app

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


def collection_key(namespace, collection_name):
    """Storage key for a collection snapshot, e.g. revo_mock_sites."""
    return f"{namespace}_{collection_name}"


class MemoryLocalStorage:
    """Dict-backed storage. Values are kept JSON-encoded, like the file backend."""

    def __init__(self):
        self._items = {}

    def get(self, key, default=None):
        raw = self._items.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Corrupt local entry {key}, using default")
            return default

    def set(self, key, value):
        self._items[key] = json.dumps(value, default=str)

    def set_raw(self, key, raw):
        """Store a raw string as-is (lets tests plant corrupt entries)."""
        self._items[key] = raw

    def remove(self, key):
        self._items.pop(key, None)

    def keys(self):
        return list(self._items)


class FileLocalStorage:
    """One JSON file per key in a directory."""

    def __init__(self, directory):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def _path(self, key):
        return os.path.join(self.directory, f"{_SAFE_KEY.sub('_', key)}.json")

    def get(self, key, default=None):
        path = self._path(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return default
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Corrupt local entry {key} ({e}), using default")
            return default

    def set(self, key, value):
        path = self._path(key)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(value, f, ensure_ascii=False, default=str)
        os.replace(tmp_path, path)

    def remove(self, key):
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass

    def keys(self):
        return [
            name[: -len(".json")]
            for name in os.listdir(self.directory)
            if name.endswith(".json")
        ]


def get_local_storage(app=None):
    """Return the app's local storage backend, creating it on first use."""
    app = app or current_app
    storage = app.extensions.get("local_storage")
    if storage is None:
        if app.config.get("LOCAL_STORE_BACKEND") == "memory":
            storage = MemoryLocalStorage()
        else:
            directory = app.config.get("LOCAL_STORE_DIR") or os.path.join(
                app.instance_path, "local_store"
            )
            storage = FileLocalStorage(directory)
        app.extensions["local_storage"] = storage
    return storage
