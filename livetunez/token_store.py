"""
Keyed document stores for per-device state.

The device document holds the cached OAuth tokens
({'accessToken': ..., 'refreshToken': ...}); saved concerts and recent
searches use sibling keys. The JSON file store keeps everything under a
top-level 'devices' map so one file can serve several installs.
"""

import json
import logging
import os
import threading

log = logging.getLogger(__name__)


class TokenStore:
    """Interface: get / set / delete fields of a per-device document."""

    def get(self, device_id):
        raise NotImplementedError

    def set(self, device_id, fields):
        raise NotImplementedError

    def delete(self, device_id, field_names):
        raise NotImplementedError


class MemoryTokenStore(TokenStore):
    def __init__(self, documents=None):
        self.documents = {k: dict(v) for k, v in (documents or {}).items()}

    def get(self, device_id):
        return dict(self.documents.get(device_id, {}))

    def set(self, device_id, fields):
        self.documents[device_id] = dict(fields)

    def delete(self, device_id, field_names):
        doc = self.documents.get(device_id, {})
        for name in field_names:
            doc.pop(name, None)


class JsonFileTokenStore(TokenStore):
    def __init__(self, path):
        self.path = path
        self._lock = threading.Lock()

    def _load(self):
        if not os.path.exists(self.path):
            return {'devices': {}}
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.warning(f'Token store {self.path} unreadable, starting empty: {e}')
            return {'devices': {}}
        if not isinstance(data, dict) or not isinstance(data.get('devices'), dict):
            return {'devices': {}}
        return data

    def _save(self, data):
        tmp_path = self.path + '.tmp'
        with open(tmp_path, 'w') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)

    def get(self, device_id):
        with self._lock:
            return dict(self._load()['devices'].get(device_id, {}))

    def set(self, device_id, fields):
        with self._lock:
            data = self._load()
            data['devices'][device_id] = dict(fields)
            self._save(data)

    def delete(self, device_id, field_names):
        with self._lock:
            data = self._load()
            doc = data['devices'].get(device_id)
            if doc is None:
                return
            for name in field_names:
                doc.pop(name, None)
            self._save(data)
