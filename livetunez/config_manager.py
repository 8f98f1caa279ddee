"""
Configuration manager for LiveTunez.
Handles loading/saving API keys, the device identifier and resolver
preferences to a local config.json file.

Lookup order for every key: environment variable, config.json, DEFAULTS.
"""

import os
import json
import logging
import uuid

from dotenv import load_dotenv

log = logging.getLogger(__name__)

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

load_dotenv(os.path.join(_PROJECT_ROOT, '.env'))


ENV_MAP = {
    'spotify_client_id': 'SPOTIFY_CLIENT_ID',
    'spotify_client_secret': 'SPOTIFY_CLIENT_SECRET',
    'spotify_redirect_uri': 'SPOTIFY_REDIRECT_URI',
    'setlistfm_api_key': 'SETLISTFM_API_KEY',
    'device_id': 'LIVETUNEZ_DEVICE_ID',
    'token_store_path': 'LIVETUNEZ_TOKEN_STORE',
}

DEFAULTS = {
    'spotify_redirect_uri': 'http://127.0.0.1:5000/callback',
    'token_store_path': os.path.join(_PROJECT_ROOT, 'tokens.json'),
    'search_plan': None,
}

CONFIG_FILE = os.environ.get('LIVETUNEZ_CONFIG',
                             os.path.join(_PROJECT_ROOT, 'config.json'))


def load_config():
    """Values saved in config.json; {} when the file is missing or unreadable."""
    if not os.path.exists(CONFIG_FILE):
        return {}
    try:
        with open(CONFIG_FILE, 'r') as f:
            config = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        log.warning(f'Ignoring unreadable config file {CONFIG_FILE}: {e}')
        return {}
    return config if isinstance(config, dict) else {}


def save_config(config):
    tmp_path = CONFIG_FILE + '.tmp'
    with open(tmp_path, 'w') as f:
        json.dump(config, f, indent=2)
    os.replace(tmp_path, CONFIG_FILE)


def get_settings():
    """Every known setting with environment, file and defaults merged."""
    settings = dict(DEFAULTS)
    settings.update({k: v for k, v in load_config().items() if v is not None})
    for key, env_key in ENV_MAP.items():
        if os.environ.get(env_key):
            settings[key] = os.environ[env_key]
    return settings


def get_config_value(key, default=None):
    value = get_settings().get(key)
    return default if value is None else value


def set_config_value(key, value):
    """Persist one value to config.json; None removes the key."""
    config = load_config()
    if value is None:
        config.pop(key, None)
    else:
        config[key] = value
    save_config(config)


def is_configured():
    """Check if the Spotify app credentials are present."""
    settings = get_settings()
    return bool(settings.get('spotify_client_id')
                and settings.get('spotify_client_secret'))


def get_device_id():
    """Return this install's device identifier, creating one on first use."""
    device_id = get_config_value('device_id')
    if not device_id:
        device_id = str(uuid.uuid4())
        set_config_value('device_id', device_id)
    return device_id
