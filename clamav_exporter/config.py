"""Configuration defaults and config file loading.

The config file keeps the nested JSON layout of earlier releases:

.. code-block:: json

    {
        "listen": ":9328",
        "clamd": {"enable": true, "url": "tcp://127.0.0.1:3310"},
        "icap": {"enable": true, "host": "localhost", "port": 1344}
    }

Keys are flattened into the Flask config as CLAMD_URL, ICAP_HOST, and
so on.

"""
import json
import typing as t

from .icap import DEFAULT_SERVICE

DEFAULTS = {
    "LISTEN": ":9328",
    "CLAMD_ENABLE": False,
    "CLAMD_URL": "tcp://127.0.0.1:3310",
    "ICAP_ENABLE": False,
    "ICAP_HOST": "localhost",
    "ICAP_PORT": 1344,
    "ICAP_SERVICE": DEFAULT_SERVICE,
}


def flatten(data: dict[str, t.Any], prefix: str = "") -> dict[str, t.Any]:
    """Flatten nested config sections into upper case keys.
    """
    flat = {}
    for key, value in data.items():
        name = f"{prefix}{key}".upper()
        if isinstance(value, dict):
            flat.update(flatten(value, prefix=name + "_"))
        else:
            flat[name] = value
    return flat


def load_json(f: t.IO[str]) -> dict[str, t.Any]:
    """Loader for app.config.from_file: JSON into flat config keys.
    """
    data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("config file must contain a JSON object")
    return flatten(data)


def as_bool(value: t.Any) -> bool:
    """Interpret a config value as boolean.
    """
    if isinstance(value, str):
        return value.strip().lower() in ["true", "1", "enable", "enabled"]
    return bool(value)
