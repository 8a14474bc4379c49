"""
Configuration loader – defaults, then config/sync.yml, then ``POA_*``
environment variables (later wins).

Includes a startup validator that logs the effective settings and refuses
to run without a spreadsheet id and a sender.
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields

import yaml

from poa_sync.errors import ConfigError

log = logging.getLogger(__name__)

ENV_PREFIX = "POA_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass
class SyncSettings:
    spreadsheet_id: str = ""
    sender: str = ""
    required_phrases: list = field(default_factory=lambda: ["POA", "The request is now complete."])
    log_bucket_name: str = "POA Log"
    macro_batch_size: int = 10
    fetch_concurrency: int = 5
    page_size: int = 500
    max_messages: int = 1000
    use_date_filter: bool = True
    log_errors: bool = False
    link_base_url: str = ""
    initial_status: str = "UNSET"

    def to_dict(self):
        return asdict(self)


def _config_path(filename):
    return os.path.join(os.path.dirname(__file__), '..', 'config', filename)


def load_yaml(path=None) -> dict:
    path = path or _config_path('sync.yml')
    if not os.path.exists(path):
        return {}
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")
    return data


def _coerce(name, default, raw):
    """Convert *raw* to the type of *default*."""
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"{name}: expected a boolean, got {raw!r}")
    if isinstance(default, int):
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ConfigError(f"{name}: expected an integer, got {raw!r}") from None
    if isinstance(default, list):
        if isinstance(raw, str):
            return [p.strip() for p in raw.split("|") if p.strip()]
        return [str(p) for p in raw]
    return "" if raw is None else str(raw)


def load_settings(env=None, path=None) -> SyncSettings:
    """Build SyncSettings from defaults, the YAML file and the environment."""
    if env is None:
        env = os.environ
    settings = SyncSettings()
    file_values = load_yaml(path)

    for f in fields(SyncSettings):
        default = getattr(settings, f.name)
        if f.name in file_values:
            setattr(settings, f.name, _coerce(f.name, default, file_values[f.name]))
        env_key = ENV_PREFIX + f.name.upper()
        if env_key in env:
            setattr(settings, f.name, _coerce(env_key, default, env[env_key]))

    unknown = sorted(set(file_values) - {f.name for f in fields(SyncSettings)})
    if unknown:
        log.warning("Ignoring unknown config keys: %s", unknown)
    return settings


def validate_settings(settings: SyncSettings) -> SyncSettings:
    """Run at startup: log the effective settings and check required keys."""
    log.info("=== Config Validation ===")
    for key, value in settings.to_dict().items():
        log.info("%s: %s", key, value)

    missing = [k for k in ("spreadsheet_id", "sender") if not getattr(settings, k)]
    if missing:
        raise ConfigError(f"Missing required setting(s): {', '.join(missing)}")
    if settings.macro_batch_size < 1 or settings.fetch_concurrency < 1:
        raise ConfigError("macro_batch_size and fetch_concurrency must be positive")
    if not settings.link_base_url:
        log.warning("link_base_url is empty; PDF links will be relative")
    return settings
