from __future__ import annotations
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from shared.log import get_logger

logger = get_logger(__name__)

_DEFAULT_HOME = Path.home() / ".wfclient"


@dataclass
class ClientConfig:
    server: str = "ws://localhost:5222/xmpp"
    domain: str = "warface"
    game_version: str = "1.15000.124.34300"
    region_id: str = "global"
    hw_id: int = 0
    build_type: str = "--release"
    request_timeout: float = 30.0

    # Environment variable -> field
    _ENV = {
        "WFC_SERVER": "server",
        "WFC_DOMAIN": "domain",
        "WFC_GAME_VERSION": "game_version",
        "WFC_REGION": "region_id",
        "WFC_HWID": "hw_id",
    }

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ClientConfig":
        """
        Load config from YAML, then apply WFC_* environment overrides.

        A missing file yields defaults. An unreadable or invalid file is
        logged and ignored.
        """
        path = path or (_DEFAULT_HOME / "config.yaml")
        data = _read_yaml_mapping(path)

        known = {f.name: f for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning("Unknown config key %r in %s", key, path)
                continue
            values[key] = value

        for env_name, attr in cls._ENV.items():
            env_value = os.getenv(env_name)
            if env_value is not None:
                values[attr] = env_value

        config = cls(**values)
        # YAML reads versions like 1.22 as floats
        for name in ("server", "domain", "game_version", "region_id", "build_type"):
            setattr(config, name, str(getattr(config, name)))
        config.hw_id = _as_int(config.hw_id, "hw_id")
        config.request_timeout = _as_float(config.request_timeout, "request_timeout")
        return config


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s %r; using 0", name, value)
        return 0


def _as_float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s %r; using 0", name, value)
        return 0.0


def _read_yaml_mapping(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.debug("No config at %s; using defaults", path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error reading {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.error(f"Expected a mapping in {path}, got {type(data).__name__}")
        return {}
    return data


@dataclass(frozen=True)
class ChannelInfo:
    resource: str        # JID resource, e.g. "pve_12"
    channel_type: str    # "pve", "pvp_newbie", "pvp_skilled", "pvp_pro", "clan"...
    server_id: int = 0
    online: int = 0
    load: float = 0.0


class ChannelDirectory:
    """
    Masterserver directory: channel resource -> channel info.

    File format:
        channels:
          - resource: pve_12
            channel: pve
            server_id: 112
            online: 1450
            load: 0.48
    """

    def __init__(self, base: Optional[Path] = None) -> None:
        self.base = base or (_DEFAULT_HOME / "channels.yaml")
        self._data: Dict[str, ChannelInfo] = {}
        self._load()

    def _load(self) -> None:
        entries = _read_yaml_mapping(self.base).get("channels", [])
        if isinstance(entries, dict):
            entries = [entries]
        if not isinstance(entries, list):
            logger.error(f"'channels' in {self.base} must be a list")
            return
        for e in entries:
            if not isinstance(e, dict):
                continue
            resource = e.get("resource"); channel_type = e.get("channel")
            if isinstance(resource, str) and isinstance(channel_type, str):
                self.set(ChannelInfo(
                    resource=resource,
                    channel_type=channel_type,
                    server_id=_as_int(e.get("server_id", 0), "server_id"),
                    online=_as_int(e.get("online", 0), "online"),
                    load=_as_float(e.get("load", 0.0), "load"),
                ))

    def set(self, info: ChannelInfo) -> None:
        self._data[info.resource] = info

    def get(self, resource: str) -> Optional[ChannelInfo]:
        return self._data.get(resource)

    def all(self) -> List[ChannelInfo]:
        return sorted(self._data.values(), key=lambda c: c.resource)

    def save(self) -> None:
        self.base.parent.mkdir(parents=True, exist_ok=True)
        payload = {"channels": [
            {"resource": c.resource, "channel": c.channel_type, "server_id": c.server_id,
             "online": c.online, "load": c.load}
            for c in self.all()
        ]}
        self.base.write_text(yaml.safe_dump(payload, sort_keys=False))
