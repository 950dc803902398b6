"""Session configuration — relay, app id, and the base-path directory layout."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Public magic-wormhole mailbox server and the app id used by `wormhole send`
DEFAULT_RELAY_URL = "ws://relay.magic-wormhole.io:4000/v1"
DEFAULT_APP_ID = "lothar.com/wormhole/text-or-file-xfer"


@dataclass
class SessionConfig:
    """Configuration for one provisioning session — loaded from config.json."""

    relay_url: str = DEFAULT_RELAY_URL
    app_id: str = DEFAULT_APP_ID
    passphrase_length: int = 16  # number of words in the generated code

    # Directory layout under the sponsor's base path
    enroll_dir_name: str = "enroll"
    sponsor_dir_name: str = "sponsor"
    results_dir_name: str = "results"

    @classmethod
    def from_env(cls) -> SessionConfig:
        return cls(
            relay_url=os.environ.get("SOANM_RELAY_URL", DEFAULT_RELAY_URL),
            app_id=os.environ.get("SOANM_APP_ID", DEFAULT_APP_ID),
        )

    @classmethod
    def load(cls, path: str | Path) -> SessionConfig:
        """Load from JSON, layered over the environment defaults."""
        path = Path(path)
        base = cls.from_env()
        if path.exists():
            with open(path) as f:
                data = json.load(f)
            known = {k for k in cls.__dataclass_fields__}
            filtered = {k: v for k, v in data.items() if k in known}
            for key, value in filtered.items():
                setattr(base, key, value)
            return base
        logger.warning("Config not found at %s, using defaults", path)
        return base

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(dict(self.__dict__), f, indent=2)

    def enroll_dir(self, base_dir: str | Path) -> Path:
        return Path(base_dir) / self.enroll_dir_name

    def sponsor_dir(self, base_dir: str | Path) -> Path:
        return Path(base_dir) / self.sponsor_dir_name

    def results_dir(self, base_dir: str | Path) -> Path:
        return Path(base_dir) / self.results_dir_name
