"""Runtime settings for the VendHub state layer.

Loading priority (highest first):
1. Environment variables (``VENDHUB_*``)
2. Keyword overrides passed to ``Settings.from_env``
3. Dataclass defaults
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

ENV_PREFIX = "VENDHUB_"

DEFAULT_KEY_PREFIX = "vendhub"


@dataclass
class Settings:
    """Settings shared by every store built at bootstrap."""

    storage_dir: Optional[Path] = None  # None keeps state in memory only
    key_prefix: str = DEFAULT_KEY_PREFIX
    onboarding_version: int = 1  # bump to show onboarding again
    cashback_percent: int = 1  # points earned per 100 currency units paid
    slot_cache_size: int = 128

    def __post_init__(self):
        if self.storage_dir is not None and not isinstance(self.storage_dir, Path):
            self.storage_dir = Path(self.storage_dir).expanduser()
        if not 0 <= self.cashback_percent <= 100:
            raise ValueError(f"cashback_percent out of range: {self.cashback_percent}")
        if self.slot_cache_size < 1:
            raise ValueError(f"slot_cache_size must be positive: {self.slot_cache_size}")

    def key(self, name: str) -> str:
        """Namespaced persistence key for one store."""
        return f"{self.key_prefix}-{name}"

    @classmethod
    def from_env(
        cls, environ: Optional[Dict[str, str]] = None, **overrides: Any
    ) -> "Settings":
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = dict(overrides)
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            if f.name == "storage_dir":
                values[f.name] = Path(raw).expanduser()
            elif f.name == "key_prefix":
                values[f.name] = raw
            else:
                try:
                    values[f.name] = int(raw)
                except ValueError:
                    raise ValueError(
                        f"{ENV_PREFIX}{f.name.upper()} must be an integer, got {raw!r}"
                    ) from None
        return cls(**values)
