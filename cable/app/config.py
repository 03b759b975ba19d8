# cable/app/config.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(frozen=True)
class CableConfig:
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    health_check_interval_s: Optional[float] = None  # None = no watchdog
    liveness_timeout_s: float = 6.0
    ping_interval_s: Optional[float] = 3.0
    open_timeout_s: float = 10.0

    def with_overrides(self, **overrides) -> "CableConfig":
        """Copy with non-None overrides applied; headers are merged, not replaced."""
        values = {k: v for k, v in overrides.items() if v is not None}
        if "headers" in values:
            values["headers"] = {**self.headers, **values["headers"]}
        return CableConfig(**{**self.__dict__, **values})
