# cable/app/profiles.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml

from cable.core.errors import CableConfigError
from .config import CableConfig


class ProfileLoader:
    """
    Loads named connection profiles from a YAML file into CableConfig objects.

    Expected shape:

        profiles:
          local:
            url: ws://localhost:3000/cable
            headers: {Origin: http://localhost:3000}
            health_check_interval_s: 3
            liveness_timeout_s: 6

    After calling load_all(), exposes:
        self.profiles : dict[str, CableConfig]
    """

    FLOAT_FIELDS = ("health_check_interval_s", "liveness_timeout_s", "ping_interval_s", "open_timeout_s")
    NULLABLE_FIELDS = ("health_check_interval_s", "ping_interval_s")

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.profiles: Dict[str, CableConfig] = {}

    # ---------------------------------------------------------------------
    # YAML utility
    # ---------------------------------------------------------------------
    def _load_yaml(self) -> dict:
        if not self.path.exists():
            raise CableConfigError(
                f"Profile file not found: {self.path}",
                hint="Pass --config with the path to a profiles YAML file.",
                details={"path": str(self.path)},
            )

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise CableConfigError(
                f"Profile file is not valid YAML: {self.path}",
                hint=str(e),
                details={"path": str(self.path)},
            ) from None

    # ---------------------------------------------------------------------
    # Public entry point
    # ---------------------------------------------------------------------
    def load_all(self) -> Dict[str, CableConfig]:
        self.profiles.clear()

        data = self._load_yaml()
        profiles = data.get("profiles") if isinstance(data, dict) else None
        if not isinstance(profiles, dict):
            raise CableConfigError(
                f"{self.path.name} is missing 'profiles' root node",
                details={"path": str(self.path)},
            )

        for name, entry in profiles.items():
            self.profiles[str(name)] = self._parse_profile(str(name), entry)

        return dict(self.profiles)

    def get(self, name: str) -> CableConfig:
        if not self.profiles:
            self.load_all()
        try:
            return self.profiles[name]
        except KeyError:
            raise CableConfigError(
                f"Unknown profile '{name}'.",
                hint=f"Available profiles: {sorted(self.profiles.keys())}",
                details={"path": str(self.path), "profile": name},
            ) from None

    # ---------------------------------------------------------------------
    # Validation
    # ---------------------------------------------------------------------
    def _parse_profile(self, name: str, entry: Any) -> CableConfig:
        if not isinstance(entry, dict):
            raise CableConfigError(f"Profile '{name}' must be a mapping", details={"profile": name})

        url = entry.get("url")
        if not url or not isinstance(url, str):
            raise CableConfigError(f"Profile '{name}' is missing 'url'", details={"profile": name})

        headers = entry.get("headers") or {}
        if not isinstance(headers, dict):
            raise CableConfigError(f"Profile '{name}' 'headers' must be a mapping", details={"profile": name})

        kwargs: Dict[str, Any] = {"url": url, "headers": {str(k): str(v) for k, v in headers.items()}}
        for key in self.FLOAT_FIELDS:
            if key not in entry:
                continue
            kwargs[key] = self._cast_float(name, key, entry[key])

        unknown = set(entry) - {"url", "headers", *self.FLOAT_FIELDS}
        if unknown:
            raise CableConfigError(
                f"Unknown option(s) {sorted(unknown)} in profile '{name}'.",
                details={"profile": name},
            )

        return CableConfig(**kwargs)

    def _cast_float(self, profile: str, key: str, value: Any) -> Any:
        if value is None:
            if key in self.NULLABLE_FIELDS:
                return None
            raise CableConfigError(f"Profile '{profile}' option '{key}' cannot be null", details={"profile": profile})

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise CableConfigError(
                f"Profile '{profile}' option '{key}' must be a number.",
                hint=f"Got {type(value).__name__}: {value!r}",
                details={"profile": profile, "option": key},
            )
        if value <= 0:
            raise CableConfigError(
                f"Profile '{profile}' option '{key}' must be > 0.",
                details={"profile": profile, "option": key, "value": value},
            )
        return float(value)
