"""Load BinningConfig overrides from JSON settings files."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from studyview.config import BinningConfig, BinningMethod, DatatypePolicy


@dataclass(frozen=True)
class StudyViewSettings:
    """Named settings bundle: engine tunables plus the default binning method."""

    name: str
    description: str
    binning: BinningConfig
    default_method: BinningMethod = BinningMethod.STATIC


class StudyViewSettingsLoader:
    """Load settings JSON from ``config/settings`` or a custom path."""

    def __init__(self, settings_dir: str | Path | None = None) -> None:
        if settings_dir is None:
            settings_dir = Path(__file__).resolve().parents[2] / "config" / "settings"
        self.settings_dir = Path(settings_dir)

    def list_settings(self) -> list[str]:
        """Return available settings names from the configured directory."""

        return sorted(path.stem for path in self.settings_dir.glob("*.json"))

    def load(self, name_or_path: str | Path) -> StudyViewSettings:
        """Load settings by name (for example, ``default``) or explicit path."""

        path = self._resolve_path(name_or_path)
        payload = json.loads(path.read_text())
        return self._parse(payload, default_name=path.stem)

    def _resolve_path(self, name_or_path: str | Path) -> Path:
        requested = Path(name_or_path)

        if requested.exists():
            return requested

        candidate = self.settings_dir / f"{requested}.json"
        if candidate.exists():
            return candidate

        raise FileNotFoundError(
            f"Settings not found: {name_or_path}. Available: {', '.join(self.list_settings())}"
        )

    def _parse(self, payload: dict[str, Any], default_name: str) -> StudyViewSettings:
        defaults = BinningConfig()
        raw_policy = payload.get("datatype_policy", {})
        policy = DatatypePolicy(
            categorical=tuple(
                str(item).upper() for item in raw_policy.get("categorical", defaults.datatype_policy.categorical)
            ),
            numerical=tuple(
                str(item).upper() for item in raw_policy.get("numerical", defaults.datatype_policy.numerical)
            ),
        )
        binning = BinningConfig(
            target_bin_count=int(payload.get("target_bin_count", defaults.target_bin_count)),
            log_scale_min_span=float(payload.get("log_scale_min_span", defaults.log_scale_min_span)),
            max_workers=int(payload.get("max_workers", defaults.max_workers)),
            categorical_profile_types=tuple(
                str(item) for item in payload.get("categorical_profile_types", defaults.categorical_profile_types)
            ),
            datatype_policy=policy,
        )
        return StudyViewSettings(
            name=str(payload.get("name", default_name)),
            description=str(payload.get("description", "")),
            binning=binning,
            default_method=BinningMethod(str(payload.get("default_method", BinningMethod.STATIC.value)).upper()),
        )
