from __future__ import annotations

from typing import Any, Dict, Optional

from ..exceptions import ConfigError
from .models import QCMode, QCSettings, channel_sequence

TRUE_STRINGS = {"1", "true", "yes", "on"}
FALSE_STRINGS = {"0", "false", "no", "off", ""}


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
        raise ValueError(f"cannot interpret {value!r} as a boolean")
    return bool(value)


def load_qc_settings(config: Dict, overrides: Optional[Dict[str, Any]] = None) -> QCSettings:
    qc_cfg = dict(config.get("qc", {}) or {})
    forest_cfg = qc_cfg.get("isolation_forest", {}) or {}
    for key, value in (overrides or {}).items():
        if value is not None:
            qc_cfg[key] = value
    try:
        settings = QCSettings(
            channels=channel_sequence(qc_cfg.get("channels") or []),
            mode=QCMode.parse(qc_cfg.get("mode", "both")),
            min_window_events=int(qc_cfg.get("min_window_events", 150)),
            max_windows=int(qc_cfg.get("max_windows", 500)),
            window_size=_optional_int(qc_cfg.get("window_size")),
            mad_threshold=float(qc_cfg.get("mad_threshold", 6.0)),
            it_limit=float(qc_cfg.get("it_limit", 0.6)),
            consecutive_windows=int(qc_cfg.get("consecutive_windows", 5)),
            remove_zeros=_as_bool(qc_cfg.get("remove_zeros", False)),
            peak_removal=float(qc_cfg.get("peak_removal", 1.0 / 3.0)),
            min_cluster_coverage_pct=float(qc_cfg.get("min_cluster_coverage_pct", 10.0)),
            force_it=int(qc_cfg.get("force_it", 150)),
            smoothing=float(qc_cfg.get("smoothing", 0.5)),
            n_trees=int(qc_cfg.get("n_trees", forest_cfg.get("n_trees", 100))),
            sample_size=int(qc_cfg.get("sample_size", forest_cfg.get("sample_size", 256))),
            max_depth=int(qc_cfg.get("max_depth", forest_cfg.get("max_depth", 10))),
            seed=_optional_int(qc_cfg.get("seed")),
            n_jobs=int(qc_cfg.get("n_jobs", 1)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid qc configuration: {exc}") from exc
    return settings


def validate_settings(settings: QCSettings) -> None:
    if not settings.channels:
        raise ConfigError("No channels specified for quality control")
    if settings.min_window_events < 2:
        raise ConfigError("min_window_events must be at least 2")
    if settings.max_windows < 1:
        raise ConfigError("max_windows must be positive")
    if settings.window_size is not None and settings.window_size < 2:
        raise ConfigError("window_size must be at least 2")
    if settings.mad_threshold <= 0:
        raise ConfigError("mad_threshold must be positive")
    if not 0.0 < settings.it_limit < 1.0:
        raise ConfigError("it_limit must lie in (0, 1)")
    if settings.consecutive_windows < 0:
        raise ConfigError("consecutive_windows must be non-negative")
    if not 0.0 <= settings.peak_removal < 1.0:
        raise ConfigError("peak_removal must lie in [0, 1)")
    if not 0.0 <= settings.min_cluster_coverage_pct <= 100.0:
        raise ConfigError("min_cluster_coverage_pct must lie in [0, 100]")
    if not 0.0 <= settings.smoothing < 1.0:
        raise ConfigError("smoothing must lie in [0, 1)")
    if settings.n_trees < 1 or settings.sample_size < 2 or settings.max_depth < 1:
        raise ConfigError("isolation forest needs n_trees >= 1, sample_size >= 2, max_depth >= 1")
    if settings.n_jobs == 0:
        raise ConfigError("n_jobs must be non-zero")


__all__ = ["load_qc_settings", "validate_settings"]
