from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

CONFIG_ENV_VAR = "HAYGUARD_CONFIG"


@dataclass(frozen=True)
class PowerConfig:
    """Battery cycle constants used by the power state machine."""
    depletion_hours: float = 240.0
    charge_threshold: float = 6.0
    min_level: float = 2.0
    charge_hours_min: float = 5.0
    charge_hours_max: float = 7.0
    nominal_charge_hours: float = 6.0


@dataclass(frozen=True)
class SynthConfig:
    """Reading synthesizer parameters."""
    seed: Optional[int] = None
    temperature_in_range_probability: float = 0.80
    moisture_in_range_probability: float = 0.85
    step_fraction: float = 0.15
    readings_per_day: int = 38


@dataclass(frozen=True)
class HistoryConfig:
    """Historical store retention and query defaults."""
    retention_days: int = 30
    default_query_days: int = 7
    downsample_points: int = 20


@dataclass(frozen=True)
class AlertConfig:
    """Alert rule thresholds and resolution ledger TTL."""
    ledger_ttl_days: int = 7
    temperature_critical_offset: float = 5.0
    moisture_critical_offset: float = 10.0
    battery_warning_level: float = 20.0
    battery_critical_level: float = 10.0


@dataclass(frozen=True)
class SchedulerConfig:
    """Randomized generation interval bounds (minutes)."""
    enabled: bool = True
    min_interval_minutes: float = 30.0
    max_interval_minutes: float = 45.0


@dataclass(frozen=True)
class StorageConfig:
    """SQLite location and persistence retry policy."""
    db_path: str = "data/hayguard.db"
    retry_backoff_s: float = 1.0
    retry_max_backoff_s: float = 60.0


@dataclass(frozen=True)
class WebhookConfigData:
    """Webhook notifier configuration (URL + auth). Disabled when url is None."""
    url: Optional[str] = None
    auth_header: Optional[str] = None
    timeout_s: float = 3.0
    verify_tls: bool = True


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: Optional[str] = None


@dataclass(frozen=True)
class AppConfig:
    """
    Root engine configuration loaded from YAML.

    Every section is optional in the file; missing keys keep the defaults
    declared on the section dataclasses.
    """
    power: PowerConfig = field(default_factory=PowerConfig)
    synth: SynthConfig = field(default_factory=SynthConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    webhook: WebhookConfigData = field(default_factory=WebhookConfigData)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _read_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("config.yaml must contain a YAML mapping at the root")
    return data


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"config section {name!r} must be a mapping")
    return value


def _resolve_config_path(path: Optional[str]) -> Optional[Path]:
    """
    Resolve config.yaml location.

    Priority:
    1) explicit path argument
    2) HAYGUARD_CONFIG env var (``.env`` in the working directory is loaded first)
    3) ./config.yaml in current working directory, if it exists

    Returns None when no file should be read (built-in defaults apply).
    """
    if path:
        return Path(path).expanduser().resolve()

    load_dotenv(Path.cwd() / ".env")
    env = os.getenv(CONFIG_ENV_VAR)
    if env:
        return Path(env).expanduser().resolve()

    candidate = Path("config.yaml").resolve()
    return candidate if candidate.exists() else None


def load_app_config(path: Optional[str] = None) -> AppConfig:
    """
    Load engine configuration from YAML and convert into typed config objects.

    Parameters
    ----------
    path
        Explicit path to config.yaml. If None, uses default resolution.

    Returns
    -------
    AppConfig
        Parsed configuration.

    Raises
    ------
    FileNotFoundError
        If an explicitly requested config file does not exist.
    ValueError
        If the file or one of its sections is not a mapping, or values fail conversion.
    """
    cfg_path = _resolve_config_path(path)
    if cfg_path is None:
        return AppConfig()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config not found: {cfg_path}")

    raw = _read_yaml(cfg_path)

    # ---- power ----
    p = _section(raw, "power")
    d = PowerConfig()
    power = PowerConfig(
        depletion_hours=float(p.get("depletion_hours", d.depletion_hours)),
        charge_threshold=float(p.get("charge_threshold", d.charge_threshold)),
        min_level=float(p.get("min_level", d.min_level)),
        charge_hours_min=float(p.get("charge_hours_min", d.charge_hours_min)),
        charge_hours_max=float(p.get("charge_hours_max", d.charge_hours_max)),
        nominal_charge_hours=float(p.get("nominal_charge_hours", d.nominal_charge_hours)),
    )

    # ---- synth ----
    s = _section(raw, "synth")
    sd = SynthConfig()
    synth = SynthConfig(
        seed=int(s["seed"]) if s.get("seed") is not None else None,
        temperature_in_range_probability=float(
            s.get("temperature_in_range_probability", sd.temperature_in_range_probability)
        ),
        moisture_in_range_probability=float(
            s.get("moisture_in_range_probability", sd.moisture_in_range_probability)
        ),
        step_fraction=float(s.get("step_fraction", sd.step_fraction)),
        readings_per_day=int(s.get("readings_per_day", sd.readings_per_day)),
    )

    # ---- history ----
    h = _section(raw, "history")
    hd = HistoryConfig()
    history = HistoryConfig(
        retention_days=int(h.get("retention_days", hd.retention_days)),
        default_query_days=int(h.get("default_query_days", hd.default_query_days)),
        downsample_points=int(h.get("downsample_points", hd.downsample_points)),
    )

    # ---- alerts ----
    a = _section(raw, "alerts")
    ad = AlertConfig()
    alerts = AlertConfig(
        ledger_ttl_days=int(a.get("ledger_ttl_days", ad.ledger_ttl_days)),
        temperature_critical_offset=float(a.get("temperature_critical_offset", ad.temperature_critical_offset)),
        moisture_critical_offset=float(a.get("moisture_critical_offset", ad.moisture_critical_offset)),
        battery_warning_level=float(a.get("battery_warning_level", ad.battery_warning_level)),
        battery_critical_level=float(a.get("battery_critical_level", ad.battery_critical_level)),
    )

    # ---- scheduler ----
    sc = _section(raw, "scheduler")
    scd = SchedulerConfig()
    scheduler = SchedulerConfig(
        enabled=bool(sc.get("enabled", scd.enabled)),
        min_interval_minutes=float(sc.get("min_interval_minutes", scd.min_interval_minutes)),
        max_interval_minutes=float(sc.get("max_interval_minutes", scd.max_interval_minutes)),
    )
    if scheduler.min_interval_minutes > scheduler.max_interval_minutes:
        raise ValueError("scheduler.min_interval_minutes must not exceed max_interval_minutes")

    # ---- storage ----
    st = _section(raw, "storage")
    std = StorageConfig()
    storage = StorageConfig(
        db_path=str(st.get("db_path", std.db_path)),
        retry_backoff_s=float(st.get("retry_backoff_s", std.retry_backoff_s)),
        retry_max_backoff_s=float(st.get("retry_max_backoff_s", std.retry_max_backoff_s)),
    )

    # ---- webhook ----
    w = _section(raw, "webhook")
    webhook = WebhookConfigData(
        url=str(w["url"]) if w.get("url") else None,
        auth_header=w.get("auth_header"),
        timeout_s=float(w.get("timeout_s", 3.0)),
        verify_tls=bool(w.get("verify_tls", True)),
    )

    # ---- logging ----
    lg = _section(raw, "logging")
    log_cfg = LoggingConfig(
        level=str(lg.get("level", "INFO")),
        format=lg.get("format"),
    )

    return AppConfig(
        power=power,
        synth=synth,
        history=history,
        alerts=alerts,
        scheduler=scheduler,
        storage=storage,
        webhook=webhook,
        logging=log_cfg,
    )
