from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from hayguard.core.config.yaml_config import AppConfig, load_app_config
from hayguard.notification.notification_thread import NotificationWorkerThread
from hayguard.notification.webhook_notifier import WebhookConfig, WebhookNotifier
from hayguard.runtime.app_runtime import AppRuntime
from hayguard.runtime.event_bus import EventBus
from hayguard.runtime.scheduler import GenerationScheduler
from hayguard.services.engine import TelemetryEngine
from hayguard.storage.kv_store import SqliteKVStore
from hayguard.storage.snapshot_writer import SnapshotWriter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineWiring:
    """Everything the API layer (or the console entry point) needs."""
    config: AppConfig
    engine: TelemetryEngine
    bus: EventBus
    store: SqliteKVStore
    runtime: AppRuntime


def build_notifier(cfg: AppConfig) -> Optional[NotificationWorkerThread]:
    if not cfg.webhook.url:
        return None

    auth_header = cfg.webhook.auth_header
    if auth_header and not auth_header.startswith("Bearer "):
        auth_header = f"Bearer {auth_header}"

    return NotificationWorkerThread(
        notifiers=[
            WebhookNotifier(
                WebhookConfig(
                    url=cfg.webhook.url,
                    auth_header=auth_header,
                    timeout_s=cfg.webhook.timeout_s,
                    verify_tls=cfg.webhook.verify_tls,
                )
            )
        ]
    )


def build_engine_system(config_path: Optional[str] = None, cfg: Optional[AppConfig] = None) -> EngineWiring:
    """
    Build the engine once per process and load (or seed) its state.

    Threads are created but not started; call ``wiring.runtime.start()``.
    """
    cfg = cfg or load_app_config(config_path)

    # --- STORAGE ---
    store = SqliteKVStore(cfg.storage.db_path)
    writer = SnapshotWriter(store)

    # --- EVENT BUS ---
    bus = EventBus()

    # --- ENGINE ---
    engine = TelemetryEngine(cfg, writer, publish=bus.publish_alert)
    engine.load_or_seed()

    # --- RUNTIME ---
    scheduler = (
        GenerationScheduler(
            engine.generate_now,
            min_interval_s=cfg.scheduler.min_interval_minutes * 60.0,
            max_interval_s=cfg.scheduler.max_interval_minutes * 60.0,
        )
        if cfg.scheduler.enabled
        else None
    )
    runtime = AppRuntime(
        engine=engine,
        writer=writer,
        bus=bus,
        scheduler=scheduler,
        notifier=build_notifier(cfg),
        retry_backoff_s=cfg.storage.retry_backoff_s,
        retry_max_backoff_s=cfg.storage.retry_max_backoff_s,
    )

    logger.info("engine ready (db=%s, webhook=%s)", cfg.storage.db_path, "on" if cfg.webhook.url else "off")
    return EngineWiring(config=cfg, engine=engine, bus=bus, store=store, runtime=runtime)
