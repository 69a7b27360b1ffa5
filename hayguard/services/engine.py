"""
Telemetry engine facade.

``TelemetryEngine`` is the only entry point used by the API layer and by the
background threads. It owns the registry, the power state machine, the reading
synthesizer, the historical store, the alert engine and the resolution ledger,
and serializes every call with one re-entrant lock.

Persistence Model
-----------------
Every mutation is applied in memory first and then written through the
:class:`SnapshotWriter` as full-record replaces. A failed write raises
``PersistenceError`` to the mutating caller (the in-memory change stands and
the record is retried in the background). Scheduled generation never raises on
persistence failures; it logs them and relies on the retry thread.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import fields as dc_fields
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from hayguard.config.settings import Settings
from hayguard.core.alert.alert_base import AlertCriteria
from hayguard.core.alert.alert_criteria import BatteryCriteria, RangeHighCriteria
from hayguard.core.alert.alert_engine import AlertEngine
from hayguard.core.config.sensor_registry import SensorDraft, SensorRegistry
from hayguard.core.config.yaml_config import AlertConfig, AppConfig
from hayguard.core.state.history_store import HistoryStore, downsample
from hayguard.core.state.resolution_ledger import ResolutionLedger
from hayguard.domain.errors import InvalidConfigError, NotFoundError, PersistenceError
from hayguard.domain.events import AlertEvent
from hayguard.domain.models import (
    AlertRecord,
    AlertType,
    PowerState,
    Quantity,
    Reading,
    Sensor,
    SensorStatus,
    SensorView,
)
from hayguard.simulator.power import PowerStateMachine
from hayguard.simulator.synthesizer import RandomSource, ReadingSynthesizer, default_profiles
from hayguard.storage.records import (
    power_state_from_record,
    power_state_to_record,
    reading_from_record,
    reading_to_record,
    sensor_from_record,
    sensor_to_record,
)
from hayguard.storage.snapshot_writer import SnapshotWriter

logger = logging.getLogger(__name__)

SENSORS_KEY = "sensors"
TEMP_ID_COUNTER_KEY = "temp_id_counter"
POWER_STATES_KEY = "power_states"
LEDGER_KEY = "alert_resolution_ledger"
HISTORY_KEY_PREFIX = "history:"


def history_key(sensor_id: str) -> str:
    return f"{HISTORY_KEY_PREFIX}{sensor_id}"


def build_alert_criteria(cfg: AlertConfig) -> List[AlertCriteria]:
    return [
        RangeHighCriteria(
            quantity=Quantity.TEMPERATURE,
            alert_type=AlertType.TEMPERATURE,
            critical_offset=cfg.temperature_critical_offset,
        ),
        RangeHighCriteria(
            quantity=Quantity.MOISTURE,
            alert_type=AlertType.MOISTURE,
            critical_offset=cfg.moisture_critical_offset,
            warn=False,
        ),
        BatteryCriteria(
            warning_level=cfg.battery_warning_level,
            critical_level=cfg.battery_critical_level,
        ),
    ]


_DRAFT_FIELDS = frozenset(f.name for f in dc_fields(SensorDraft))


def _to_draft(config: Union[SensorDraft, Mapping[str, Any]]) -> SensorDraft:
    if isinstance(config, SensorDraft):
        return config
    unknown = set(config) - _DRAFT_FIELDS
    if unknown:
        raise InvalidConfigError(f"unknown sensor fields: {', '.join(sorted(unknown))}")
    if not config.get("name"):
        raise InvalidConfigError("a sensor needs a name")
    try:
        return SensorDraft(
            name=str(config["name"]),
            quantities=list(config.get("quantities", [])),
            optimal_ranges=dict(config.get("optimal_ranges", {})),
            bales_monitored=int(config.get("bales_monitored", 0)),
            location=str(config.get("location", "")),
            description=str(config.get("description", "")),
        )
    except (TypeError, ValueError) as e:
        raise InvalidConfigError(f"malformed sensor config: {e}") from e


class TelemetryEngine:
    """
    Thread-safe facade over the simulation and alerting core.

    Parameters
    ----------
    cfg
        Application configuration.
    writer
        Snapshot writer in front of the durable store.
    rng
        Random source shared by the power machine and the synthesizer. A
        ``random.Random`` seeded from ``cfg.synth.seed`` by default.
    publish
        Callable receiving every alert lifecycle event (e.g.
        ``EventBus.publish_alert``). Events are dropped when None.
    clock
        Source of "now" when callers do not pass a timestamp.
    settings
        Provides the default fleet.
    """

    def __init__(
        self,
        cfg: AppConfig,
        writer: SnapshotWriter,
        rng: Optional[RandomSource] = None,
        publish: Optional[Callable[[AlertEvent], None]] = None,
        clock: Callable[[], datetime] = datetime.now,
        settings: Optional[Settings] = None,
    ):
        self._cfg = cfg
        self._writer = writer
        self._rng = rng if rng is not None else random.Random(cfg.synth.seed)
        self._publish = publish
        self._clock = clock
        self._settings = settings or Settings()
        self._lock = threading.RLock()

        self.registry = SensorRegistry()
        self.power = PowerStateMachine(cfg=cfg.power, rng=self._rng)
        self.synth = ReadingSynthesizer(profiles=default_profiles(cfg.synth), rng=self._rng)
        self.history = HistoryStore(retention_days=cfg.history.retention_days)
        self.ledger = ResolutionLedger(ttl_days=cfg.alerts.ledger_ttl_days)
        self.alerts = AlertEngine(criteria=build_alert_criteria(cfg.alerts))

    # --------------------------
    # Startup
    # --------------------------
    def load_or_seed(self, now: Optional[datetime] = None) -> None:
        """
        Restore state from the durable store, or seed the default fleet when empty.

        Power states missing for paired sensors are reconstructed from their
        pairing time. Alerts are evaluated once without publishing events.
        """
        with self._lock:
            ts = now or self._clock()
            store = self._writer.store

            raw_sensors = store.get(SENSORS_KEY)
            if raw_sensors is None:
                logger.info("no stored registry, seeding default fleet")
                self._seed(ts)
                return

            self.registry.load(
                (sensor_from_record(r) for r in raw_sensors),
                next_temp_number=store.get(TEMP_ID_COUNTER_KEY),
            )
            self.power.load(self._decode_power(store.get(POWER_STATES_KEY) or {}))
            self.ledger.load_record(store.get(LEDGER_KEY) or {})

            for sensor in self.registry.paired():
                self._load_history(sensor.id)
                if self.power.get(sensor.id) is None:
                    self._init_power(sensor, ts)

            self.alerts.evaluate(self._views(ts), self.ledger, ts)
            logger.info(
                "loaded %d sensors (%d paired), %d resolution entries",
                len(self.registry.all()), len(self.registry.paired()), len(self.ledger.entries),
            )

    def reset_to_defaults(self, now: Optional[datetime] = None) -> List[Sensor]:
        """
        Discard every sensor, series and resolution and re-seed the default fleet.

        Raises
        ------
        PersistenceError
            If a write fails; the in-memory reset still applies.
        """
        with self._lock:
            ts = now or self._clock()
            stale = {history_key(s.id) for s in self.registry.all()}
            stale.update(self._writer.store.keys(HISTORY_KEY_PREFIX))

            self.registry = SensorRegistry()
            self.power.load({})
            self.synth = ReadingSynthesizer(profiles=self.synth.profiles, rng=self._rng)
            self.history = HistoryStore(retention_days=self._cfg.history.retention_days)
            self.ledger = ResolutionLedger(ttl_days=self._cfg.alerts.ledger_ttl_days)
            self.alerts.reset()

            self._seed(ts, strict=True, deletes=sorted(stale))
            return self.registry.all()

    def _seed(self, ts: datetime, strict: bool = False, deletes: Iterable[str] = ()) -> None:
        sensors = self._settings.default_sensors(ts)
        self.registry.load(sensors, next_temp_number=1)
        for sensor in sensors:
            self._init_power(sensor, ts)
            self._backfill(sensor, ts)

        self.alerts.evaluate(self._views(ts), self.ledger, ts)

        items: Dict[str, Any] = self._registry_records()
        items[POWER_STATES_KEY] = self._power_record()
        items[LEDGER_KEY] = self.ledger.to_record()
        for sensor in sensors:
            items[history_key(sensor.id)] = self._history_record(sensor.id)
        self._write(items, strict=strict, deletes=deletes)

    # --------------------------
    # Read API
    # --------------------------
    def list_sensors_with_current_data(self, now: Optional[datetime] = None) -> List[SensorView]:
        """Joined registry, power and latest reading for every sensor."""
        with self._lock:
            return self._views(now or self._clock())

    def get_history(self, sensor_id: str, days: Optional[float] = None, now: Optional[datetime] = None) -> List[Reading]:
        """
        Readings of ``sensor_id`` within the last ``days`` days, ascending.

        Unknown (or deleted) sensors yield an empty list.
        """
        with self._lock:
            span = self._cfg.history.default_query_days if days is None else days
            return self.history.query(sensor_id, span, now or self._clock())

    def downsample(self, series: Sequence[Reading], target_points: Optional[int] = None) -> List[Reading]:
        n = self._cfg.history.downsample_points if target_points is None else target_points
        return downsample(series, n)

    def get_alerts(self, now: Optional[datetime] = None) -> List[AlertRecord]:
        """Re-evaluate the rules against the current snapshot and return the live alerts."""
        with self._lock:
            ts = now or self._clock()
            events = self.alerts.evaluate(self._views(ts), self.ledger, ts)
            self._emit(events)
            return self.alerts.alerts()

    def current_alerts(self) -> List[AlertRecord]:
        """Live alerts of the last evaluation pass, without re-evaluating."""
        with self._lock:
            return self.alerts.alerts()

    # --------------------------
    # Mutations
    # --------------------------
    def add_sensor(self, config: Union[SensorDraft, Mapping[str, Any]], now: Optional[datetime] = None) -> Sensor:
        """
        Register an unpaired sensor under a new ``TEMP-NNN`` identity.

        Raises
        ------
        InvalidConfigError
            If the configuration is malformed; nothing is registered.
        PersistenceError
            If the registry write fails.
        """
        with self._lock:
            sensor = self.registry.add(_to_draft(config), now or self._clock())
            logger.info("added sensor %s (%s)", sensor.id, sensor.name)
            self._write(self._registry_records())
            return sensor

    def pair_sensor(self, temp_id: str, pairing_code: str, now: Optional[datetime] = None) -> Sensor:
        """
        Promote ``temp_id`` to the next permanent ``SENS-NNN`` identity.

        The power state and the first reading are created before returning.

        Raises
        ------
        NotFoundError
            If ``temp_id`` is unknown.
        AlreadyPairedError
            If the sensor is already paired.
        PersistenceError
            If a write fails (the pairing itself is kept).
        """
        with self._lock:
            ts = now or self._clock()
            previous, paired = self.registry.pair(temp_id, pairing_code, ts)
            try:
                self._init_power(paired, ts)
                self._backfill(paired, ts)
            except Exception:
                self.registry.restore(paired.id, previous)
                self.power.drop(paired.id)
                self.history.drop(paired.id)
                self.synth.forget(paired.id)
                raise

            logger.info("paired %s as %s (code %s)", temp_id, paired.id, pairing_code)
            items = self._registry_records()
            items[POWER_STATES_KEY] = self._power_record()
            items[history_key(paired.id)] = self._history_record(paired.id)
            self._write(items)
            return paired

    def update_config(self, sensor_id: str, patch: Mapping[str, Any]) -> Sensor:
        """
        Merge ``patch`` into the sensor configuration (all-or-nothing).

        Raises
        ------
        NotFoundError
            If the sensor is unknown.
        InvalidConfigError
            If the result would be invalid; the sensor is left untouched.
        PersistenceError
            If the registry write fails.
        """
        with self._lock:
            sensor = self.registry.update(sensor_id, patch)
            self._write(self._registry_records())
            return sensor

    def delete_sensor(self, sensor_id: str) -> None:
        """
        Remove a sensor together with its power state, history, walk state
        and resolution entries.

        Raises
        ------
        NotFoundError
            If the sensor is unknown.
        PersistenceError
            If a write fails.
        """
        with self._lock:
            self.registry.remove(sensor_id)
            self.power.drop(sensor_id)
            self.history.drop(sensor_id)
            self.synth.forget(sensor_id)
            self.alerts.forget_sensor(sensor_id)
            dropped = self.ledger.forget_sensor(sensor_id)
            logger.info("deleted sensor %s (%d resolution entries)", sensor_id, dropped)

            items = self._registry_records()
            items[POWER_STATES_KEY] = self._power_record()
            items[LEDGER_KEY] = self.ledger.to_record()
            self._write(items, deletes=[history_key(sensor_id)])

    def resolve_alert(self, alert_id: str, now: Optional[datetime] = None) -> AlertRecord:
        """
        Mark a live alert as resolved and persist the ledger.

        Raises
        ------
        NotFoundError
            If no live alert has this ID.
        PersistenceError
            If the ledger write fails (the resolution is kept in memory).
        """
        with self._lock:
            ts = now or self._clock()
            if self.alerts.get(alert_id) is None:
                self._emit(self.alerts.evaluate(self._views(ts), self.ledger, ts))

            event = self.alerts.mark_resolved(alert_id, self.ledger, ts)
            self._emit([event])
            logger.info("resolved alert %s", alert_id)
            self._write({LEDGER_KEY: self.ledger.to_record()})

            record = self.alerts.get(alert_id)
            if record is None:
                raise NotFoundError(f"unknown alert {alert_id!r}")
            return record

    # --------------------------
    # Generation
    # --------------------------
    def generate_now(self, now: Optional[datetime] = None) -> int:
        """
        Run one generation pass.

        For every paired sensor that is not charging, append one reading; then
        re-evaluate alerts and persist. Per-sensor failures are logged and
        skipped, persistence failures are logged and retried in the background.

        Returns
        -------
        int
            Number of readings produced.
        """
        with self._lock:
            ts = now or self._clock()
            produced: List[str] = []

            for sensor_id in [s.id for s in self.registry.paired()]:
                sensor = self.registry.find(sensor_id)
                if sensor is None or not sensor.is_paired:
                    continue
                try:
                    state = self._power_for(sensor, ts)
                    if state.is_charging:
                        continue
                    reading = self.synth.sample(sensor, self.power.level_at(state, ts), ts)
                    self.history.append(sensor_id, reading, ts)
                    produced.append(sensor_id)
                except Exception:
                    logger.exception("generation failed for sensor %s, skipping", sensor_id)

            events = self.alerts.evaluate(self._views(ts), self.ledger, ts)

            items: Dict[str, Any] = {POWER_STATES_KEY: self._power_record()}
            for sensor_id in produced:
                items[history_key(sensor_id)] = self._history_record(sensor_id)
            try:
                self._write(items)
            except PersistenceError as e:
                logger.warning("generation pass not fully persisted: %s", e)

            logger.info(
                "generation pass at %s: %d readings, %d live alerts",
                ts.isoformat(timespec="seconds"), len(produced), len(self.alerts.alerts()),
            )
            self._emit(events)
            return len(produced)

    # --------------------------
    # Helpers (caller holds the lock)
    # --------------------------
    def _views(self, ts: datetime) -> List[SensorView]:
        views: List[SensorView] = []
        for sensor in self.registry.all():
            if not sensor.is_paired:
                views.append(
                    SensorView(
                        sensor=sensor,
                        status=SensorStatus.UNPAIRED,
                        battery_level=sensor.initial_battery,
                        is_charging=False,
                        current={q: None for q in sensor.quantities},
                    )
                )
                continue

            state = self._power_for(sensor, ts)
            latest = self.history.latest(sensor.id)
            views.append(
                SensorView(
                    sensor=sensor,
                    status=SensorStatus.ONLINE if latest is not None else SensorStatus.OFFLINE,
                    battery_level=self.power.level_at(state, ts),
                    is_charging=state.is_charging,
                    current={q: latest.value_of(q) if latest else None for q in sensor.quantities},
                    last_update=latest.timestamp if latest else None,
                )
            )
        return views

    def _power_for(self, sensor: Sensor, ts: datetime) -> PowerState:
        try:
            return self.power.advance(sensor.id, ts)
        except NotFoundError:
            return self._init_power(sensor, ts)
        except ValueError:
            logger.warning("corrupt power state for %s, reconstructing", sensor.id, exc_info=True)
            return self._init_power(sensor, ts)

    def _init_power(self, sensor: Sensor, ts: datetime) -> PowerState:
        return self.power.initialize(
            sensor.id,
            paired_at=sensor.paired_at or sensor.created_at,
            initial_level=sensor.initial_battery,
            now=ts,
        )

    def _backfill(self, sensor: Sensor, ts: datetime) -> None:
        paired_at = sensor.paired_at or ts
        start = max(paired_at, ts - timedelta(days=self._cfg.history.retention_days))
        gap = 24 * 60 / max(1, self._cfg.synth.readings_per_day)
        readings = self.synth.backfill(
            sensor,
            start=start,
            end=ts,
            battery_at=lambda t: self.power.reconstruct(paired_at, sensor.initial_battery, t)[1],
            min_gap_minutes=gap * 0.8,
            max_gap_minutes=gap * 1.2,
        )
        self.history.load(sensor.id, readings)
        self.history.evict(sensor.id, ts)

    def _decode_power(self, raw: Mapping[str, Any]) -> Dict[str, PowerState]:
        states: Dict[str, PowerState] = {}
        for sensor_id, record in raw.items():
            try:
                states[sensor_id] = power_state_from_record(record)
            except (KeyError, TypeError, ValueError):
                logger.warning("corrupt stored power state for %s, reconstructing", sensor_id, exc_info=True)
        return states

    def _load_history(self, sensor_id: str) -> None:
        raw = self._writer.store.get(history_key(sensor_id)) or []
        try:
            readings = [reading_from_record(r) for r in raw]
        except (KeyError, TypeError, ValueError):
            logger.exception("discarding unreadable history of %s", sensor_id)
            readings = []
        self.history.load(sensor_id, readings)
        latest = self.history.latest(sensor_id)
        if latest is not None:
            self.synth.remember(latest)

    def _registry_records(self) -> Dict[str, Any]:
        return {
            SENSORS_KEY: [sensor_to_record(s) for s in self.registry.all()],
            TEMP_ID_COUNTER_KEY: self.registry.next_temp_number,
        }

    def _power_record(self) -> Dict[str, Any]:
        return {sid: power_state_to_record(st) for sid, st in self.power.snapshot().items()}

    def _history_record(self, sensor_id: str) -> List[Dict[str, Any]]:
        return [reading_to_record(r) for r in self.history.get_series(sensor_id)]

    def _write(self, items: Dict[str, Any], strict: bool = True, deletes: Iterable[str] = ()) -> None:
        """Commit ``items`` and ``deletes`` as one batch."""
        try:
            self._writer.write_many(items, deletes=deletes)
        except PersistenceError as e:
            if strict:
                raise
            logger.warning("startup write incomplete: %s", e)

    def _emit(self, events: Sequence[AlertEvent]) -> None:
        for ev in events:
            logger.info("alert %s %s: %s", ev.transition.value, ev.dedup_key, ev.message)
            if self._publish is not None:
                self._publish(ev)
