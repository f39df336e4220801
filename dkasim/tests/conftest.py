"""
Shared fixtures: a small reference clinical config, deterministic randomness,
a manually driven scheduler and a publisher that records everything.
"""

from typing import Callable, Dict, List, Optional

import pytest

from dkasim.core.config import SimulationSettings
from dkasim.core.event_bus import EventPublisher
from dkasim.core.random_source import RandomSource
from dkasim.core.scheduler import TickScheduler
from dkasim.core.state_manager import StateManager
from dkasim.engine.simulation_engine import SimulationEngine
from dkasim.models.clinical_config import ClinicalRulesConfig, ConfigVersion, VitalsSnapshot
from dkasim.models.events import SimEvent, SimEventType
from dkasim.models.patient import Patient, ResourceState
from dkasim.models.scenario import ScenarioDefinition


REFERENCE_CONFIG = {
    "version": 1,
    "dka_triggers": {"glucose_threshold": 11, "ketone_threshold": 3, "ph_threshold": 7.3, "bicarb_threshold": 15},
    "actions": [
        {"key": "check_glucose", "label": "Blood Glucose", "category": "investigation", "delay_ms": 30000},
        {"key": "check_ketones", "label": "Blood Ketones", "category": "investigation", "delay_ms": 45000},
        {"key": "request_abg", "label": "Arterial Blood Gas", "category": "investigation", "delay_ms": 120000},
        {"key": "check_potassium", "label": "Serum Potassium", "category": "investigation", "delay_ms": 180000},
        {"key": "fbc", "label": "Full Blood Count", "category": "investigation", "delay_ms": 180000},
        {"key": "request_ultrasound", "label": "Ultrasound", "category": "investigation", "delay_ms": 240000},
        {"key": "continuous_ctg", "label": "Continuous CTG", "category": "monitoring", "delay_ms": 60000},
        {"key": "maternal_observations", "label": "Maternal Observations", "category": "monitoring",
         "delay_ms": 30000},
        {"key": "escalate_registrar", "label": "Escalate to Registrar", "category": "escalation",
         "delay_ms": 60000},
        {"key": "start_iv_fluids", "label": "IV Fluids", "category": "treatment", "delay_ms": 120000,
         "requires_prescription": True, "prescription_type": "iv_fluids"},
        {"key": "start_insulin", "label": "Insulin Infusion", "category": "treatment", "delay_ms": 120000,
         "prerequisites": ["start_iv_fluids"], "requires_prescription": True, "prescription_type": "insulin"},
        {"key": "start_potassium_replacement", "label": "Potassium Replacement", "category": "treatment",
         "delay_ms": 60000, "prerequisites": ["check_potassium"], "requires_prescription": True,
         "prescription_type": "potassium"},
    ],
    "treatment": {
        "fluid_protocol": {"first_bag_volume": 1000, "first_bag_duration_minutes": 60,
                           "sbp_shocked_threshold": 90, "subsequent_rate": 250},
        "insulin_protocol": {"rate_units_per_kg_per_hr": 0.1, "max_rate_ml_per_hr": 15.0},
        "potassium_protocol": {"low_threshold": 3.5, "high_threshold": 5.5},
    },
    "deterioration_curves": {
        "dka": {"stages": [
            {"name": "stable", "duration_ms": 300000,
             "vitals": {"hr": 95, "bp_systolic": 118, "bp_diastolic": 72, "rr": 20, "spo2": 97, "temp": 37.1,
                        "gcs": 15, "glucose": 14.2, "ketones": 4.1, "ph": 7.28, "bicarb": 14},
             "ctg_summary": "Normal baseline", "fetal_status": "reassuring"},
            {"name": "concerning", "duration_ms": 300000,
             "vitals": {"hr": 110, "bp_systolic": 110, "bp_diastolic": 68, "rr": 26, "spo2": 96, "temp": 37.0,
                        "gcs": 15, "glucose": 18.5, "ketones": 5.2, "ph": 7.22, "bicarb": 10},
             "ctg_summary": "Reduced variability", "fetal_status": "non_reassuring"},
            {"name": "critical", "duration_ms": 300000,
             "vitals": {"hr": 130, "bp_systolic": 95, "bp_diastolic": 55, "rr": 34, "spo2": 93, "temp": 36.5,
                        "gcs": 13, "glucose": 25.0, "ketones": 6.5, "ph": 7.10, "bicarb": 6},
             "ctg_summary": "Late decelerations", "fetal_status": "pathological"},
        ]},
        "rfm": {"stages": [
            {"name": "stable", "duration_ms": 120000,
             "vitals": {"hr": 78, "bp_systolic": 115, "bp_diastolic": 70, "rr": 16, "spo2": 99, "temp": 36.6,
                        "gcs": 15},
             "ctg_summary": "Reactive trace", "fetal_status": "reassuring"},
            {"name": "resolved", "duration_ms": 120000,
             "vitals": {"hr": 75, "bp_systolic": 115, "bp_diastolic": 70, "rr": 16, "spo2": 99, "temp": 36.6,
                        "gcs": 15},
             "ctg_summary": "Normal reactive trace", "fetal_status": "reassuring"},
        ]},
    },
    "scoring": {
        "recognition_target_ms": 300000,
        "escalation_target_ms": 480000,
        "treatment_target_ms": 600000,
        "recognition_max_score": 20,
        "escalation_max_score": 15,
        "treatment_max_score": 15,
        "outcome_max_score": 40,
        "actions_max_score": 10,
    },
}

ALL_ACTIONS = [a["key"] for a in REFERENCE_CONFIG["actions"]]

STABLE_VITALS = {"hr": 95, "bp_systolic": 118, "bp_diastolic": 72, "rr": 20, "spo2": 97, "temp": 37.1, "gcs": 15}

REFERENCE_SCENARIO = {
    "id": "test_scenario",
    "name": "Test Scenario",
    "duration_minutes": 10,
    "patients": [
        {"key": "dka_patient", "name": "Sarah Mitchell", "age": 28, "weight": 84, "gestation": "32+4",
         "initial_vitals": STABLE_VITALS, "initial_ctg": "Normal baseline", "deterioration_type": "dka",
         "is_dka": True, "available_actions": ALL_ACTIONS, "arrival_delay_ms": 0},
        {"key": "rfm_patient", "name": "Emma Collins", "age": 24, "gestation": "36+2",
         "initial_vitals": {"hr": 78, "bp_systolic": 115, "bp_diastolic": 70, "rr": 16, "spo2": 99,
                            "temp": 36.6, "gcs": 15},
         "deterioration_type": "rfm", "available_actions": ["continuous_ctg", "maternal_observations"],
         "arrival_delay_ms": 200000},
    ],
    "timed_events": [
        {"trigger_at_ms": 150000, "type": "resource_change",
         "payload": {"resource": "ketometer", "available": False, "message": "Ketone meter failed QC."}},
        {"trigger_at_ms": 250000, "type": "lab_delay", "payload": {"multiplier": 2.0}},
        {"trigger_at_ms": 350000, "type": "mystery", "payload": {}},
    ],
}


class FixedRandom(RandomSource):
    """Always returns the same value; 0.5 means zero jitter."""

    def __init__(self, value: float = 0.5):
        self.value = value

    def next(self) -> float:
        return self.value


class ManualScheduler(TickScheduler):
    """Keeps callbacks instead of running them; tests fire ticks by hand."""

    def __init__(self):
        self.callbacks: Dict[str, Callable[[], None]] = {}
        self.intervals: Dict[str, float] = {}

    def schedule(self, session_id, callback, interval_s):
        if session_id not in self.callbacks:
            self.callbacks[session_id] = callback
            self.intervals[session_id] = interval_s

    def cancel(self, session_id):
        self.callbacks.pop(session_id, None)
        self.intervals.pop(session_id, None)

    def is_scheduled(self, session_id):
        return session_id in self.callbacks

    def cancel_all(self):
        self.callbacks.clear()
        self.intervals.clear()

    def fire(self, session_id: str, times: int = 1) -> None:
        for _ in range(times):
            callback = self.callbacks.get(session_id)
            if callback is None:
                return
            callback()


class RecordingPublisher(EventPublisher):
    def __init__(self):
        self.events: List[SimEvent] = []

    def emit(self, event: SimEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: SimEventType) -> List[SimEvent]:
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def config() -> ClinicalRulesConfig:
    return ClinicalRulesConfig.model_validate(REFERENCE_CONFIG)


@pytest.fixture
def scenario() -> ScenarioDefinition:
    return ScenarioDefinition.model_validate(REFERENCE_SCENARIO)


@pytest.fixture
def resources() -> ResourceState:
    return ResourceState()


@pytest.fixture
def rng() -> FixedRandom:
    return FixedRandom(0.5)


@pytest.fixture
def fixed_random() -> Callable[[float], FixedRandom]:
    return FixedRandom


@pytest.fixture
def make_patient() -> Callable[..., Patient]:
    def _make(**overrides) -> Patient:
        data = {
            "id": "patient-1",
            "session_id": "session-1",
            "scenario_patient_key": "dka_patient",
            "name": "Sarah Mitchell",
            "age": 28,
            "weight": 84,
            "gestation": "32+4",
            "is_dka": True,
            "deterioration_type": "dka",
            "current_vitals": VitalsSnapshot(**STABLE_VITALS),
            "ctg_summary": "Normal baseline",
            "available_actions": ALL_ACTIONS,
            "has_arrived": True,
        }
        data.update(overrides)
        return Patient(**data)
    return _make


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def repository(config, scenario) -> StateManager:
    repo = StateManager()
    repo.add_config(ConfigVersion(id="config-1", version=1, label="Test config", config=config))
    repo.add_scenario(scenario)
    return repo


@pytest.fixture
def engine(repository, publisher, scheduler, rng) -> SimulationEngine:
    return SimulationEngine(
        repository=repository,
        publisher=publisher,
        scheduler=scheduler,
        rng=rng,
        settings=SimulationSettings(tick_interval_ms=1000),
    )


@pytest.fixture
def new_session(engine: SimulationEngine):
    """Factory: a session plus one participant assigned to the DKA patient."""
    def _create(speed_factor: Optional[float] = None):
        created = engine.create_session("test_scenario", "1234", speed_factor)
        session = created["session"]
        participant = engine.join_session(session.code, "Test Midwife").user
        dka = next(p for p in engine.repository.get_patients_by_session(session.id) if p.is_dka)
        participant = engine.assign_patient(session.id, participant.id, dka.id)
        return session, participant, dka
    return _create
