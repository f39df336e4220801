"""
Simulation Engine - tick-driven orchestration of a training session.

Owns the simulated clock for every running session. Each tick advances the
clock, admits arriving patients, runs deterioration and action completion,
fires scenario timed events and, once the scenario duration is reached,
ends the session and produces the debrief.

Collaborators are injected: a repository for state, a publisher for
outbound events, a scheduler for the repeating tick and a random source.
"""

import logging
import random
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from dkasim.core.config import Config, SimulationSettings
from dkasim.core.event_bus import EventPublisher, get_event_bus
from dkasim.core.random_source import RandomSource, SeededRandom
from dkasim.core.scheduler import AsyncioTickScheduler, TickScheduler
from dkasim.core.state_manager import SimulationRepository, get_state_manager
from dkasim.models.clinical_config import ClinicalRulesConfig
from dkasim.models.events import (
    ActionPendingEvent,
    ActionResultEvent,
    AlertFiredEvent,
    AlertSeverity,
    ClockTickEvent,
    EventLoggedEvent,
    PatientArrivedEvent,
    ResourceChangedEvent,
    SessionEndedEvent,
    SessionPausedEvent,
    SessionStartedEvent,
    SimEvent,
    StatusChangedEvent,
    VitalsUpdatedEvent,
)
from dkasim.models.patient import (
    InterventionType,
    Patient,
    PatientStatus,
    ResourceState,
)
from dkasim.models.prescription import Prescription
from dkasim.models.scenario import ScenarioDefinition, ScenarioTimedEvent, TimedEventType
from dkasim.models.session import (
    DebriefData,
    EventLogEntry,
    EventLogType,
    Session,
    SessionState,
    SessionStatus,
    User,
    UserRole,
)
from dkasim.engine import action_processor
from dkasim.engine.action_processor import EligibilityResult, SubmissionResult
from dkasim.engine.deterioration import apply_intervention, tick_deterioration
from dkasim.engine.scoring import score_session
from dkasim.engine.utils import round_int

logger = logging.getLogger(__name__)

# No I, O, 0 or 1
SESSION_CODE_CHARS = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

RESOURCE_FIELDS = {
    "ketometer": "ketometer_available",
    "labs": "labs_available",
    "staff": "staff_available",
}

STATUS_ALERT_SEVERITY = {
    PatientStatus.COLLAPSED: AlertSeverity.CRITICAL,
    PatientStatus.CRITICAL: AlertSeverity.HIGH,
    PatientStatus.CONCERNING: AlertSeverity.MEDIUM,
}


class JoinResult(BaseModel):
    user: Optional[User] = None
    error: Optional[str] = None


class _TickContext:
    """
    Staged writes for one tick. Nothing reaches the repository or the
    publisher until commit, so a failing tick leaves no partial state.
    """

    def __init__(self, session: Session, sim_clock_ms: int, resources: ResourceState):
        self.session = session
        self.sim_clock_ms = sim_clock_ms
        self.resources = resources
        self.patients: Dict[str, Patient] = {}
        self.log_entries: List[EventLogEntry] = []
        self.events: List[SimEvent] = []

    def emit(self, event: SimEvent) -> None:
        self.events.append(event)

    def log(self, entry: EventLogEntry) -> None:
        self.log_entries.append(entry)
        self.events.append(EventLoggedEvent(
            session_id=entry.session_id,
            sim_time_ms=entry.sim_time_ms,
            entry=entry,
        ))


def _make_entry(
    session_id: str,
    sim_time_ms: int,
    entry_type: EventLogType,
    category: Optional[str],
    detail: Dict[str, Any],
    patient_id: Optional[str] = None,
    user_id: Optional[str] = None,
    user_name: Optional[str] = None
) -> EventLogEntry:
    return EventLogEntry(
        id=f"log_{uuid.uuid4().hex[:12]}",
        session_id=session_id,
        patient_id=patient_id,
        user_id=user_id,
        user_name=user_name,
        sim_time_ms=sim_time_ms,
        type=entry_type,
        category=category,
        detail=detail,
    )


class SimulationEngine:
    """
    Orchestrates training sessions.

    Responsibilities:
    - Instantiate patients and resources from a scenario
    - Drive the simulated clock through the tick scheduler
    - Commit each tick's patient, resource and log updates atomically
    - Accept participant actions and facilitator commands
    - Produce the debrief at session end
    """

    def __init__(
        self,
        repository: SimulationRepository,
        publisher: EventPublisher,
        scheduler: TickScheduler,
        rng: Optional[RandomSource] = None,
        settings: Optional[SimulationSettings] = None
    ):
        self.repository = repository
        self.publisher = publisher
        self.scheduler = scheduler
        self.settings = settings or Config.get_simulation_settings()
        self.rng = rng or SeededRandom(self.settings.random_seed)
        self._code_random = random.Random(self.settings.random_seed)

        logger.info(
            f"Simulation Engine initialized (tick {self.settings.tick_interval_ms}ms)"
        )

    # ========================
    # Session setup
    # ========================

    def _generate_code(self) -> str:
        while True:
            code = "".join(
                self._code_random.choice(SESSION_CODE_CHARS)
                for _ in range(self.settings.session_code_length)
            )
            if self.repository.get_session_by_code(code) is None:
                return code

    def create_session(
        self,
        scenario_id: str,
        facilitator_pin: str,
        speed_factor: Optional[float] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Create a session on the latest clinical config and initialize it.

        Returns:
            {"session": Session, "facilitator": User}, or None when the
            scenario or a clinical config is missing
        """
        scenario = self.repository.get_scenario(scenario_id)
        if scenario is None:
            logger.warning(f"Cannot create session: scenario {scenario_id} not found")
            return None

        config_version = self.repository.get_latest_config()
        if config_version is None:
            logger.warning("Cannot create session: no clinical config loaded")
            return None

        session = Session(
            id=str(uuid.uuid4()),
            code=self._generate_code(),
            scenario_id=scenario_id,
            config_id=config_version.id,
            speed_factor=speed_factor or self.settings.default_speed_factor,
            facilitator_pin=facilitator_pin,
        )
        self.repository.add_session(session)
        self.initialize_session(session, scenario, config_version.config)

        facilitator = self.repository.add_user(User(
            id=str(uuid.uuid4()),
            session_id=session.id,
            name="Facilitator",
            role=UserRole.FACILITATOR,
        ))
        return {"session": session, "facilitator": facilitator}

    def initialize_session(
        self,
        session: Session,
        scenario: ScenarioDefinition,
        config: ClinicalRulesConfig
    ) -> List[Patient]:
        """
        Instantiate one patient per scenario patient definition and seed the
        session's resource state.
        """
        patients: List[Patient] = []

        for patient_def in scenario.patients:
            patient = Patient(
                id=str(uuid.uuid4()),
                session_id=session.id,
                scenario_patient_key=patient_def.key,
                name=patient_def.name,
                age=patient_def.age,
                height=patient_def.height,
                weight=patient_def.weight,
                gestation=patient_def.gestation,
                parity=patient_def.parity,
                presenting_complaint=patient_def.presenting_complaint,
                history=patient_def.history,
                pmh=patient_def.pmh,
                allergies=patient_def.allergies,
                is_dka=patient_def.is_dka,
                deterioration_type=patient_def.deterioration_type,
                current_vitals=patient_def.initial_vitals,
                ctg_summary=patient_def.initial_ctg,
                available_actions=list(patient_def.available_actions),
                arrival_delay_ms=patient_def.arrival_delay_ms,
                has_arrived=patient_def.arrival_delay_ms == 0,
            )
            patients.append(self.repository.add_patient(patient))

        ketometer = config.resources.ketometer_available
        probability = config.resources.ketometer_unavailable_probability
        if ketometer and probability > 0 and self.rng.next() < probability:
            ketometer = False
            logger.info(f"Session {session.id}: ketometer starts unavailable")

        self.repository.set_resources(session.id, ResourceState(ketometer_available=ketometer))

        logger.info(
            f"Initialized session {session.id} ({session.code}) with {len(patients)} patients "
            f"from scenario {scenario.id}"
        )
        return patients

    def join_session(self, code: str, name: str) -> Optional[JoinResult]:
        """Add a participant by session code. None when the code is unknown."""
        session = self.repository.get_session_by_code(code.strip().upper())
        if session is None:
            logger.warning(f"Join attempt with unknown session code {code}")
            return None
        if session.status == SessionStatus.ENDED:
            return JoinResult(error="This session has ended.")

        user = self.repository.add_user(User(
            id=str(uuid.uuid4()),
            session_id=session.id,
            name=name,
        ))
        logger.info(f"{name} joined session {session.id}")
        return JoinResult(user=user)

    def authenticate_facilitator(self, session_id: str, pin: str) -> Optional[bool]:
        session = self.repository.get_session(session_id)
        if session is None:
            return None
        return session.facilitator_pin == pin

    def assign_patient(self, session_id: str, user_id: str, patient_id: str) -> Optional[User]:
        user = self.repository.get_user(user_id)
        patient = self.repository.get_patient(patient_id)
        if user is None or patient is None or user.session_id != session_id or patient.session_id != session_id:
            logger.warning(f"Cannot assign patient {patient_id} to user {user_id} in session {session_id}")
            return None
        return self.repository.update_user(user_id, assigned_patient_id=patient_id)

    def auto_assign(self, session_id: str) -> Optional[List[User]]:
        """Round-robin every participant onto the session's patients."""
        if self.repository.get_session(session_id) is None:
            return None

        participants = [
            u for u in self.repository.get_users_by_session(session_id)
            if u.role == UserRole.PARTICIPANT
        ]
        patients = self.repository.get_patients_by_session(session_id)
        if not patients:
            return []

        assigned = []
        for i, user in enumerate(participants):
            patient = patients[i % len(patients)]
            assigned.append(self.repository.update_user(user.id, assigned_patient_id=patient.id))
        return assigned

    # ========================
    # Lifecycle
    # ========================

    def start_simulation(self, session_id: str) -> Optional[Session]:
        """Start (or restart) the tick loop. A running session is left alone."""
        session = self.repository.get_session(session_id)
        if session is None:
            logger.warning(f"Cannot start unknown session {session_id}")
            return None
        if session.status == SessionStatus.ENDED:
            logger.warning(f"Session {session_id} has ended and cannot be started")
            return session
        if self.scheduler.is_scheduled(session_id):
            return session

        session = self.repository.update_session(session_id, status=SessionStatus.RUNNING)
        self.scheduler.schedule(
            session_id,
            lambda: self.tick(session_id),
            self.settings.tick_interval_ms / 1000,
        )
        self.publisher.emit(SessionStartedEvent(session_id=session_id, sim_time_ms=session.sim_clock_ms))
        logger.info(f"Started session {session_id} at {session.sim_clock_ms}ms")
        return session

    def pause_simulation(self, session_id: str) -> Optional[Session]:
        self.scheduler.cancel(session_id)
        session = self.repository.get_session(session_id)
        if session is None:
            return None
        if session.status != SessionStatus.RUNNING:
            return session

        session = self.repository.update_session(session_id, status=SessionStatus.PAUSED)
        self.publisher.emit(SessionPausedEvent(session_id=session_id, sim_time_ms=session.sim_clock_ms))
        logger.info(f"Paused session {session_id} at {session.sim_clock_ms}ms")
        return session

    def resume_simulation(self, session_id: str) -> Optional[Session]:
        return self.start_simulation(session_id)

    def end_simulation(self, session_id: str) -> Optional[DebriefData]:
        """
        Stop ticking, mark the session ended and compute the debrief.

        Idempotent: later calls return a fresh debrief without touching the
        session again. Returns None when the session or its config is missing.
        """
        self.scheduler.cancel(session_id)

        session = self.repository.get_session(session_id)
        if session is None:
            return None

        just_ended = session.status != SessionStatus.ENDED
        if just_ended:
            session = self.repository.update_session(
                session_id, status=SessionStatus.ENDED, ended_at=datetime.now()
            )
            logger.info(f"Ended session {session_id} at {session.sim_clock_ms}ms")

        debrief = self.build_debrief(session_id)
        if debrief is not None and just_ended:
            self.publisher.emit(SessionEndedEvent(
                session_id=session_id,
                sim_time_ms=session.sim_clock_ms,
                debrief=debrief,
            ))
        return debrief

    def build_debrief(self, session_id: str) -> Optional[DebriefData]:
        session = self.repository.get_session(session_id)
        if session is None:
            return None
        config = self._get_config(session)
        if config is None:
            return None

        users = self.repository.get_users_by_session(session_id)
        patients = self.repository.get_patients_by_session(session_id)
        events = self.repository.get_events_by_session(session_id)
        scores, team_score = score_session(users, patients, events, config)

        return DebriefData(
            session=session,
            scores=scores,
            events=events,
            patients=patients,
            team_score=team_score,
        )

    def _get_config(self, session: Session) -> Optional[ClinicalRulesConfig]:
        config_version = self.repository.get_config(session.config_id)
        if config_version is None:
            logger.warning(f"Clinical config {session.config_id} missing for session {session.id}")
            return None
        return config_version.config

    # ========================
    # Tick
    # ========================

    def tick(self, session_id: str) -> bool:
        """
        Advance one session by one tick.

        Returns:
            True if the tick ran and was committed
        """
        session = self.repository.get_session(session_id)
        if session is None or session.status != SessionStatus.RUNNING:
            return False

        config = self._get_config(session)
        resources = self.repository.get_resources(session_id)
        if config is None or resources is None:
            return False

        previous_ms = session.sim_clock_ms
        step_ms = round_int(self.settings.tick_interval_ms * session.speed_factor)
        now_ms = previous_ms + step_ms

        ctx = _TickContext(session, now_ms, resources)
        ctx.emit(ClockTickEvent(session_id=session_id, sim_time_ms=now_ms))

        for patient in self.repository.get_patients_by_session(session_id):
            self._tick_patient(ctx, patient, config)

        scenario = self.repository.get_scenario(session.scenario_id)
        if scenario is not None:
            for timed_event in scenario.timed_events:
                if previous_ms < timed_event.trigger_at_ms <= now_ms:
                    self._handle_timed_event(ctx, timed_event)

        self._commit(ctx)

        if scenario is not None and now_ms >= scenario.duration_ms:
            logger.info(f"Session {session_id} reached scenario duration")
            self.end_simulation(session_id)

        return True

    def _tick_patient(self, ctx: _TickContext, patient: Patient, config: ClinicalRulesConfig) -> None:
        session_id = ctx.session.id
        now_ms = ctx.sim_clock_ms

        if not patient.has_arrived and now_ms >= patient.arrival_delay_ms:
            patient = patient.model_copy(update={"has_arrived": True, "stage_entered_at_ms": now_ms})
            ctx.emit(PatientArrivedEvent(session_id=session_id, sim_time_ms=now_ms, patient=patient))
            ctx.log(_make_entry(
                session_id, now_ms, EventLogType.SYSTEM, "arrival",
                {"message": f"{patient.name} has arrived on Delivery Suite."},
                patient_id=patient.id,
            ))
            ctx.patients[patient.id] = patient

        if not patient.has_arrived:
            return

        deterioration = tick_deterioration(patient, now_ms, config, self.rng)
        batch = action_processor.process_completed_actions(deterioration.patient, now_ms, config, self.rng)
        updated = batch.patient
        ctx.patients[updated.id] = updated

        if deterioration.vitals_changed:
            ctx.emit(VitalsUpdatedEvent(
                session_id=session_id,
                sim_time_ms=now_ms,
                patient_id=updated.id,
                vitals=updated.current_vitals,
                status=updated.status,
                fetal_status=updated.fetal_status,
                ctg_summary=updated.ctg_summary,
            ))

        if deterioration.status_changed:
            old, new = deterioration.old_status, deterioration.new_status
            ctx.emit(StatusChangedEvent(
                session_id=session_id,
                sim_time_ms=now_ms,
                patient_id=updated.id,
                old_status=old,
                new_status=new,
            ))
            ctx.log(_make_entry(
                session_id, now_ms, EventLogType.DETERIORATION, "status_change",
                {
                    "message": f"{updated.name}: {old.value} -> {new.value}",
                    "old_status": old.value,
                    "new_status": new.value,
                },
                patient_id=updated.id,
            ))
            ctx.emit(AlertFiredEvent(
                session_id=session_id,
                sim_time_ms=now_ms,
                patient_id=updated.id,
                message=f"{updated.name} is now {new.value}",
                severity=STATUS_ALERT_SEVERITY.get(new, AlertSeverity.LOW),
            ))

        for completed in batch.completed:
            detail = {"action_key": completed.action_key, **completed.result.to_detail()}
            ctx.emit(ActionResultEvent(
                session_id=session_id,
                sim_time_ms=now_ms,
                patient_id=updated.id,
                action_key=completed.action_key,
                result=detail,
            ))
            ctx.log(_make_entry(
                session_id, now_ms, EventLogType.RESULT, "action_result", detail,
                patient_id=updated.id, user_id=completed.user_id,
            ))

    def _handle_timed_event(self, ctx: _TickContext, timed_event: ScenarioTimedEvent) -> None:
        session_id = ctx.session.id
        now_ms = ctx.sim_clock_ms
        payload = timed_event.payload
        message = payload.get("message")

        if timed_event.type == TimedEventType.RESOURCE_CHANGE.value:
            resource = payload.get("resource")
            available = bool(payload.get("available", False))
            field = RESOURCE_FIELDS.get(resource)
            if field is None:
                logger.warning(f"Timed event for unknown resource '{resource}' skipped")
                return
            ctx.resources = ctx.resources.model_copy(update={field: available})
            ctx.emit(ResourceChangedEvent(
                session_id=session_id, sim_time_ms=now_ms, resource=resource, available=available
            ))
            ctx.log(_make_entry(
                session_id, now_ms, EventLogType.INJECTION, "resource_change",
                {"resource": resource, "available": available, "message": message},
            ))
            if message:
                ctx.emit(AlertFiredEvent(session_id=session_id, sim_time_ms=now_ms, message=message))

        elif timed_event.type == TimedEventType.STAFF_CHANGE.value:
            available = bool(payload.get("available", False))
            ctx.resources = ctx.resources.model_copy(update={"staff_available": available})
            ctx.emit(ResourceChangedEvent(
                session_id=session_id, sim_time_ms=now_ms, resource="staff", available=available
            ))
            ctx.log(_make_entry(session_id, now_ms, EventLogType.INJECTION, "staff_change", dict(payload)))

        elif timed_event.type == TimedEventType.LAB_DELAY.value:
            multiplier = float(payload.get("multiplier", 1.0))
            ctx.resources = ctx.resources.model_copy(update={"lab_delay_multiplier": multiplier})
            ctx.emit(ResourceChangedEvent(
                session_id=session_id,
                sim_time_ms=now_ms,
                resource="labs",
                available=ctx.resources.labs_available,
                lab_delay_multiplier=multiplier,
            ))
            ctx.log(_make_entry(
                session_id, now_ms, EventLogType.INJECTION, "lab_delay",
                {"multiplier": multiplier, "message": message},
            ))
            if message:
                ctx.emit(AlertFiredEvent(session_id=session_id, sim_time_ms=now_ms, message=message))

        elif timed_event.type == TimedEventType.MESSAGE.value:
            ctx.log(_make_entry(
                session_id, now_ms, EventLogType.INJECTION, "message", {"message": message}
            ))
            if message:
                ctx.emit(AlertFiredEvent(session_id=session_id, sim_time_ms=now_ms, message=message))

        else:
            logger.warning(f"Unknown timed event type '{timed_event.type}' skipped")

    def _commit(self, ctx: _TickContext) -> None:
        session_id = ctx.session.id
        self.repository.update_session(session_id, sim_clock_ms=ctx.sim_clock_ms)
        for patient in ctx.patients.values():
            self.repository.save_patient(patient)
        self.repository.set_resources(session_id, ctx.resources)
        for entry in ctx.log_entries:
            self.repository.append_event(entry)

        for event in ctx.events:
            self.publisher.emit(event)

        logger.debug(
            f"Tick {session_id} @ {ctx.sim_clock_ms}ms: {len(ctx.patients)} patients, "
            f"{len(ctx.log_entries)} log entries"
        )

    # ========================
    # Participant actions
    # ========================

    def _resolve_patient(self, session_id: str, patient_id: str) -> Optional[Patient]:
        patient = self.repository.get_patient(patient_id)
        if patient is None or patient.session_id != session_id:
            logger.warning(f"Patient {patient_id} not found in session {session_id}")
            return None
        return patient

    def can_perform_action(
        self,
        session_id: str,
        patient_id: str,
        action_key: str
    ) -> Optional[EligibilityResult]:
        session = self.repository.get_session(session_id)
        patient = self._resolve_patient(session_id, patient_id)
        if session is None or patient is None:
            return None
        config = self._get_config(session)
        resources = self.repository.get_resources(session_id)
        if config is None or resources is None:
            return None
        return action_processor.can_perform_action(patient, action_key, config, resources)

    def submit_action(
        self,
        session_id: str,
        patient_id: str,
        user_id: str,
        action_key: str,
        prescription: Optional[Prescription] = None
    ) -> Optional[SubmissionResult]:
        """
        Submit a participant action at the current simulated time.

        Returns:
            SubmissionResult (with `error` set on rejection), or None when
            the session, patient, user or config cannot be found
        """
        session = self.repository.get_session(session_id)
        patient = self._resolve_patient(session_id, patient_id)
        user = self.repository.get_user(user_id)
        if session is None or patient is None or user is None or user.session_id != session_id:
            return None

        if session.status != SessionStatus.RUNNING:
            return SubmissionResult(error="Simulation is not running.")
        if not patient.has_arrived:
            return SubmissionResult(error="Patient has not arrived yet.")

        config = self._get_config(session)
        resources = self.repository.get_resources(session_id)
        if config is None or resources is None:
            return None

        result = action_processor.submit_action(
            patient, action_key, user_id, session.sim_clock_ms, config, resources, prescription
        )
        if not result.ok:
            logger.debug(f"Rejected {action_key} for patient {patient_id}: {result.error}")
            return result

        self.repository.save_patient(result.patient)

        action_def = config.get_action(action_key)
        entry = self.repository.append_event(_make_entry(
            session_id, session.sim_clock_ms, EventLogType.ACTION, action_def.category.value,
            {
                "action_key": action_key,
                "label": action_def.label,
                "message": f"{user.name} ordered: {action_def.label}",
            },
            patient_id=patient_id, user_id=user_id, user_name=user.name,
        ))

        self.publisher.emit(ActionPendingEvent(
            session_id=session_id,
            sim_time_ms=session.sim_clock_ms,
            patient_id=patient_id,
            action_key=action_key,
            delay_ms=result.delay_ms,
        ))
        self.publisher.emit(EventLoggedEvent(
            session_id=session_id, sim_time_ms=session.sim_clock_ms, entry=entry
        ))
        return result

    # ========================
    # Facilitator commands
    # ========================

    def apply_intervention(
        self,
        session_id: str,
        patient_id: str,
        intervention_type: InterventionType,
        slow_factor: Optional[float] = None
    ) -> Optional[Patient]:
        """Apply an intervention effect directly, at the current simulated time."""
        session = self.repository.get_session(session_id)
        patient = self._resolve_patient(session_id, patient_id)
        if session is None or patient is None:
            return None

        updated = self.repository.save_patient(
            apply_intervention(patient, intervention_type, session.sim_clock_ms, slow_factor)
        )
        entry = self.repository.append_event(_make_entry(
            session_id, session.sim_clock_ms, EventLogType.INJECTION, "intervention",
            {"intervention": intervention_type.value, "slow_factor": slow_factor},
            patient_id=patient_id,
        ))
        self.publisher.emit(EventLoggedEvent(
            session_id=session_id, sim_time_ms=session.sim_clock_ms, entry=entry
        ))
        return updated

    def toggle_resource(self, session_id: str, resource: str, available: bool) -> Optional[ResourceState]:
        session = self.repository.get_session(session_id)
        field = RESOURCE_FIELDS.get(resource)
        if session is None or field is None:
            logger.warning(f"Cannot toggle resource '{resource}' for session {session_id}")
            return None

        state = self.repository.update_resources(session_id, **{field: available})
        if state is None:
            return None

        self.publisher.emit(ResourceChangedEvent(
            session_id=session_id, sim_time_ms=session.sim_clock_ms, resource=resource, available=available
        ))
        entry = self.repository.append_event(_make_entry(
            session_id, session.sim_clock_ms, EventLogType.INJECTION, "resource_change",
            {
                "resource": resource,
                "available": available,
                "message": f"Facilitator {'enabled' if available else 'disabled'} {resource}",
            },
        ))
        self.publisher.emit(EventLoggedEvent(
            session_id=session_id, sim_time_ms=session.sim_clock_ms, entry=entry
        ))
        return state

    def inject_event(self, session_id: str, event: Dict[str, Any]) -> Optional[EventLogEntry]:
        """Log a facilitator injection; a message also fires an info alert."""
        session = self.repository.get_session(session_id)
        if session is None:
            return None

        entry = self.repository.append_event(_make_entry(
            session_id, session.sim_clock_ms, EventLogType.INJECTION,
            event.get("type") or "message", dict(event),
        ))
        self.publisher.emit(EventLoggedEvent(
            session_id=session_id, sim_time_ms=session.sim_clock_ms, entry=entry
        ))

        message = event.get("message")
        if message:
            self.publisher.emit(AlertFiredEvent(
                session_id=session_id, sim_time_ms=session.sim_clock_ms, message=str(message)
            ))
        return entry

    def get_session_state(self, session_id: str) -> Optional[SessionState]:
        session = self.repository.get_session(session_id)
        if session is None:
            return None
        scenario = self.repository.get_scenario(session.scenario_id)
        if scenario is None:
            logger.warning(f"Scenario {session.scenario_id} missing for session {session_id}")
            return None

        config_version = self.repository.get_config(session.config_id)
        return SessionState(
            session=session,
            users=self.repository.get_users_by_session(session_id),
            patients=self.repository.get_patients_by_session(session_id),
            events=self.repository.get_events_by_session(session_id),
            resources=self.repository.get_resources(session_id) or ResourceState(),
            scenario=scenario,
            action_definitions=list(config_version.config.actions) if config_version else [],
        )

    def shutdown(self) -> None:
        self.scheduler.cancel_all()
        logger.info("Simulation Engine stopped")


# Singleton instance
_simulation_engine: Optional[SimulationEngine] = None


def get_simulation_engine() -> SimulationEngine:
    """Get the singleton simulation engine wired to the shared state and bus."""
    global _simulation_engine
    if _simulation_engine is None:
        _simulation_engine = SimulationEngine(
            repository=get_state_manager(),
            publisher=get_event_bus(),
            scheduler=AsyncioTickScheduler(),
        )
    return _simulation_engine
