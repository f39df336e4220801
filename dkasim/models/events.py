"""
Outbound simulation events published to the real-time transport.

Each kind of occurrence has its own typed event class; the set of kinds is
closed by SimEventType.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field

from dkasim.models.clinical_config import FetalStatus, VitalsSnapshot
from dkasim.models.patient import Patient, PatientStatus
from dkasim.models.session import DebriefData, EventLogEntry


class SimEventType(str, Enum):
    """Types of events emitted by the simulation engine."""
    # Clock
    CLOCK_TICK = "clock:tick"

    # Patient events
    PATIENT_ARRIVED = "patient:arrived"
    PATIENT_VITALS_UPDATED = "patient:vitalsUpdate"
    PATIENT_STATUS_CHANGED = "patient:statusChange"

    # Actions
    ACTION_PENDING = "action:pending"
    ACTION_RESULT = "action:result"

    # Log and environment
    EVENT_LOGGED = "event:logged"
    RESOURCE_CHANGED = "resource:changed"
    ALERT_FIRED = "alert:fire"

    # Session lifecycle
    SESSION_STARTED = "session:started"
    SESSION_PAUSED = "session:paused"
    SESSION_ENDED = "session:ended"


class AlertSeverity(str, Enum):
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SimEvent(BaseModel):
    """Base class for every outbound event."""
    id: str = Field(default_factory=lambda: create_event_id())
    event_type: SimEventType
    session_id: str
    sim_time_ms: int = 0
    timestamp: datetime = Field(default_factory=datetime.now)

    def payload(self) -> Dict[str, Any]:
        """Kind-specific fields only."""
        return self.model_dump(
            mode="json",
            exclude={"id", "event_type", "session_id", "sim_time_ms", "timestamp"},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "type": self.event_type.value,
            "session_id": self.session_id,
            "sim_time_ms": self.sim_time_ms,
            "timestamp": self.timestamp.isoformat(),
            "data": self.payload(),
        }


class ClockTickEvent(SimEvent):
    event_type: SimEventType = SimEventType.CLOCK_TICK


class PatientArrivedEvent(SimEvent):
    event_type: SimEventType = SimEventType.PATIENT_ARRIVED
    patient: Patient


class VitalsUpdatedEvent(SimEvent):
    event_type: SimEventType = SimEventType.PATIENT_VITALS_UPDATED
    patient_id: str
    vitals: VitalsSnapshot
    status: PatientStatus
    fetal_status: FetalStatus
    ctg_summary: str = ""


class StatusChangedEvent(SimEvent):
    event_type: SimEventType = SimEventType.PATIENT_STATUS_CHANGED
    patient_id: str
    old_status: PatientStatus
    new_status: PatientStatus


class ActionPendingEvent(SimEvent):
    event_type: SimEventType = SimEventType.ACTION_PENDING
    patient_id: str
    action_key: str
    delay_ms: int


class ActionResultEvent(SimEvent):
    event_type: SimEventType = SimEventType.ACTION_RESULT
    patient_id: str
    action_key: str
    result: Dict[str, Any] = Field(default_factory=dict)


class EventLoggedEvent(SimEvent):
    event_type: SimEventType = SimEventType.EVENT_LOGGED
    entry: EventLogEntry


class ResourceChangedEvent(SimEvent):
    event_type: SimEventType = SimEventType.RESOURCE_CHANGED
    resource: str
    available: bool
    lab_delay_multiplier: Optional[float] = None


class AlertFiredEvent(SimEvent):
    event_type: SimEventType = SimEventType.ALERT_FIRED
    patient_id: Optional[str] = None
    message: str
    severity: AlertSeverity = AlertSeverity.INFO


class SessionStartedEvent(SimEvent):
    event_type: SimEventType = SimEventType.SESSION_STARTED


class SessionPausedEvent(SimEvent):
    event_type: SimEventType = SimEventType.SESSION_PAUSED


class SessionEndedEvent(SimEvent):
    event_type: SimEventType = SimEventType.SESSION_ENDED
    debrief: DebriefData

    def payload(self) -> Dict[str, Any]:
        return {"debrief": self.debrief.to_public()}


def create_event_id() -> str:
    """Generate a unique event ID."""
    return f"evt_{uuid.uuid4().hex[:12]}"
