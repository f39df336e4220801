"""
Session, participant, event log and debrief models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field

from dkasim.models.clinical_config import ActionDefinition
from dkasim.models.patient import Patient, ResourceState
from dkasim.models.scenario import ScenarioDefinition


class SessionStatus(str, Enum):
    LOBBY = "lobby"
    RUNNING = "running"
    PAUSED = "paused"
    ENDED = "ended"


class UserRole(str, Enum):
    FACILITATOR = "facilitator"
    PARTICIPANT = "participant"


class Session(BaseModel):
    """One run of a scenario. Owns its patients, resources and event log."""
    id: str
    code: str
    scenario_id: str
    config_id: str
    status: SessionStatus = SessionStatus.LOBBY
    sim_clock_ms: int = 0
    speed_factor: float = Field(1.0, gt=0)
    facilitator_pin: str = ""
    created_at: datetime = Field(default_factory=datetime.now)
    ended_at: Optional[datetime] = None

    def to_public(self) -> Dict[str, Any]:
        """Session fields safe to expose to participants (no PIN)."""
        return self.model_dump(mode="json", exclude={"facilitator_pin"})


class User(BaseModel):
    id: str
    session_id: str
    name: str
    role: UserRole = UserRole.PARTICIPANT
    assigned_patient_id: Optional[str] = None
    joined_at: datetime = Field(default_factory=datetime.now)


class EventLogType(str, Enum):
    ACTION = "action"
    RESULT = "result"
    DETERIORATION = "deterioration"
    INJECTION = "injection"
    SYSTEM = "system"


class EventLogEntry(BaseModel):
    """Append-only audit record. Ordering is insertion order."""
    model_config = ConfigDict(frozen=True)

    id: str
    session_id: str
    patient_id: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    sim_time_ms: int
    type: EventLogType
    category: Optional[str] = None
    detail: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)


class ScoredAction(BaseModel):
    action_key: str
    label: str
    sim_time_ms: int
    was_appropriate: bool
    points: int


class ParticipantScore(BaseModel):
    """Per-participant debrief score. Recomputed at session end only."""
    user_id: str
    user_name: str
    patient_id: str
    patient_name: str
    patient_outcome: int
    time_to_recognition: int
    time_to_escalation: int
    time_to_treatment: int
    appropriate_actions: int
    total: int
    actions: List[ScoredAction] = Field(default_factory=list)


class DebriefData(BaseModel):
    session: Session
    scores: List[ParticipantScore] = Field(default_factory=list)
    events: List[EventLogEntry] = Field(default_factory=list)
    patients: List[Patient] = Field(default_factory=list)
    team_score: int = 0

    def to_public(self) -> Dict[str, Any]:
        """Debrief with the session stripped of its PIN."""
        data = self.model_dump(mode="json")
        data["session"] = self.session.to_public()
        return data


class SessionState(BaseModel):
    """Full snapshot sent to a client when it joins or reconnects."""
    session: Session
    users: List[User] = Field(default_factory=list)
    patients: List[Patient] = Field(default_factory=list)
    events: List[EventLogEntry] = Field(default_factory=list)
    resources: ResourceState
    scenario: ScenarioDefinition
    action_definitions: List[ActionDefinition] = Field(default_factory=list)

    def to_public(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["session"] = self.session.to_public()
        return data
