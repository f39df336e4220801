"""
Scenario definition models. Scenarios are authored as JSON and loaded at startup.
"""

from enum import Enum
from typing import Any, Dict, List
from pydantic import BaseModel, ConfigDict, Field

from dkasim.models.clinical_config import VitalsSnapshot


class TimedEventType(str, Enum):
    RESOURCE_CHANGE = "resource_change"
    STAFF_CHANGE = "staff_change"
    LAB_DELAY = "lab_delay"
    MESSAGE = "message"


class ScenarioPatientDef(BaseModel):
    """Blueprint for one simulated patient."""
    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Patient variant key, e.g. dka_patient")
    name: str
    age: int = Field(..., ge=0, le=120)
    height: int = Field(165, description="cm")
    weight: float = Field(70.0, gt=0, description="kg")
    gestation: str = ""
    parity: str = ""
    presenting_complaint: str = ""
    history: str = ""
    pmh: str = ""
    allergies: str = "NKDA"
    initial_vitals: VitalsSnapshot
    initial_ctg: str = ""
    deterioration_type: str
    is_dka: bool = False
    available_actions: List[str] = Field(default_factory=list)
    arrival_delay_ms: int = Field(0, ge=0)


class ScenarioTimedEvent(BaseModel):
    """A scripted event fired once when the simulated clock crosses trigger_at_ms."""
    model_config = ConfigDict(frozen=True)

    trigger_at_ms: int = Field(..., ge=0)
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class ScenarioDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    briefing: str = ""
    duration_minutes: int = Field(..., gt=0)
    patients: List[ScenarioPatientDef] = Field(default_factory=list)
    timed_events: List[ScenarioTimedEvent] = Field(default_factory=list)

    @property
    def duration_ms(self) -> int:
        return self.duration_minutes * 60 * 1000

    def to_summary(self) -> Dict[str, Any]:
        """Return a summary dict for scenario pickers."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "duration_minutes": self.duration_minutes,
            "patient_count": len(self.patients),
        }
