"""
Patient models for the DKA training simulator.

Demographic and narrative fields are fixed at creation; everything under
"Simulation state" is advanced by the engine on every tick.
"""

from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field

from dkasim.models.clinical_config import FetalStatus, VitalsSnapshot
from dkasim.models.prescription import Prescription, PrescriptionFeedback


class PatientStatus(str, Enum):
    """Clinical status derived from the current deterioration stage."""
    STABLE = "stable"
    CONCERNING = "concerning"
    CRITICAL = "critical"
    COLLAPSED = "collapsed"
    RESOLVED = "resolved"


class InterventionType(str, Enum):
    HALT = "halt"        # freeze progression entirely
    SLOW = "slow"        # multiply remaining stage duration
    REVERSE = "reverse"  # step back one stage immediately


class InterventionEffect(BaseModel):
    """A lasting modifier on stage progression. Never expires."""
    type: InterventionType
    applied_at_ms: int
    slow_factor: Optional[float] = Field(None, gt=0)


class PendingAction(BaseModel):
    """A submitted action awaiting its completion delay."""
    action_key: str
    submitted_at_ms: int
    completes_at_ms: int
    user_id: str
    prescription: Optional[Prescription] = None
    prescription_feedback: Optional[PrescriptionFeedback] = None
    intervention_scale: float = Field(1.0, ge=0.0, le=1.0)


class Patient(BaseModel):
    """Core patient model representing one simulated patient in a session."""
    id: str = Field(..., description="Unique patient identifier")
    session_id: str
    scenario_patient_key: str = Field(..., description="Variant key, e.g. pvb_patient")
    name: str
    age: int = Field(..., ge=0, le=120)
    height: int = 165
    weight: float = Field(70.0, gt=0)
    gestation: str = ""
    parity: str = ""
    presenting_complaint: str = ""
    history: str = ""
    pmh: str = ""
    allergies: str = "NKDA"
    is_dka: bool = False
    deterioration_type: str

    # Simulation state
    status: PatientStatus = PatientStatus.STABLE
    current_vitals: VitalsSnapshot
    ctg_summary: str = ""
    fetal_status: FetalStatus = FetalStatus.REASSURING
    last_known_potassium: Optional[float] = None
    recognised_at_ms: Optional[int] = None
    current_stage_index: int = Field(0, ge=0)
    stage_entered_at_ms: int = 0
    available_actions: List[str] = Field(default_factory=list)
    completed_actions: List[str] = Field(default_factory=list)
    pending_actions: List[PendingAction] = Field(default_factory=list)
    intervention_effects: List[InterventionEffect] = Field(default_factory=list)
    arrival_delay_ms: int = 0
    has_arrived: bool = False

    @property
    def is_halted(self) -> bool:
        """True once any halt effect has been applied."""
        return any(e.type == InterventionType.HALT for e in self.intervention_effects)

    @property
    def slow_multiplier(self) -> float:
        """Product of every slow factor applied so far."""
        multiplier = 1.0
        for effect in self.intervention_effects:
            if effect.type == InterventionType.SLOW and effect.slow_factor:
                multiplier *= effect.slow_factor
        return multiplier

    def is_pending(self, action_key: str) -> bool:
        return any(pa.action_key == action_key for pa in self.pending_actions)


class ResourceState(BaseModel):
    """Per-session availability of shared resources."""
    ketometer_available: bool = True
    labs_available: bool = True
    staff_available: bool = True
    lab_delay_multiplier: float = Field(1.0, gt=0)
