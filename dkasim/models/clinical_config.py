"""
Clinical rules configuration models for the DKA training simulator.

A ClinicalRulesConfig is loaded once per session from versioned JSON and is
treated as immutable for the lifetime of that session.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


class ActionCategory(str, Enum):
    """Grouping of participant actions."""
    INVESTIGATION = "investigation"
    ESCALATION = "escalation"
    TREATMENT = "treatment"
    MONITORING = "monitoring"


class PrescriptionType(str, Enum):
    """Quantitative order types graded by the prescription validator."""
    IV_FLUIDS = "iv_fluids"
    INSULIN = "insulin"
    POTASSIUM = "potassium"


class FetalStatus(str, Enum):
    """CTG-derived fetal wellbeing classification."""
    REASSURING = "reassuring"
    NON_REASSURING = "non_reassuring"
    PATHOLOGICAL = "pathological"
    IUD = "iud"  # intrauterine death


class VitalsSnapshot(BaseModel):
    """Point-in-time vitals. Lab fields stay None until revealed by an investigation."""
    hr: int = Field(..., ge=0, le=300, description="BPM")
    bp_systolic: int = Field(..., ge=0, le=300, description="mmHg")
    bp_diastolic: int = Field(..., ge=0, le=200, description="mmHg")
    rr: int = Field(..., ge=0, le=80, description="Breaths/min")
    spo2: float = Field(..., ge=0, le=100, description="Oxygen saturation %")
    temp: float = Field(..., ge=25, le=45, description="Celsius")
    gcs: int = Field(..., ge=3, le=15)
    glucose: Optional[float] = Field(None, description="mmol/L")
    ketones: Optional[float] = Field(None, description="mmol/L")
    ph: Optional[float] = None
    bicarb: Optional[float] = Field(None, description="mmol/L")

    @property
    def blood_pressure(self) -> str:
        """Return formatted blood pressure string."""
        return f"{self.bp_systolic}/{self.bp_diastolic}"


class ActionDefinition(BaseModel):
    """One entry of the action catalog."""
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    description: str = ""
    category: ActionCategory
    delay_ms: int = Field(..., ge=0)
    prerequisites: List[str] = Field(default_factory=list)
    requires_prescription: bool = False
    prescription_type: Optional[PrescriptionType] = None


class DeteriorationStage(BaseModel):
    """A segment of a deterioration curve with its target vitals."""
    model_config = ConfigDict(frozen=True)

    name: str
    duration_ms: int = Field(..., gt=0)
    vitals: VitalsSnapshot
    ctg_summary: str = ""
    fetal_status: FetalStatus = FetalStatus.REASSURING


class DeteriorationCurve(BaseModel):
    model_config = ConfigDict(frozen=True)

    stages: List[DeteriorationStage]


class DKATriggers(BaseModel):
    model_config = ConfigDict(frozen=True)

    glucose_threshold: float = 11.0
    ketone_threshold: float = 3.0
    ph_threshold: float = 7.3
    bicarb_threshold: float = 15.0


class EscalationRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    news_score_threshold: int = 5
    auto_escalate_at: str = "critical"


class FluidProtocol(BaseModel):
    model_config = ConfigDict(frozen=True)

    first_bag_volume: int = 1000
    first_bag_duration_minutes: int = 60
    sbp_shocked_threshold: int = 90
    subsequent_rate: int = 250


class InsulinProtocol(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_after_fluids: bool = True
    rate_units_per_kg_per_hr: float = 0.1
    max_rate_ml_per_hr: float = 15.0


class PotassiumProtocol(BaseModel):
    model_config = ConfigDict(frozen=True)

    check_before_insulin: bool = True
    low_threshold: float = 3.5
    high_threshold: float = 5.5


class TreatmentProtocol(BaseModel):
    model_config = ConfigDict(frozen=True)

    fluid_protocol: FluidProtocol = Field(default_factory=FluidProtocol)
    insulin_protocol: InsulinProtocol = Field(default_factory=InsulinProtocol)
    potassium_protocol: PotassiumProtocol = Field(default_factory=PotassiumProtocol)


class ScoringWeights(BaseModel):
    """Target times and maximum points per scoring dimension."""
    model_config = ConfigDict(frozen=True)

    recognition_target_ms: int = 300000
    escalation_target_ms: int = 480000
    treatment_target_ms: int = 600000
    recognition_max_score: int = 20
    escalation_max_score: int = 15
    treatment_max_score: int = 15
    outcome_max_score: int = 40
    actions_max_score: int = 10


class ResourceDefaults(BaseModel):
    model_config = ConfigDict(frozen=True)

    ketometer_available: bool = True
    ketometer_unavailable_probability: float = Field(0.0, ge=0, le=1)
    lab_delay_ms: int = 180000
    staff_busy_probability: float = Field(0.0, ge=0, le=1)


class ClinicalRulesConfig(BaseModel):
    """Versioned clinical protocol definition. Immutable once loaded."""
    model_config = ConfigDict(frozen=True)

    version: int = Field(..., ge=1)
    dka_triggers: DKATriggers = Field(default_factory=DKATriggers)
    actions: List[ActionDefinition] = Field(default_factory=list)
    escalation: EscalationRules = Field(default_factory=EscalationRules)
    treatment: TreatmentProtocol = Field(default_factory=TreatmentProtocol)
    deterioration_curves: Dict[str, DeteriorationCurve] = Field(default_factory=dict)
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)
    resources: ResourceDefaults = Field(default_factory=ResourceDefaults)

    @model_validator(mode="after")
    def _check_integrity(self) -> "ClinicalRulesConfig":
        for name, curve in self.deterioration_curves.items():
            if not curve.stages:
                raise ValueError(f"Deterioration curve '{name}' has no stages")

        known = {a.key for a in self.actions}
        if len(known) != len(self.actions):
            raise ValueError("Duplicate action keys in catalog")
        for action in self.actions:
            for prereq in action.prerequisites:
                if prereq not in known:
                    raise ValueError(
                        f"Action '{action.key}' requires unknown action '{prereq}'"
                    )
            if action.requires_prescription and action.prescription_type is None:
                raise ValueError(f"Action '{action.key}' requires a prescription type")
        return self

    def get_action(self, key: str) -> Optional[ActionDefinition]:
        """Look up an action definition by key."""
        return next((a for a in self.actions if a.key == key), None)

    def get_stages(self, deterioration_type: str) -> List[DeteriorationStage]:
        """Return the ordered stage list for a curve, or an empty list."""
        curve = self.deterioration_curves.get(deterioration_type)
        return list(curve.stages) if curve else []


class ConfigVersion(BaseModel):
    """A stored, labelled version of the clinical rules."""
    id: str
    version: int
    label: str
    config: ClinicalRulesConfig
    created_at: datetime = Field(default_factory=datetime.now)
    created_by: str = "system"
