"""
Action processor.

Owns the lifecycle of participant actions: eligibility, submission into the
pending list, and completion into structured results once the simulated
clock reaches each action's completion time. Treatment and escalation
results feed intervention effects back into the deterioration engine.

Functions are pure over (patient, config, clock, rng) and return new
patient snapshots; the simulation engine commits them.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from dkasim.core.random_source import RandomSource
from dkasim.models.clinical_config import (
    ActionCategory,
    ActionDefinition,
    ClinicalRulesConfig,
    DeteriorationStage,
    FetalStatus,
)
from dkasim.models.patient import InterventionType, Patient, PendingAction, ResourceState
from dkasim.models.prescription import Prescription, PrescriptionFeedback
from dkasim.engine.deterioration import apply_intervention
from dkasim.engine.prescription_validator import validate_prescription
from dkasim.engine.utils import round_half_up, round_int

logger = logging.getLogger(__name__)

# Recognition-critical bedside tests; never slowed by lab delays
UNSCALED_INVESTIGATIONS = frozenset({"check_glucose", "check_ketones"})

LAB_DEPENDENT_ACTIONS = frozenset({
    "fbc",
    "group_and_save",
    "crossmatch",
    "check_potassium",
    "check_lactate",
})

PVB_VARIANT = "pvb_patient"

REGISTRAR_SLOW_FACTOR = 1.5
CONSULTANT_SLOW_FACTOR = 2.0
IV_FLUIDS_SLOW_FACTOR = 3.0
INSULIN_HALT_MIN_SCALE = 0.5
INSULIN_DEGRADED_SLOW_RANGE = 2.0

POTASSIUM_NORMAL_RANGE = (3.5, 5.5)
LACTATE_UPPER_NORMAL = 2.0


class EligibilityResult(BaseModel):
    allowed: bool
    reason: Optional[str] = None


class SubmissionResult(BaseModel):
    """Outcome of submit_action. On rejection only `error` is set."""
    patient: Optional[Patient] = None
    pending: Optional[PendingAction] = None
    delay_ms: Optional[int] = None
    prescription_feedback: Optional[PrescriptionFeedback] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ActionResult(BaseModel):
    """Structured result shown to the participant and written to the log."""
    label: str
    value: str
    normal: bool = True
    flag: Optional[str] = None
    is_recognition_event: Optional[bool] = None
    is_escalation_event: Optional[bool] = None
    is_treatment_event: Optional[bool] = None
    prescription_feedback: Optional[PrescriptionFeedback] = None

    def to_detail(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class CompletedAction(BaseModel):
    action_key: str
    user_id: str
    result: ActionResult


class CompletionBatch(BaseModel):
    """Everything that completed for one patient in one tick."""
    patient: Patient
    completed: List[CompletedAction] = Field(default_factory=list)


# ========================
# Eligibility and submission
# ========================

def get_action_def(config: ClinicalRulesConfig, action_key: str) -> Optional[ActionDefinition]:
    """Get an action definition from the config."""
    return config.get_action(action_key)


def can_perform_action(
    patient: Patient,
    action_key: str,
    config: ClinicalRulesConfig,
    resources: ResourceState
) -> EligibilityResult:
    """
    Decide whether an action may be submitted. First failing check wins.
    No side effects.
    """
    action_def = get_action_def(config, action_key)
    if action_def is None:
        return EligibilityResult(allowed=False, reason="Unknown action.")

    if action_key in patient.completed_actions:
        return EligibilityResult(allowed=False, reason="Already completed.")

    if patient.is_pending(action_key):
        return EligibilityResult(allowed=False, reason="Already in progress.")

    for prereq in action_def.prerequisites:
        if prereq not in patient.completed_actions:
            prereq_def = get_action_def(config, prereq)
            label = prereq_def.label if prereq_def else prereq
            return EligibilityResult(allowed=False, reason=f"Requires {label} first.")

    if action_key not in patient.available_actions:
        return EligibilityResult(allowed=False, reason="Not available for this patient.")

    if action_key == "check_ketones" and not resources.ketometer_available:
        return EligibilityResult(allowed=False, reason="Ketone meter not available on the unit.")

    if action_key in LAB_DEPENDENT_ACTIONS and not resources.labs_available:
        return EligibilityResult(allowed=False, reason="Lab services currently delayed.")

    return EligibilityResult(allowed=True)


def compute_action_delay(action_def: ActionDefinition, resources: ResourceState) -> int:
    """Base delay, scaled by the lab multiplier for lab-bound investigations only."""
    if (
        action_def.category == ActionCategory.INVESTIGATION
        and action_def.key not in UNSCALED_INVESTIGATIONS
    ):
        return round_int(action_def.delay_ms * resources.lab_delay_multiplier)
    return action_def.delay_ms


def submit_action(
    patient: Patient,
    action_key: str,
    user_id: str,
    sim_clock_ms: int,
    config: ClinicalRulesConfig,
    resources: ResourceState,
    prescription: Optional[Prescription] = None
) -> SubmissionResult:
    """
    Submit an action: exactly one new pending entry on success, nothing on
    rejection. Logging is left to the caller.
    """
    check = can_perform_action(patient, action_key, config, resources)
    if not check.allowed:
        return SubmissionResult(error=check.reason)

    action_def = get_action_def(config, action_key)
    feedback = None
    scale = 1.0

    if action_def.requires_prescription and prescription is None:
        return SubmissionResult(error=f"Prescription required for {action_def.label}.")

    if prescription is not None:
        if action_def.prescription_type is None or prescription.type != action_def.prescription_type.value:
            return SubmissionResult(error=f"Invalid prescription for {action_def.label}.")
        validation = validate_prescription(prescription, patient, config)
        if validation is not None:
            feedback = validation.feedback
            scale = validation.intervention_scale

    delay_ms = compute_action_delay(action_def, resources)
    pending = PendingAction(
        action_key=action_key,
        submitted_at_ms=sim_clock_ms,
        completes_at_ms=sim_clock_ms + delay_ms,
        user_id=user_id,
        prescription=prescription,
        prescription_feedback=feedback,
        intervention_scale=scale,
    )

    updated = patient.model_copy(deep=True)
    updated.pending_actions.append(pending)

    return SubmissionResult(
        patient=updated,
        pending=pending,
        delay_ms=delay_ms,
        prescription_feedback=feedback,
    )


# ========================
# Completion
# ========================

def process_completed_actions(
    patient: Patient,
    sim_clock_ms: int,
    config: ClinicalRulesConfig,
    rng: RandomSource
) -> CompletionBatch:
    """
    Complete every pending action whose time has come (ties complete).

    All completions found in this tick are flushed together; the rest of the
    pending list is kept unchanged and in order.
    """
    current = patient
    completed: List[CompletedAction] = []
    still_pending: List[PendingAction] = []

    for pending in patient.pending_actions:
        if sim_clock_ms >= pending.completes_at_ms:
            current, result = generate_action_result(current, pending, config, sim_clock_ms, rng)
            current.completed_actions.append(pending.action_key)
            completed.append(
                CompletedAction(action_key=pending.action_key, user_id=pending.user_id, result=result)
            )
        else:
            still_pending.append(pending)

    if not completed:
        return CompletionBatch(patient=patient)

    current.pending_actions = still_pending
    logger.debug(
        f"Patient {patient.id}: completed {[c.action_key for c in completed]} at {sim_clock_ms}ms"
    )
    return CompletionBatch(patient=current, completed=completed)


def _current_stage(patient: Patient, config: ClinicalRulesConfig) -> Optional[DeteriorationStage]:
    stages = config.get_stages(patient.deterioration_type)
    if 0 <= patient.current_stage_index < len(stages):
        return stages[patient.current_stage_index]
    return None


def _stage_lab(stage: Optional[DeteriorationStage], field: str, default: float) -> float:
    if stage is None:
        return default
    value = getattr(stage.vitals, field)
    return default if value is None else value


def _reveal(patient: Patient, **labs: float) -> None:
    patient.current_vitals = patient.current_vitals.model_copy(update=labs)


def generate_action_result(
    patient: Patient,
    pending: PendingAction,
    config: ClinicalRulesConfig,
    sim_clock_ms: int,
    rng: RandomSource
) -> Tuple[Patient, ActionResult]:
    """
    Build the result for a completed action.

    DKA lab values come from the current stage's target vitals; everyone
    else gets a normal-range value. Revealed analytes are written into the
    patient's vitals, and treatment/escalation results apply their
    intervention effects.

    Returns:
        (updated patient snapshot, result)
    """
    updated = patient.model_copy(deep=True)
    stage = _current_stage(patient, config)
    triggers = config.dka_triggers
    key = pending.action_key

    if key == "check_glucose":
        raw = _stage_lab(stage, "glucose", 14.2) if patient.is_dka else rng.uniform(4.5, 6.0)
        glucose = round_half_up(raw, 1)
        _reveal(updated, glucose=glucose)
        high = glucose >= triggers.glucose_threshold
        return updated, ActionResult(
            label="Blood Glucose",
            value=f"{glucose} mmol/L",
            normal=not high,
            flag="HIGH - Consider DKA. Check ketones urgently." if high else None,
        )

    if key == "check_ketones":
        raw = _stage_lab(stage, "ketones", 4.1) if patient.is_dka else rng.uniform(0.1, 0.4)
        ketones = round_half_up(raw, 1)
        _reveal(updated, ketones=ketones)
        if patient.is_dka and ketones >= triggers.ketone_threshold:
            first_time = patient.recognised_at_ms is None
            if first_time:
                updated.recognised_at_ms = sim_clock_ms
            return updated, ActionResult(
                label="Blood Ketones",
                value=f"{ketones} mmol/L",
                normal=False,
                flag="CRITICAL - Ketones significantly raised. DKA suspected. "
                     "Escalate immediately and commence DKA pathway.",
                is_recognition_event=True if first_time else None,
            )
        return updated, ActionResult(
            label="Blood Ketones",
            value=f"{ketones} mmol/L",
            normal=ketones < triggers.ketone_threshold,
        )

    if key == "request_abg":
        raw_ph = _stage_lab(stage, "ph", 7.28) if patient.is_dka else rng.uniform(7.38, 7.42)
        raw_bicarb = _stage_lab(stage, "bicarb", 12.0) if patient.is_dka else rng.uniform(22.0, 26.0)
        ph = round_half_up(raw_ph, 2)
        bicarb = round_half_up(raw_bicarb, 1)
        _reveal(updated, ph=ph, bicarb=bicarb)
        acidotic = ph < triggers.ph_threshold
        return updated, ActionResult(
            label="Arterial Blood Gas",
            value=f"pH {ph}, HCO3- {bicarb} mmol/L",
            normal=not acidotic,
            flag="Metabolic acidosis - consistent with DKA." if acidotic else None,
        )

    if key == "check_potassium":
        # Serum K+ often normal or high in DKA despite total body depletion
        raw = rng.uniform(4.8, 6.3) if patient.is_dka else rng.uniform(3.8, 4.6)
        potassium = round_half_up(raw, 1)
        updated.last_known_potassium = potassium
        low, high = POTASSIUM_NORMAL_RANGE
        flag = None
        if potassium > high:
            flag = "Elevated - monitor closely. May drop rapidly with insulin."
        elif potassium < low:
            flag = "Low - replace before starting insulin."
        return updated, ActionResult(
            label="Serum Potassium",
            value=f"{potassium} mmol/L",
            normal=low <= potassium <= high,
            flag=flag,
        )

    if key == "check_lactate":
        raw = rng.uniform(2.5, 4.5) if patient.is_dka else rng.uniform(0.5, 1.5)
        lactate = round_half_up(raw, 1)
        raised = lactate >= LACTATE_UPPER_NORMAL
        return updated, ActionResult(
            label="Lactate",
            value=f"{lactate} mmol/L",
            normal=not raised,
            flag="Elevated lactate - consider cause." if raised else None,
        )

    if key == "fbc":
        wbc = round_half_up(rng.uniform(14.0, 20.0) if patient.is_dka else rng.uniform(6.0, 10.0), 1)
        hb = round_int(
            rng.uniform(95.0, 110.0) if patient.scenario_patient_key == PVB_VARIANT
            else rng.uniform(115.0, 135.0)
        )
        return updated, ActionResult(
            label="Full Blood Count",
            value=f"WBC {wbc}, Hb {hb}, Plt 220",
            normal=wbc < 11 and hb > 110,
            flag="Raised WCC - may be stress response or infection." if wbc >= 11 else None,
        )

    if key == "group_and_save":
        return updated, ActionResult(
            label="Group & Save",
            value="O Rhesus Positive. Antibody screen negative.",
        )

    if key == "crossmatch":
        return updated, ActionResult(label="Crossmatch", value="2 units crossmatched and available.")

    if key == "maternal_observations":
        v = patient.current_vitals
        return updated, ActionResult(
            label="Maternal Observations",
            value=f"HR {v.hr}, BP {v.blood_pressure}, RR {v.rr}, SpO2 {v.spo2}%, Temp {v.temp}C",
            normal=v.hr < 100 and v.rr < 22 and v.spo2 > 95,
        )

    if key == "continuous_ctg":
        reassuring = patient.fetal_status == FetalStatus.REASSURING
        return updated, ActionResult(
            label="Continuous CTG",
            value=patient.ctg_summary,
            normal=reassuring,
            flag=None if reassuring
            else f"CTG classification: {patient.fetal_status.value.replace('_', '-')}",
        )

    if key == "speculum_exam":
        if patient.scenario_patient_key == PVB_VARIANT:
            return updated, ActionResult(
                label="Speculum Examination",
                value="Os closed. Small amount of blood in vagina. No active bleeding seen. "
                      "Cervix appears normal.",
            )
        return updated, ActionResult(
            label="Speculum Examination",
            value="Os closed. No bleeding. Cervix appears normal.",
        )

    if key == "request_ultrasound":
        if patient.scenario_patient_key == PVB_VARIANT:
            return updated, ActionResult(
                label="Ultrasound",
                value="Placenta posterior, upper segment. Small retroplacental collection (2cm). "
                      "No previa. Fetal biometry appropriate. Liquor volume normal.",
                normal=False,
                flag="Small retroplacental collection - consistent with marginal abruption. "
                     "Advise ongoing monitoring.",
            )
        return updated, ActionResult(
            label="Ultrasound",
            value="Normal fetal biometry. Placenta not low-lying. Liquor volume normal.",
        )

    if key == "escalate_registrar":
        if patient.is_dka:
            updated = apply_intervention(updated, InterventionType.SLOW, sim_clock_ms, REGISTRAR_SLOW_FACTOR)
        return updated, ActionResult(
            label="Escalation - Registrar",
            value="Registrar notified and reviewing. Will attend within 10 minutes.",
            is_escalation_event=True,
        )

    if key == "escalate_consultant":
        if patient.is_dka:
            updated = apply_intervention(updated, InterventionType.SLOW, sim_clock_ms, CONSULTANT_SLOW_FACTOR)
        return updated, ActionResult(
            label="Escalation - Consultant",
            value="Consultant contacted. Attending urgently.",
            is_escalation_event=True,
        )

    if key == "start_iv_fluids":
        fluids = config.treatment.fluid_protocol
        duration = (
            pending.prescription.duration_minutes
            if pending.prescription is not None and pending.prescription.type == "iv_fluids"
            else fluids.first_bag_duration_minutes
        )
        if patient.is_dka:
            factor = 1.0 + (IV_FLUIDS_SLOW_FACTOR - 1.0) * pending.intervention_scale
            if factor > 1.0:
                updated = apply_intervention(updated, InterventionType.SLOW, sim_clock_ms, factor)
        return updated, ActionResult(
            label="IV Fluids",
            value=f"IV access obtained. {fluids.first_bag_volume}mL 0.9% NaCl commenced "
                  f"over {duration:g} minutes.",
            is_treatment_event=True,
            prescription_feedback=pending.prescription_feedback,
        )

    if key == "start_insulin":
        insulin = config.treatment.insulin_protocol
        if patient.is_dka:
            scale = pending.intervention_scale
            if scale >= INSULIN_HALT_MIN_SCALE:
                updated = apply_intervention(updated, InterventionType.HALT, sim_clock_ms)
            elif scale > 0:
                factor = 1.0 + INSULIN_DEGRADED_SLOW_RANGE * scale
                updated = apply_intervention(updated, InterventionType.SLOW, sim_clock_ms, factor)
        if pending.prescription is not None and pending.prescription.type == "insulin":
            value = f"Fixed-rate insulin infusion commenced at {pending.prescription.rate_ml_per_hr:g} ml/hr."
        else:
            value = f"Fixed-rate insulin infusion commenced at {insulin.rate_units_per_kg_per_hr:g} units/kg/hr."
        return updated, ActionResult(
            label="Insulin Infusion",
            value=value,
            is_treatment_event=True,
            prescription_feedback=pending.prescription_feedback,
        )

    if key == "start_potassium_replacement":
        return updated, ActionResult(
            label="Potassium Replacement",
            value="Potassium replacement commenced as per protocol.",
            is_treatment_event=True,
            prescription_feedback=pending.prescription_feedback,
        )

    action_def = get_action_def(config, key)
    return updated, ActionResult(label=action_def.label if action_def else key, value="Completed.")
