"""
Deterioration engine.

Advances a patient along a staged physiological trajectory, one tick at a
time. Stage progression is time-driven and linear (no branching); it only
moves backwards through an explicit reverse intervention, and a halt effect
pauses it for the rest of the session.

All functions are pure: they take a patient snapshot and return a new one.
"""

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel

from dkasim.core.random_source import RandomSource
from dkasim.models.clinical_config import (
    ClinicalRulesConfig,
    DeteriorationStage,
    FetalStatus,
    VitalsSnapshot,
)
from dkasim.models.patient import InterventionEffect, InterventionType, Patient, PatientStatus
from dkasim.engine.utils import round_half_up, round_int

logger = logging.getLogger(__name__)

STAGE_STATUS_MAP: Dict[str, PatientStatus] = {
    "stable": PatientStatus.STABLE,
    "concerning": PatientStatus.CONCERNING,
    "critical": PatientStatus.CRITICAL,
    "collapsed": PatientStatus.COLLAPSED,
    "crash_call": PatientStatus.COLLAPSED,
    "resolved": PatientStatus.RESOLVED,
}

LAB_FIELDS = ("glucose", "ketones", "ph", "bicarb")

# Peak-to-peak jitter applied to interpolated vitals
HR_JITTER = 4.0
RR_JITTER = 2.0
SPO2_JITTER = 1.0


class DeteriorationResult(BaseModel):
    """Outcome of one deterioration tick for one patient."""
    patient: Patient
    vitals_changed: bool = False
    status_changed: bool = False
    old_status: Optional[PatientStatus] = None
    new_status: Optional[PatientStatus] = None
    fetal_status_changed: bool = False
    old_fetal_status: Optional[FetalStatus] = None
    new_fetal_status: Optional[FetalStatus] = None
    stage_advanced: bool = False


def stage_to_status(stage_name: str) -> PatientStatus:
    """Map a stage name to a patient status; unknown names read as stable."""
    return STAGE_STATUS_MAP.get(stage_name, PatientStatus.STABLE)


def effective_stage_duration(patient: Patient, base_duration_ms: int) -> float:
    """Base duration stretched by every slow effect, compounding multiplicatively."""
    return base_duration_ms * patient.slow_multiplier


def _lerp(a: float, b: float, progress: float) -> float:
    return a + (b - a) * progress


def interpolate_vitals(
    start: VitalsSnapshot,
    target: VitalsSnapshot,
    progress: float,
    revealed: VitalsSnapshot
) -> VitalsSnapshot:
    """
    Linear interpolation of the bedside vitals at the given progress (0-1).

    Lab fields are never interpolated: they keep whatever value an
    investigation last revealed on `revealed`, or stay None.
    """
    return VitalsSnapshot(
        hr=round_int(_lerp(start.hr, target.hr, progress)),
        bp_systolic=round_int(_lerp(start.bp_systolic, target.bp_systolic, progress)),
        bp_diastolic=round_int(_lerp(start.bp_diastolic, target.bp_diastolic, progress)),
        rr=round_int(_lerp(start.rr, target.rr, progress)),
        spo2=round_half_up(_lerp(start.spo2, target.spo2, progress), 1),
        temp=round_half_up(_lerp(start.temp, target.temp, progress), 1),
        gcs=round_int(_lerp(start.gcs, target.gcs, progress)),
        **{field: getattr(revealed, field) for field in LAB_FIELDS},
    )


def apply_jitter(vitals: VitalsSnapshot, rng: RandomSource) -> VitalsSnapshot:
    """Small symmetric noise on HR, RR and SpO2 (capped at 100)."""
    def jitter(value: float, spread: float) -> float:
        return value + (rng.next() - 0.5) * spread

    return vitals.model_copy(update={
        "hr": max(0, round_int(jitter(vitals.hr, HR_JITTER))),
        "rr": max(0, round_int(jitter(vitals.rr, RR_JITTER))),
        "spo2": min(100.0, round_half_up(jitter(vitals.spo2, SPO2_JITTER), 1)),
    })


def snap_to_stage(stage: DeteriorationStage, current: VitalsSnapshot) -> VitalsSnapshot:
    """Stage target vitals with any revealed lab values carried over."""
    labs = {field: getattr(current, field) for field in LAB_FIELDS}
    return stage.vitals.model_copy(update=labs)


def _record_transitions(
    result: DeteriorationResult,
    original: Patient,
    status: PatientStatus,
    fetal_status: FetalStatus
) -> None:
    if status != original.status:
        result.status_changed = True
        result.old_status = original.status
        result.new_status = status
    if fetal_status != original.fetal_status:
        result.fetal_status_changed = True
        result.old_fetal_status = original.fetal_status
        result.new_fetal_status = fetal_status


def tick_deterioration(
    patient: Patient,
    sim_clock_ms: int,
    config: ClinicalRulesConfig,
    rng: RandomSource
) -> DeteriorationResult:
    """
    Run one tick of deterioration for a patient.

    Args:
        patient: Current patient snapshot (not modified)
        sim_clock_ms: Simulated clock after this tick's advance
        config: Clinical rules holding the deterioration curves
        rng: Random source for vitals jitter

    Returns:
        DeteriorationResult carrying the new patient snapshot and the
        transitions that occurred, so the caller can emit granular events.
    """
    if not patient.has_arrived:
        return DeteriorationResult(patient=patient)

    stages: List[DeteriorationStage] = config.get_stages(patient.deterioration_type)
    if not stages:
        logger.warning(f"No deterioration curve '{patient.deterioration_type}' for patient {patient.id}")
        return DeteriorationResult(patient=patient)

    index = min(patient.current_stage_index, len(stages) - 1)
    stage = stages[index]
    updated = patient.model_copy(deep=True)
    updated.current_stage_index = index

    if patient.is_halted:
        updated.current_vitals = snap_to_stage(stage, patient.current_vitals)
        return DeteriorationResult(patient=updated, vitals_changed=True)

    time_in_stage = sim_clock_ms - patient.stage_entered_at_ms
    duration = effective_stage_duration(patient, stage.duration_ms)
    progress = max(0.0, min(time_in_stage / duration, 1.0))

    start = stages[index - 1].vitals if index > 0 else patient.current_vitals
    vitals = interpolate_vitals(start, stage.vitals, progress, patient.current_vitals)
    updated.current_vitals = apply_jitter(vitals, rng)
    updated.ctg_summary = stage.ctg_summary
    updated.status = stage_to_status(stage.name)
    updated.fetal_status = stage.fetal_status

    result = DeteriorationResult(patient=updated, vitals_changed=True)

    if time_in_stage >= duration and index < len(stages) - 1:
        next_stage = stages[index + 1]
        updated.current_stage_index = index + 1
        updated.stage_entered_at_ms = sim_clock_ms
        updated.status = stage_to_status(next_stage.name)
        updated.fetal_status = next_stage.fetal_status
        updated.ctg_summary = next_stage.ctg_summary
        result.stage_advanced = True
        logger.debug(
            f"Patient {patient.id} advanced to stage {index + 1} ({next_stage.name}) at {sim_clock_ms}ms"
        )

    _record_transitions(result, patient, updated.status, updated.fetal_status)
    return result


def apply_intervention(
    patient: Patient,
    intervention_type: InterventionType,
    at_ms: int,
    slow_factor: Optional[float] = None
) -> Patient:
    """
    Append an intervention effect and return the new snapshot.

    A reverse is an instantaneous rollback: past stage 0 it steps back one
    stage and restarts the stage clock at `at_ms`.
    """
    updated = patient.model_copy(deep=True)
    updated.intervention_effects.append(
        InterventionEffect(type=intervention_type, applied_at_ms=at_ms, slow_factor=slow_factor)
    )

    if intervention_type == InterventionType.REVERSE and patient.current_stage_index > 0:
        updated.current_stage_index = patient.current_stage_index - 1
        updated.stage_entered_at_ms = at_ms

    logger.debug(
        f"Applied {intervention_type.value} to patient {patient.id} at {at_ms}ms"
        + (f" (factor {slow_factor})" if slow_factor else "")
    )
    return updated
