"""
Tests for the action processor: eligibility, submission, completion and the
clinical results each action produces.
"""

import pytest

from dkasim.models.clinical_config import FetalStatus
from dkasim.models.patient import InterventionType, PendingAction, ResourceState
from dkasim.models.prescription import (
    FluidPrescription,
    InsulinPrescription,
    PrescriptionAccuracy,
)
from dkasim.engine.action_processor import (
    can_perform_action,
    compute_action_delay,
    generate_action_result,
    get_action_def,
    process_completed_actions,
    submit_action,
)


def _pending(action_key, completes_at_ms=0, **kwargs):
    return PendingAction(
        action_key=action_key,
        submitted_at_ms=0,
        completes_at_ms=completes_at_ms,
        user_id="user-1",
        **kwargs
    )


# ========================
# Eligibility
# ========================

def test_unknown_action_is_rejected(config, resources, make_patient):
    check = can_perform_action(make_patient(), "do_a_dance", config, resources)
    assert not check.allowed
    assert check.reason == "Unknown action."


def test_completed_action_is_rejected(config, resources, make_patient):
    patient = make_patient(completed_actions=["check_glucose"])
    check = can_perform_action(patient, "check_glucose", config, resources)
    assert check.reason == "Already completed."


def test_pending_action_is_rejected(config, resources, make_patient):
    patient = make_patient(pending_actions=[_pending("check_glucose", 30000)])
    check = can_perform_action(patient, "check_glucose", config, resources)
    assert check.reason == "Already in progress."


def test_missing_prerequisite_names_its_label(config, resources, make_patient):
    check = can_perform_action(make_patient(), "start_insulin", config, resources)
    assert not check.allowed
    assert check.reason == "Requires IV Fluids first."


def test_prerequisite_checked_before_availability(config, resources, make_patient):
    """A missing prerequisite wins over the action not being offered."""
    patient = make_patient(available_actions=["check_glucose"])
    check = can_perform_action(patient, "start_insulin", config, resources)
    assert check.reason == "Requires IV Fluids first."


def test_action_not_available_for_patient(config, resources, make_patient):
    patient = make_patient(available_actions=["continuous_ctg"])
    check = can_perform_action(patient, "check_glucose", config, resources)
    assert check.reason == "Not available for this patient."


def test_ketometer_unavailable(config, make_patient):
    resources = ResourceState(ketometer_available=False)
    check = can_perform_action(make_patient(), "check_ketones", config, resources)
    assert check.reason == "Ketone meter not available on the unit."


def test_labs_unavailable_blocks_lab_tests_only(config, make_patient):
    resources = ResourceState(labs_available=False)
    patient = make_patient()

    assert can_perform_action(patient, "check_potassium", config, resources).reason == \
        "Lab services currently delayed."
    assert can_perform_action(patient, "fbc", config, resources).reason == \
        "Lab services currently delayed."
    assert can_perform_action(patient, "check_glucose", config, resources).allowed


def test_eligible_action(config, resources, make_patient):
    check = can_perform_action(make_patient(), "check_glucose", config, resources)
    assert check.allowed
    assert check.reason is None


# ========================
# Delays
# ========================

def test_lab_multiplier_scales_lab_investigations(config):
    resources = ResourceState(lab_delay_multiplier=2.0)
    assert compute_action_delay(get_action_def(config, "check_potassium"), resources) == 360000
    assert compute_action_delay(get_action_def(config, "request_abg"), resources) == 240000


def test_lab_multiplier_skips_bedside_and_non_investigations(config):
    resources = ResourceState(lab_delay_multiplier=2.0)
    assert compute_action_delay(get_action_def(config, "check_glucose"), resources) == 30000
    assert compute_action_delay(get_action_def(config, "check_ketones"), resources) == 45000
    assert compute_action_delay(get_action_def(config, "escalate_registrar"), resources) == 60000
    assert compute_action_delay(get_action_def(config, "continuous_ctg"), resources) == 60000


# ========================
# Submission
# ========================

def test_submit_appends_one_pending_entry(config, resources, make_patient):
    patient = make_patient()
    result = submit_action(patient, "check_glucose", "user-1", 50000, config, resources)

    assert result.ok
    assert result.delay_ms == 30000
    assert result.pending.completes_at_ms == 80000
    assert result.pending.submitted_at_ms == 50000
    assert [pa.action_key for pa in result.patient.pending_actions] == ["check_glucose"]
    assert patient.pending_actions == []


def test_rejected_submission_changes_nothing(config, resources, make_patient):
    patient = make_patient()
    result = submit_action(patient, "start_insulin", "user-1", 0, config, resources)

    assert not result.ok
    assert result.patient is None
    assert result.pending is None
    assert patient.pending_actions == []


def test_prescription_required(config, resources, make_patient):
    result = submit_action(make_patient(), "start_iv_fluids", "user-1", 0, config, resources)
    assert result.error == "Prescription required for IV Fluids."


def test_prescription_type_must_match(config, resources, make_patient):
    result = submit_action(
        make_patient(), "start_iv_fluids", "user-1", 0, config, resources,
        InsulinPrescription(rate_ml_per_hr=8.4),
    )
    assert result.error == "Invalid prescription for IV Fluids."


def test_prescription_feedback_is_attached(config, resources, make_patient):
    result = submit_action(
        make_patient(), "start_iv_fluids", "user-1", 0, config, resources,
        FluidPrescription(duration_minutes=90),
    )

    assert result.ok
    assert result.prescription_feedback.accuracy == PrescriptionAccuracy.ACCEPTABLE
    assert result.pending.prescription_feedback == result.prescription_feedback
    assert result.pending.intervention_scale == 0.7


# ========================
# Completion
# ========================

def test_nothing_completes_before_due(config, rng, make_patient):
    patient = make_patient(pending_actions=[_pending("check_glucose", 30000)])
    batch = process_completed_actions(patient, 29999, config, rng)

    assert batch.completed == []
    assert batch.patient == patient


def test_due_actions_complete_and_others_wait(config, rng, make_patient):
    patient = make_patient(pending_actions=[
        _pending("check_glucose", 30000),
        _pending("request_abg", 120000),
        _pending("maternal_observations", 30000),
    ])
    batch = process_completed_actions(patient, 30000, config, rng)

    assert [c.action_key for c in batch.completed] == ["check_glucose", "maternal_observations"]
    assert batch.patient.completed_actions == ["check_glucose", "maternal_observations"]
    assert [pa.action_key for pa in batch.patient.pending_actions] == ["request_abg"]
    assert len(patient.pending_actions) == 3


def test_completion_reveals_lab_value(config, rng, make_patient):
    patient = make_patient(pending_actions=[_pending("check_glucose", 30000)])
    batch = process_completed_actions(patient, 30000, config, rng)

    assert batch.patient.current_vitals.glucose == 14.2
    assert batch.completed[0].user_id == "user-1"


# ========================
# Results
# ========================

def test_dka_glucose_is_high(config, rng, make_patient):
    _, result = generate_action_result(make_patient(), _pending("check_glucose"), config, 30000, rng)

    assert result.value == "14.2 mmol/L"
    assert not result.normal
    assert result.flag.startswith("HIGH")


def test_non_dka_glucose_is_normal(config, rng, make_patient):
    patient = make_patient(is_dka=False, scenario_patient_key="rfm_patient", deterioration_type="rfm")
    updated, result = generate_action_result(patient, _pending("check_glucose"), config, 30000, rng)

    assert result.normal
    assert result.flag is None
    assert 4.5 <= updated.current_vitals.glucose <= 6.0


def test_ketones_recognise_dka_once(config, rng, make_patient):
    """Only the first raised ketone result is a recognition event."""
    updated, first = generate_action_result(make_patient(), _pending("check_ketones"), config, 45000, rng)

    assert first.is_recognition_event is True
    assert first.flag.startswith("CRITICAL")
    assert updated.recognised_at_ms == 45000
    assert updated.current_vitals.ketones == 4.1

    again, second = generate_action_result(updated, _pending("check_ketones"), config, 90000, rng)
    assert second.is_recognition_event is None
    assert "is_recognition_event" not in second.to_detail()
    assert again.recognised_at_ms == 45000


def test_abg_reveals_ph_and_bicarb(config, rng, make_patient):
    updated, result = generate_action_result(make_patient(), _pending("request_abg"), config, 120000, rng)

    assert updated.current_vitals.ph == 7.28
    assert updated.current_vitals.bicarb == 14
    assert not result.normal
    assert "acidosis" in result.flag


def test_dka_labs_follow_current_stage(config, rng, make_patient):
    patient = make_patient(current_stage_index=1)
    updated, result = generate_action_result(patient, _pending("check_glucose"), config, 400000, rng)

    assert updated.current_vitals.glucose == 18.5
    assert result.value == "18.5 mmol/L"


def test_potassium_sets_last_known_level(config, make_patient, fixed_random):
    updated, result = generate_action_result(
        make_patient(), _pending("check_potassium"), config, 180000, fixed_random(0.0)
    )

    assert updated.last_known_potassium == 4.8
    assert result.normal
    assert result.flag is None


def test_high_potassium_is_flagged(config, make_patient, fixed_random):
    updated, result = generate_action_result(
        make_patient(), _pending("check_potassium"), config, 180000, fixed_random(0.9)
    )

    assert updated.last_known_potassium > 5.5
    assert not result.normal
    assert result.flag.startswith("Elevated")


def test_ctg_result_reports_fetal_status(config, rng, make_patient):
    patient = make_patient(fetal_status=FetalStatus.NON_REASSURING, ctg_summary="Reduced variability")
    _, result = generate_action_result(patient, _pending("continuous_ctg"), config, 60000, rng)

    assert result.value == "Reduced variability"
    assert not result.normal
    assert result.flag == "CTG classification: non-reassuring"


def test_pvb_ultrasound_shows_abruption(config, rng, make_patient):
    patient = make_patient(is_dka=False, scenario_patient_key="pvb_patient", deterioration_type="pvb")
    _, result = generate_action_result(patient, _pending("request_ultrasound"), config, 240000, rng)

    assert not result.normal
    assert "abruption" in result.flag


def test_unknown_completion_uses_catalog_label(config, rng, make_patient):
    _, result = generate_action_result(make_patient(), _pending("fbc_extra"), config, 0, rng)
    assert result.label == "fbc_extra"
    assert result.value == "Completed."


# ========================
# Clinical effects
# ========================

def test_registrar_escalation_slows_dka(config, rng, make_patient):
    updated, result = generate_action_result(
        make_patient(), _pending("escalate_registrar"), config, 60000, rng
    )

    assert result.is_escalation_event is True
    assert updated.slow_multiplier == pytest.approx(1.5)


def test_escalation_for_non_dka_has_no_effect(config, rng, make_patient):
    patient = make_patient(is_dka=False, scenario_patient_key="rfm_patient", deterioration_type="rfm")
    updated, result = generate_action_result(patient, _pending("escalate_registrar"), config, 60000, rng)

    assert result.is_escalation_event is True
    assert updated.intervention_effects == []


@pytest.mark.parametrize("scale,expected_factor", [
    (1.0, 3.0),
    (0.7, 2.4),
    (0.3, 1.6),
])
def test_iv_fluids_slow_scales_with_prescription(config, rng, make_patient, scale, expected_factor):
    pending = _pending(
        "start_iv_fluids",
        prescription=FluidPrescription(duration_minutes=60),
        intervention_scale=scale,
    )
    updated, result = generate_action_result(make_patient(), pending, config, 120000, rng)

    assert result.is_treatment_event is True
    assert updated.slow_multiplier == pytest.approx(expected_factor)
    assert "over 60 minutes" in result.value


def test_dangerous_fluids_confer_no_benefit(config, rng, make_patient):
    pending = _pending(
        "start_iv_fluids",
        prescription=FluidPrescription(duration_minutes=20),
        intervention_scale=0.0,
    )
    updated, result = generate_action_result(make_patient(), pending, config, 120000, rng)

    assert result.is_treatment_event is True
    assert updated.intervention_effects == []


def test_good_insulin_halts_deterioration(config, rng, make_patient):
    pending = _pending(
        "start_insulin",
        prescription=InsulinPrescription(rate_ml_per_hr=8.4),
        intervention_scale=1.0,
    )
    updated, result = generate_action_result(make_patient(), pending, config, 240000, rng)

    assert updated.is_halted
    assert result.is_treatment_event is True
    assert "8.4 ml/hr" in result.value


def test_poor_insulin_only_slows(config, rng, make_patient):
    pending = _pending("start_insulin", intervention_scale=0.3)
    updated, _ = generate_action_result(make_patient(), pending, config, 240000, rng)

    assert not updated.is_halted
    assert updated.intervention_effects[0].type == InterventionType.SLOW
    assert updated.slow_multiplier == pytest.approx(1.6)


def test_dangerous_insulin_has_no_effect(config, rng, make_patient):
    pending = _pending("start_insulin", intervention_scale=0.0)
    updated, _ = generate_action_result(make_patient(), pending, config, 240000, rng)

    assert updated.intervention_effects == []
