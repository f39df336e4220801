"""
Tests for prescription grading against the DKA pathway values.
"""

import pytest

from dkasim.models.prescription import (
    FluidPrescription,
    InsulinPrescription,
    PotassiumPrescription,
    PrescriptionAccuracy,
)
from dkasim.engine.prescription_validator import (
    correct_insulin_rate,
    validate_fluid_prescription,
    validate_insulin_prescription,
    validate_potassium_prescription,
    validate_prescription,
)


# ========================
# IV fluids
# ========================

@pytest.mark.parametrize("duration,accuracy,scale", [
    (60, PrescriptionAccuracy.CORRECT, 1.0),
    (75, PrescriptionAccuracy.CORRECT, 1.0),
    (45, PrescriptionAccuracy.CORRECT, 1.0),
    (30, PrescriptionAccuracy.ACCEPTABLE, 0.7),
    (90, PrescriptionAccuracy.ACCEPTABLE, 0.7),
    (120, PrescriptionAccuracy.ACCEPTABLE, 0.7),
    (20, PrescriptionAccuracy.DANGEROUS, 0.0),
    (10, PrescriptionAccuracy.DANGEROUS, 0.0),
    (180, PrescriptionAccuracy.INCORRECT, 0.3),
])
def test_fluid_duration_bands(config, make_patient, duration, accuracy, scale):
    result = validate_fluid_prescription(duration, make_patient(), config)

    assert result.accuracy == accuracy
    assert result.intervention_scale == scale
    assert result.feedback.expected_value == "60 minutes"


def test_fluid_feedback_names_the_protocol(config, make_patient):
    result = validate_fluid_prescription(20, make_patient(), config)
    assert "fluid overload" in result.feedback.feedback
    assert "60 min" in result.feedback.feedback


# ========================
# Insulin
# ========================

def test_correct_insulin_rate_is_weight_based(config, make_patient):
    assert correct_insulin_rate(make_patient(weight=84), config) == pytest.approx(8.4)


def test_correct_insulin_rate_is_capped(config, make_patient):
    assert correct_insulin_rate(make_patient(weight=200), config) == 15.0


@pytest.mark.parametrize("rate,accuracy,scale", [
    (8.4, PrescriptionAccuracy.CORRECT, 1.0),
    (9.0, PrescriptionAccuracy.ACCEPTABLE, 0.7),
    (7.5, PrescriptionAccuracy.ACCEPTABLE, 0.7),
    (10.0, PrescriptionAccuracy.INCORRECT, 0.3),
    (12.0, PrescriptionAccuracy.DANGEROUS, 0.0),
    (5.0, PrescriptionAccuracy.DANGEROUS, 0.0),
])
def test_insulin_rate_bands(config, make_patient, rate, accuracy, scale):
    result = validate_insulin_prescription(rate, make_patient(weight=84), config)

    assert result.accuracy == accuracy
    assert result.intervention_scale == scale
    assert result.feedback.expected_value == "8.4 ml/hr"


def test_dangerous_insulin_feedback_names_direction(config, make_patient):
    high = validate_insulin_prescription(12.0, make_patient(weight=84), config)
    low = validate_insulin_prescription(5.0, make_patient(weight=84), config)

    assert "too high" in high.feedback.feedback
    assert "hypoglycaemia" in high.feedback.feedback
    assert "too low" in low.feedback.feedback


# ========================
# Potassium
# ========================

def test_potassium_unknown_level(config, make_patient):
    result = validate_potassium_prescription(20, make_patient(), config)

    assert result.accuracy == PrescriptionAccuracy.INCORRECT
    assert result.intervention_scale == 0.3
    assert result.feedback.expected_value == "Check K+ first"


@pytest.mark.parametrize("potassium,concentration,accuracy,scale", [
    (3.0, 40, PrescriptionAccuracy.CORRECT, 1.0),
    (3.0, 20, PrescriptionAccuracy.ACCEPTABLE, 0.5),
    (3.0, 10, PrescriptionAccuracy.INCORRECT, 0.3),
    (3.0, 0, PrescriptionAccuracy.DANGEROUS, 0.0),
    (4.5, 20, PrescriptionAccuracy.CORRECT, 1.0),
    (4.5, 40, PrescriptionAccuracy.ACCEPTABLE, 0.5),
    (4.5, 0, PrescriptionAccuracy.ACCEPTABLE, 0.5),
    (6.0, 0, PrescriptionAccuracy.CORRECT, 1.0),
    (6.0, 10, PrescriptionAccuracy.DANGEROUS, 0.0),
    (6.0, 40, PrescriptionAccuracy.DANGEROUS, 0.0),
])
def test_potassium_bands(config, make_patient, potassium, concentration, accuracy, scale):
    patient = make_patient(last_known_potassium=potassium)
    result = validate_potassium_prescription(concentration, patient, config)

    assert result.accuracy == accuracy
    assert result.intervention_scale == scale


def test_potassium_high_band_danger_wins_over_closeness(config, make_patient):
    """Any KCl above the high threshold is dangerous, however small."""
    result = validate_potassium_prescription(5, make_patient(last_known_potassium=5.8), config)

    assert result.accuracy == PrescriptionAccuracy.DANGEROUS
    assert "hyperkalaemia" in result.feedback.feedback
    assert result.feedback.expected_value == "0 mmol/L"


# ========================
# Dispatch
# ========================

def test_validate_prescription_dispatches_by_type(config, make_patient):
    patient = make_patient(weight=84, last_known_potassium=4.5)

    fluids = validate_prescription(FluidPrescription(duration_minutes=60), patient, config)
    insulin = validate_prescription(InsulinPrescription(rate_ml_per_hr=8.4), patient, config)
    potassium = validate_prescription(PotassiumPrescription(concentration_mmol=20), patient, config)

    assert fluids.feedback.expected_value == "60 minutes"
    assert insulin.feedback.expected_value == "8.4 ml/hr"
    assert potassium.feedback.expected_value == "20 mmol/L"
    assert all(r.accuracy == PrescriptionAccuracy.CORRECT for r in (fluids, insulin, potassium))
