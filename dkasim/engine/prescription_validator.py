"""
Prescription validator.

Grades quantitative orders against the NHS DKA pathway values held in the
clinical config. Each validator returns an accuracy tier, feedback naming the
protocol-correct value, and an intervention scale in [0, 1] describing how
much clinical benefit the order confers.
"""

import logging
from typing import Optional

from dkasim.models.clinical_config import ClinicalRulesConfig
from dkasim.models.patient import Patient
from dkasim.models.prescription import (
    FluidPrescription,
    InsulinPrescription,
    PotassiumPrescription,
    Prescription,
    PrescriptionAccuracy,
    PrescriptionFeedback,
    ValidationResult,
)
from dkasim.engine.utils import fmt, round_half_up

logger = logging.getLogger(__name__)

# Fluid duration bands (minutes)
FLUID_CORRECT_TOLERANCE_MIN = 15
FLUID_ACCEPTABLE_MIN = 30
FLUID_ACCEPTABLE_MAX = 120

# Insulin rate bands (ml/hr difference from correct)
INSULIN_CORRECT_DIFF = 0.2
INSULIN_ACCEPTABLE_DIFF = 1.0
INSULIN_INCORRECT_DIFF = 2.0

# KCl concentrations (mmol/L) per serum K+ band
POTASSIUM_LOW_BAND_DOSE = 40
POTASSIUM_NORMAL_BAND_DOSE = 20
POTASSIUM_ACCEPTABLE_DIFF = 20


def _result(
    accuracy: PrescriptionAccuracy,
    expected: str,
    feedback: str,
    scale: float
) -> ValidationResult:
    return ValidationResult(
        feedback=PrescriptionFeedback(accuracy=accuracy, expected_value=expected, feedback=feedback),
        intervention_scale=scale,
    )


def validate_fluid_prescription(
    duration_minutes: float,
    patient: Patient,
    config: ClinicalRulesConfig
) -> ValidationResult:
    """
    Validate the duration of the first 1000ml 0.9% NaCl bag.

    Non-shocked (SBP above threshold) protocol is 1000ml over 60 minutes.
    """
    protocol = config.treatment.fluid_protocol
    target = protocol.first_bag_duration_minutes
    sbp = protocol.sbp_shocked_threshold
    prescribed = fmt(duration_minutes)
    diff = abs(duration_minutes - target)

    if diff <= FLUID_CORRECT_TOLERANCE_MIN:
        return _result(
            PrescriptionAccuracy.CORRECT, f"{target} minutes",
            f"Correct - {protocol.first_bag_volume}ml 0.9% NaCl over {prescribed} minutes "
            f"(protocol: {target} min for SBP > {sbp}).",
            1.0,
        )
    if FLUID_ACCEPTABLE_MIN <= duration_minutes <= FLUID_ACCEPTABLE_MAX:
        return _result(
            PrescriptionAccuracy.ACCEPTABLE, f"{target} minutes",
            f"Acceptable - protocol recommends {target} minutes for the first bag "
            f"(SBP > {sbp}). You prescribed {prescribed} min.",
            0.7,
        )
    if duration_minutes < FLUID_ACCEPTABLE_MIN:
        return _result(
            PrescriptionAccuracy.DANGEROUS, f"{target} minutes",
            f"Too fast - {prescribed} min risks fluid overload, especially in pregnancy. "
            f"Protocol: {target} min for non-shocked patients.",
            0.0,
        )
    return _result(
        PrescriptionAccuracy.INCORRECT, f"{target} minutes",
        f"Too slow - {prescribed} min will delay resuscitation. "
        f"Protocol: {target} min for the first bag.",
        0.3,
    )


def correct_insulin_rate(patient: Patient, config: ClinicalRulesConfig) -> float:
    """Weight x units/kg/hr at 1 unit/ml, capped at the maximum pump rate."""
    protocol = config.treatment.insulin_protocol
    rate = round_half_up(patient.weight * protocol.rate_units_per_kg_per_hr, 1)
    return min(rate, protocol.max_rate_ml_per_hr)


def validate_insulin_prescription(
    rate_ml_per_hr: float,
    patient: Patient,
    config: ClinicalRulesConfig
) -> ValidationResult:
    """Validate a fixed-rate insulin infusion rate in ml/hr."""
    per_kg = fmt(config.treatment.insulin_protocol.rate_units_per_kg_per_hr)
    correct = correct_insulin_rate(patient, config)
    expected = f"{fmt(correct)} ml/hr"
    weight = fmt(patient.weight)
    prescribed = fmt(rate_ml_per_hr)
    diff = abs(rate_ml_per_hr - correct)

    if diff <= INSULIN_CORRECT_DIFF:
        return _result(
            PrescriptionAccuracy.CORRECT, expected,
            f"Correct - {weight}kg x {per_kg} units/kg/hr = {fmt(correct)} ml/hr. "
            f"You prescribed {prescribed} ml/hr.",
            1.0,
        )
    if diff <= INSULIN_ACCEPTABLE_DIFF:
        return _result(
            PrescriptionAccuracy.ACCEPTABLE, expected,
            f"Close - correct rate is {fmt(correct)} ml/hr ({weight}kg x {per_kg}). "
            f"You prescribed {prescribed} ml/hr.",
            0.7,
        )
    if diff <= INSULIN_INCORRECT_DIFF:
        return _result(
            PrescriptionAccuracy.INCORRECT, expected,
            f"Incorrect - correct rate is {fmt(correct)} ml/hr ({weight}kg x {per_kg} units/kg/hr). "
            f"You prescribed {prescribed} ml/hr.",
            0.3,
        )
    if rate_ml_per_hr > correct:
        feedback = (
            f"Dangerous - {prescribed} ml/hr is significantly too high. Risk of severe "
            f"hypoglycaemia. Correct: {fmt(correct)} ml/hr ({weight}kg x {per_kg})."
        )
    else:
        feedback = (
            f"Dangerous - {prescribed} ml/hr is significantly too low. Inadequate treatment. "
            f"Correct: {fmt(correct)} ml/hr ({weight}kg x {per_kg})."
        )
    return _result(PrescriptionAccuracy.DANGEROUS, expected, feedback, 0.0)


def correct_potassium_concentration(potassium: float, config: ClinicalRulesConfig) -> int:
    protocol = config.treatment.potassium_protocol
    if potassium < protocol.low_threshold:
        return POTASSIUM_LOW_BAND_DOSE
    if potassium <= protocol.high_threshold:
        return POTASSIUM_NORMAL_BAND_DOSE
    return 0


def validate_potassium_prescription(
    concentration_mmol: float,
    patient: Patient,
    config: ClinicalRulesConfig
) -> ValidationResult:
    """
    Validate KCl concentration against the last measured serum K+.

    K+ below low threshold: 40 mmol/L with senior review.
    K+ within band: 20 mmol/L.
    K+ above high threshold: none.
    """
    k = patient.last_known_potassium
    if k is None:
        return _result(
            PrescriptionAccuracy.INCORRECT, "Check K+ first",
            "Potassium level not yet known - check serum K+ before prescribing replacement.",
            0.3,
        )

    protocol = config.treatment.potassium_protocol
    low, high = protocol.low_threshold, protocol.high_threshold
    correct = correct_potassium_concentration(k, config)
    prescribed = fmt(concentration_mmol)

    if k < low:
        band = f"K+ {fmt(k)} mmol/L (< {fmt(low)}) - {correct} mmol/L KCl with senior review"
    elif k <= high:
        band = f"K+ {fmt(k)} mmol/L ({fmt(low)}-{fmt(high)}) - {correct} mmol/L KCl"
    else:
        band = f"K+ {fmt(k)} mmol/L (> {fmt(high)}) - no KCl needed"
    expected = f"{correct} mmol/L"

    # Unsafe direction outranks numeric closeness
    if k > high and concentration_mmol > 0:
        return _result(
            PrescriptionAccuracy.DANGEROUS, expected,
            f"Dangerous - K+ is {fmt(k)} mmol/L (> {fmt(high)}). Giving KCl risks "
            f"hyperkalaemia and cardiac arrest.",
            0.0,
        )
    if k < low and concentration_mmol == 0:
        return _result(
            PrescriptionAccuracy.DANGEROUS, expected,
            f"Dangerous - K+ is {fmt(k)} mmol/L (< {fmt(low)}). Withholding replacement "
            f"risks severe hypokalaemia.",
            0.0,
        )
    if concentration_mmol == correct:
        return _result(
            PrescriptionAccuracy.CORRECT, expected,
            f"Correct - {band}. You prescribed {prescribed} mmol/L.",
            1.0,
        )
    if abs(concentration_mmol - correct) <= POTASSIUM_ACCEPTABLE_DIFF:
        return _result(
            PrescriptionAccuracy.ACCEPTABLE, expected,
            f"Close - {band}. You prescribed {prescribed} mmol/L.",
            0.5,
        )
    return _result(
        PrescriptionAccuracy.INCORRECT, expected,
        f"Incorrect - {band}. You prescribed {prescribed} mmol/L.",
        0.3,
    )


def validate_prescription(
    prescription: Prescription,
    patient: Patient,
    config: ClinicalRulesConfig
) -> Optional[ValidationResult]:
    """Dispatch to the validator for the prescription's type."""
    if isinstance(prescription, FluidPrescription):
        return validate_fluid_prescription(prescription.duration_minutes, patient, config)
    if isinstance(prescription, InsulinPrescription):
        return validate_insulin_prescription(prescription.rate_ml_per_hr, patient, config)
    if isinstance(prescription, PotassiumPrescription):
        return validate_potassium_prescription(prescription.concentration_mmol, patient, config)
    logger.warning(f"Unknown prescription type: {type(prescription).__name__}")
    return None
