"""
Prescription models: quantitative treatment orders and their grading.
"""

from enum import Enum
from typing import Annotated, Literal, Union
from pydantic import BaseModel, ConfigDict, Field


class FluidPrescription(BaseModel):
    """0.9% NaCl first bag, graded on infusion duration."""
    model_config = ConfigDict(frozen=True)

    type: Literal["iv_fluids"] = "iv_fluids"
    duration_minutes: float = Field(..., ge=15, le=240)


class InsulinPrescription(BaseModel):
    """Fixed-rate insulin infusion (1 unit/ml), graded on rate."""
    model_config = ConfigDict(frozen=True)

    type: Literal["insulin"] = "insulin"
    rate_ml_per_hr: float = Field(..., ge=1.0, le=15.0)


class PotassiumPrescription(BaseModel):
    """KCl added to the maintenance bag, graded on concentration."""
    model_config = ConfigDict(frozen=True)

    type: Literal["potassium"] = "potassium"
    concentration_mmol: float = Field(..., ge=0, le=40)


Prescription = Annotated[
    Union[FluidPrescription, InsulinPrescription, PotassiumPrescription],
    Field(discriminator="type"),
]


class PrescriptionAccuracy(str, Enum):
    CORRECT = "correct"
    ACCEPTABLE = "acceptable"
    INCORRECT = "incorrect"
    DANGEROUS = "dangerous"


class PrescriptionFeedback(BaseModel):
    model_config = ConfigDict(frozen=True)

    accuracy: PrescriptionAccuracy
    expected_value: str
    feedback: str


class ValidationResult(BaseModel):
    """Grading of one prescription plus how much clinical benefit it confers."""
    model_config = ConfigDict(frozen=True)

    feedback: PrescriptionFeedback
    intervention_scale: float = Field(..., ge=0.0, le=1.0)

    @property
    def accuracy(self) -> PrescriptionAccuracy:
        return self.feedback.accuracy
