"""
Simulation and scoring engine for the DKA simulator.
"""

from .action_processor import (
    ActionResult,
    CompletedAction,
    EligibilityResult,
    SubmissionResult,
    can_perform_action,
    compute_action_delay,
    generate_action_result,
    get_action_def,
    process_completed_actions,
    submit_action
)
from .deterioration import DeteriorationResult, apply_intervention, tick_deterioration
from .prescription_validator import (
    validate_fluid_prescription,
    validate_insulin_prescription,
    validate_potassium_prescription,
    validate_prescription
)
from .scoring import score_participant, score_session, time_score, outcome_score
from .simulation_engine import SimulationEngine, get_simulation_engine

__all__ = [
    "ActionResult",
    "CompletedAction",
    "EligibilityResult",
    "SubmissionResult",
    "can_perform_action",
    "compute_action_delay",
    "generate_action_result",
    "get_action_def",
    "process_completed_actions",
    "submit_action",
    "DeteriorationResult",
    "apply_intervention",
    "tick_deterioration",
    "validate_fluid_prescription",
    "validate_insulin_prescription",
    "validate_potassium_prescription",
    "validate_prescription",
    "score_participant",
    "score_session",
    "time_score",
    "outcome_score",
    "SimulationEngine",
    "get_simulation_engine"
]
