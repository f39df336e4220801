"""
Scoring engine.

Runs once, at session end, over the event log and the final patient
snapshots. Never mutates anything it reads.
"""

import logging
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from dkasim.models.clinical_config import ClinicalRulesConfig, FetalStatus
from dkasim.models.patient import Patient, PatientStatus
from dkasim.models.session import (
    EventLogEntry,
    EventLogType,
    ParticipantScore,
    ScoredAction,
    User,
    UserRole,
)
from dkasim.engine.action_processor import PVB_VARIANT
from dkasim.engine.utils import round_int

logger = logging.getLogger(__name__)

GRACE_MULTIPLIER = 3

RECOGNITION_ACTIONS = frozenset({"check_glucose", "check_ketones"})

DKA_APPROPRIATE_ACTIONS: FrozenSet[str] = frozenset({
    "check_glucose",
    "check_ketones",
    "request_abg",
    "escalate_registrar",
    "start_iv_fluids",
    "start_insulin",
    "continuous_ctg",
    "maternal_observations",
    "check_potassium",
})

PVB_APPROPRIATE_ACTIONS: FrozenSet[str] = frozenset({
    "fbc",
    "group_and_save",
    "continuous_ctg",
    "maternal_observations",
    "escalate_registrar",
})

RFM_APPROPRIATE_ACTIONS: FrozenSet[str] = frozenset({"continuous_ctg", "maternal_observations"})

OUTCOME_FRACTIONS: Dict[PatientStatus, float] = {
    PatientStatus.STABLE: 1.0,
    PatientStatus.RESOLVED: 1.0,
    PatientStatus.CONCERNING: 0.7,
    PatientStatus.CRITICAL: 0.3,
    PatientStatus.COLLAPSED: 0.1,
}


def time_score(action_time_ms: Optional[int], target_ms: int, max_score: int) -> int:
    """
    Linear decay from full marks at the target to zero at 3x the target.

    Returns 0 when the action never happened.
    """
    if action_time_ms is None:
        return 0
    if action_time_ms <= target_ms:
        return max_score
    grace = target_ms * GRACE_MULTIPLIER
    if action_time_ms >= grace:
        return 0
    ratio = 1 - (action_time_ms - target_ms) / (grace - target_ms)
    return round_int(ratio * max_score)


def outcome_score(patient: Patient, max_score: int) -> int:
    """Step function of the final patient status."""
    if patient.status == PatientStatus.COLLAPSED and patient.fetal_status == FetalStatus.IUD:
        return 0
    return round_int(max_score * OUTCOME_FRACTIONS.get(patient.status, 0.0))


def appropriate_action_set(patient: Patient) -> FrozenSet[str]:
    if patient.is_dka:
        return DKA_APPROPRIATE_ACTIONS
    if patient.scenario_patient_key == PVB_VARIANT:
        return PVB_APPROPRIATE_ACTIONS
    return RFM_APPROPRIATE_ACTIONS


def _first_result_time(
    events: List[EventLogEntry],
    predicate: Callable[[EventLogEntry], bool]
) -> Optional[int]:
    for entry in events:
        if entry.type == EventLogType.RESULT and predicate(entry):
            return entry.sim_time_ms
    return None


def _score_actions(
    patient: Patient,
    events: List[EventLogEntry],
    config: ClinicalRulesConfig
) -> Tuple[List[ScoredAction], int]:
    appropriate = appropriate_action_set(patient)
    scored: List[ScoredAction] = []

    for action_key in patient.completed_actions:
        action_def = config.get_action(action_key)
        submitted = next(
            (e for e in events
             if e.type == EventLogType.ACTION and e.detail.get("action_key") == action_key),
            None,
        )
        was_appropriate = action_key in appropriate
        scored.append(ScoredAction(
            action_key=action_key,
            label=action_def.label if action_def else action_key,
            sim_time_ms=submitted.sim_time_ms if submitted else 0,
            was_appropriate=was_appropriate,
            points=1 if was_appropriate else 0,
        ))

    appropriate_count = sum(1 for a in scored if a.was_appropriate)
    score = round_int(
        appropriate_count / max(len(appropriate), 1) * config.scoring.actions_max_score
    )
    return scored, score


def score_participant(
    user: User,
    patient: Patient,
    events: List[EventLogEntry],
    config: ClinicalRulesConfig
) -> ParticipantScore:
    """
    Score one participant against their assigned patient.

    Args:
        user: The participant
        patient: Final snapshot of the patient they were assigned
        events: The session's full event log, in insertion order
        config: Clinical rules holding the scoring weights

    Returns:
        ParticipantScore with the five components and their total
    """
    weights = config.scoring
    patient_events = [e for e in events if e.patient_id == patient.id]

    if patient.is_dka:
        recognition = time_score(
            _first_result_time(
                patient_events, lambda e: e.detail.get("action_key") in RECOGNITION_ACTIONS
            ),
            weights.recognition_target_ms,
            weights.recognition_max_score,
        )
        escalation = time_score(
            _first_result_time(patient_events, lambda e: e.detail.get("is_escalation_event") is True),
            weights.escalation_target_ms,
            weights.escalation_max_score,
        )
        treatment = time_score(
            _first_result_time(patient_events, lambda e: e.detail.get("is_treatment_event") is True),
            weights.treatment_target_ms,
            weights.treatment_max_score,
        )
    else:
        # Nothing time-critical to recognise
        recognition = weights.recognition_max_score
        escalation = weights.escalation_max_score
        treatment = weights.treatment_max_score

    outcome = outcome_score(patient, weights.outcome_max_score)
    scored_actions, actions_score = _score_actions(patient, patient_events, config)

    return ParticipantScore(
        user_id=user.id,
        user_name=user.name,
        patient_id=patient.id,
        patient_name=patient.name,
        patient_outcome=outcome,
        time_to_recognition=recognition,
        time_to_escalation=escalation,
        time_to_treatment=treatment,
        appropriate_actions=actions_score,
        total=outcome + recognition + escalation + treatment + actions_score,
        actions=scored_actions,
    )


def score_session(
    users: List[User],
    patients: List[Patient],
    events: List[EventLogEntry],
    config: ClinicalRulesConfig
) -> Tuple[List[ParticipantScore], int]:
    """
    Score every participant that has an assigned patient.

    Returns:
        (scores, team score), the team score being the rounded mean of all
        totals, or 0 when nobody was scored
    """
    by_id = {p.id: p for p in patients}
    scores: List[ParticipantScore] = []

    for user in users:
        if user.role != UserRole.PARTICIPANT:
            continue
        patient = by_id.get(user.assigned_patient_id) if user.assigned_patient_id else None
        if patient is None:
            logger.debug(f"Skipping unassigned participant {user.id}")
            continue
        scores.append(score_participant(user, patient, events, config))

    team_score = round_int(sum(s.total for s in scores) / len(scores)) if scores else 0
    return scores, team_score
