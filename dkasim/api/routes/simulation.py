"""
Simulation routes for the DKA simulator API

Clock control, participant actions and facilitator commands for a running
session. Business rejections come back as 400 with the rejection message.
"""
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import Any, Dict, Literal, Optional

from dkasim.core.exceptions import ConfigNotFoundError, SessionNotFoundError
from dkasim.engine.simulation_engine import get_simulation_engine
from dkasim.models.patient import InterventionType
from dkasim.models.prescription import Prescription

router = APIRouter()


class SubmitActionRequest(BaseModel):
    """Participant action, with a prescription for quantitative orders."""
    patient_id: str
    user_id: str
    action_key: str
    prescription: Optional[Prescription] = None


class ToggleResourceRequest(BaseModel):
    resource: Literal["ketometer", "labs", "staff"]
    available: bool


class InjectEventRequest(BaseModel):
    type: str = Field(default="message", description="Log category for the injection")
    message: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class InterventionRequest(BaseModel):
    patient_id: str
    type: InterventionType
    slow_factor: Optional[float] = Field(None, gt=0)


def _require_session(session_id: str):
    session = get_simulation_engine().repository.get_session(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    return session


def _public(session) -> Dict[str, Any]:
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session.to_public()


@router.post("/{session_id}/start")
async def start_simulation(session_id: str):
    """Start the simulated clock for a session."""
    return _public(get_simulation_engine().start_simulation(session_id))


@router.post("/{session_id}/pause")
async def pause_simulation(session_id: str):
    return _public(get_simulation_engine().pause_simulation(session_id))


@router.post("/{session_id}/resume")
async def resume_simulation(session_id: str):
    return _public(get_simulation_engine().resume_simulation(session_id))


@router.post("/{session_id}/end")
async def end_simulation(session_id: str):
    """End the session (idempotent) and return the debrief."""
    session = _require_session(session_id)
    debrief = get_simulation_engine().end_simulation(session_id)
    if debrief is None:
        raise ConfigNotFoundError(session.config_id)
    return debrief.to_public()


@router.post("/{session_id}/actions")
async def submit_action(session_id: str, request: SubmitActionRequest):
    """
    Submit a participant action.

    Returns the pending entry, its delay and any prescription feedback.
    """
    result = get_simulation_engine().submit_action(
        session_id,
        request.patient_id,
        request.user_id,
        request.action_key,
        request.prescription,
    )
    if result is None:
        raise HTTPException(status_code=404, detail="Session, patient or user not found")
    if result.error:
        raise HTTPException(status_code=400, detail=result.error)

    return {
        "pending": result.pending.model_dump(mode="json"),
        "delay_ms": result.delay_ms,
        "prescription_feedback": (
            result.prescription_feedback.model_dump(mode="json")
            if result.prescription_feedback else None
        ),
    }


@router.get("/{session_id}/patients/{patient_id}/actions/{action_key}")
async def check_action(session_id: str, patient_id: str, action_key: str):
    """Whether an action could be submitted right now, and why not."""
    eligibility = get_simulation_engine().can_perform_action(session_id, patient_id, action_key)
    if eligibility is None:
        raise HTTPException(status_code=404, detail="Session or patient not found")
    return eligibility.model_dump()


@router.post("/{session_id}/resources")
async def toggle_resource(session_id: str, request: ToggleResourceRequest):
    _require_session(session_id)
    state = get_simulation_engine().toggle_resource(session_id, request.resource, request.available)
    if state is None:
        raise HTTPException(status_code=400, detail=f"Cannot change resource: {request.resource}")
    return state.model_dump()


@router.post("/{session_id}/inject")
async def inject_event(session_id: str, request: InjectEventRequest):
    """Inject a facilitator event into the log; a message also raises an alert."""
    event = {"type": request.type, **request.payload}
    if request.message:
        event["message"] = request.message

    _require_session(session_id)
    entry = get_simulation_engine().inject_event(session_id, event)
    return entry.model_dump(mode="json")


@router.post("/{session_id}/interventions")
async def apply_intervention(session_id: str, request: InterventionRequest):
    patient = get_simulation_engine().apply_intervention(
        session_id, request.patient_id, request.type, request.slow_factor
    )
    if patient is None:
        raise HTTPException(status_code=404, detail="Session or patient not found")
    return patient.model_dump(mode="json")
