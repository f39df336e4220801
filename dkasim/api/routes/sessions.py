"""
Session routes for the DKA simulator API

Session creation, joining, patient assignment, state snapshots and debrief.
"""
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import Optional

from dkasim.core.exceptions import ConfigNotFoundError, NotFoundError, SessionNotFoundError
from dkasim.engine.simulation_engine import get_simulation_engine
from dkasim.models.session import SessionStatus

router = APIRouter()


class CreateSessionRequest(BaseModel):
    scenario_id: str
    pin: str = Field(..., min_length=4, max_length=8)
    speed_factor: Optional[float] = Field(None, gt=0, le=10)


class JoinSessionRequest(BaseModel):
    code: str = Field(..., min_length=4, max_length=12)
    name: str = Field(..., min_length=1, max_length=50)


class FacilitatorAuthRequest(BaseModel):
    pin: str


class AssignPatientRequest(BaseModel):
    user_id: str
    patient_id: str


def _require_session(session_id: str):
    session = get_simulation_engine().repository.get_session(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    return session


@router.post("")
async def create_session(request: CreateSessionRequest):
    """Create a session on the latest clinical config (facilitator)."""
    engine = get_simulation_engine()
    created = engine.create_session(request.scenario_id, request.pin, request.speed_factor)
    if created is None:
        raise NotFoundError("Scenario or clinical config", request.scenario_id)

    return {
        "session": created["session"].to_public(),
        "user_id": created["facilitator"].id,
    }


@router.get("/code/{code}")
async def get_session_by_code(code: str):
    engine = get_simulation_engine()
    session = engine.repository.get_session_by_code(code.upper())
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found. Check your code.")
    return session.to_public()


@router.post("/join")
async def join_session(request: JoinSessionRequest):
    """Join a session as a participant using its code."""
    result = get_simulation_engine().join_session(request.code, request.name)
    if result is None:
        raise HTTPException(status_code=404, detail="Session not found. Check your code.")
    if result.error:
        raise HTTPException(status_code=400, detail=result.error)
    return result.user.model_dump(mode="json")


@router.get("/{session_id}")
async def get_session(session_id: str):
    return _require_session(session_id).to_public()


@router.post("/{session_id}/facilitator/auth")
async def authenticate_facilitator(session_id: str, request: FacilitatorAuthRequest):
    """Check the facilitator PIN (plain comparison)."""
    ok = get_simulation_engine().authenticate_facilitator(session_id, request.pin)
    if ok is None:
        raise SessionNotFoundError(session_id)
    if not ok:
        raise HTTPException(status_code=403, detail="Incorrect PIN.")
    return {"status": "authenticated"}


@router.get("/{session_id}/state")
async def get_session_state(session_id: str):
    """Full snapshot: session, users, patients, log, resources, scenario, actions."""
    state = get_simulation_engine().get_session_state(session_id)
    if state is None:
        raise SessionNotFoundError(session_id)
    return state.to_public()


@router.post("/{session_id}/assign")
async def assign_patient(session_id: str, request: AssignPatientRequest):
    _require_session(session_id)
    user = get_simulation_engine().assign_patient(session_id, request.user_id, request.patient_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User or patient not found in this session")
    return user.model_dump(mode="json")


@router.post("/{session_id}/auto-assign")
async def auto_assign(session_id: str):
    """Round-robin participants onto patients."""
    users = get_simulation_engine().auto_assign(session_id)
    if users is None:
        raise SessionNotFoundError(session_id)
    return {"assignments": [{"user_id": u.id, "patient_id": u.assigned_patient_id} for u in users]}


@router.get("/{session_id}/debrief")
async def get_debrief(session_id: str):
    """Scores, final patient states and the full event log of an ended session."""
    session = _require_session(session_id)
    if session.status != SessionStatus.ENDED:
        raise HTTPException(status_code=400, detail="Session has not ended.")

    debrief = get_simulation_engine().build_debrief(session_id)
    if debrief is None:
        raise ConfigNotFoundError(session.config_id)
    return debrief.to_public()
