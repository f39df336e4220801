"""
Clinical config and scenario catalog routes.
"""
from fastapi import APIRouter, HTTPException

from dkasim.engine.simulation_engine import get_simulation_engine

router = APIRouter()


@router.get("/latest")
async def get_latest_config():
    """The highest clinical config version."""
    config = get_simulation_engine().repository.get_latest_config()
    if not config:
        raise HTTPException(status_code=404, detail="No clinical config found.")
    return config.model_dump(mode="json")


@router.get("/versions")
async def list_config_versions():
    configs = get_simulation_engine().repository.get_all_configs()
    return [
        {"id": c.id, "version": c.version, "label": c.label, "created_at": c.created_at.isoformat()}
        for c in sorted(configs, key=lambda c: c.version)
    ]


@router.get("/scenarios")
async def list_scenarios():
    return [s.to_summary() for s in get_simulation_engine().repository.get_all_scenarios()]


@router.get("/scenarios/{scenario_id}")
async def get_scenario(scenario_id: str):
    scenario = get_simulation_engine().repository.get_scenario(scenario_id)
    if not scenario:
        raise HTTPException(status_code=404, detail="Scenario not found.")
    return scenario.model_dump(mode="json")
