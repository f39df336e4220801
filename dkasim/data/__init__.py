"""
Default clinical rules and scenarios, loaded into a repository at startup.
"""

import logging
import uuid
from pathlib import Path
from typing import List, Optional, Union

from dkasim.core.config import Config
from dkasim.core.state_manager import SimulationRepository
from dkasim.models.clinical_config import ClinicalRulesConfig, ConfigVersion
from dkasim.models.scenario import ScenarioDefinition

logger = logging.getLogger(__name__)

PACKAGE_DATA_DIR = Path(__file__).parent
CLINICAL_RULES_FILE = "default_clinical_rules.json"
SCENARIOS_DIR = "scenarios"


def load_clinical_config(path: Union[str, Path]) -> ClinicalRulesConfig:
    return ClinicalRulesConfig.model_validate_json(Path(path).read_text(encoding="utf-8"))


def load_scenario(path: Union[str, Path]) -> ScenarioDefinition:
    return ScenarioDefinition.model_validate_json(Path(path).read_text(encoding="utf-8"))


def seed_data(
    repository: SimulationRepository,
    data_dir: Optional[Union[str, Path]] = None
) -> ConfigVersion:
    """
    Load the default clinical config (as version 1) and every scenario file.

    Args:
        repository: Repository to seed
        data_dir: Directory holding the rules file and scenarios/; defaults
            to DKASIM_DATA_DIR, then to the packaged data

    Returns:
        The stored config version
    """
    base = Path(data_dir or Config.DATA_DIR or PACKAGE_DATA_DIR)
    logger.info(f"Seeding default data from {base}")

    config_version = ConfigVersion(
        id=str(uuid.uuid4()),
        version=1,
        label="Default Training Config v1",
        config=load_clinical_config(base / CLINICAL_RULES_FILE),
    )
    repository.add_config(config_version)
    logger.info(f"Config version {config_version.version} loaded")

    scenarios: List[ScenarioDefinition] = []
    for path in sorted((base / SCENARIOS_DIR).glob("*.json")):
        scenario = load_scenario(path)
        repository.add_scenario(scenario)
        scenarios.append(scenario)
        logger.info(f"Scenario \"{scenario.name}\" loaded")

    logger.info(f"Seed complete: {len(scenarios)} scenarios")
    return config_version
