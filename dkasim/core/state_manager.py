"""
State management for the DKA simulator.

SimulationRepository is the keyed-storage interface the engine depends on;
StateManager is the in-memory implementation used by the server and tests.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from dkasim.models.clinical_config import ConfigVersion
from dkasim.models.patient import Patient, ResourceState
from dkasim.models.scenario import ScenarioDefinition
from dkasim.models.session import EventLogEntry, Session, User

logger = logging.getLogger(__name__)


class SimulationRepository(ABC):
    """Keyed lookups and append-only event log. No transaction semantics."""

    # Sessions
    @abstractmethod
    def add_session(self, session: Session) -> Session: ...

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[Session]: ...

    @abstractmethod
    def get_session_by_code(self, code: str) -> Optional[Session]: ...

    @abstractmethod
    def update_session(self, session_id: str, **updates: Any) -> Optional[Session]: ...

    # Users
    @abstractmethod
    def add_user(self, user: User) -> User: ...

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def get_users_by_session(self, session_id: str) -> List[User]: ...

    @abstractmethod
    def update_user(self, user_id: str, **updates: Any) -> Optional[User]: ...

    # Patients
    @abstractmethod
    def add_patient(self, patient: Patient) -> Patient: ...

    @abstractmethod
    def get_patient(self, patient_id: str) -> Optional[Patient]: ...

    @abstractmethod
    def get_patients_by_session(self, session_id: str) -> List[Patient]: ...

    @abstractmethod
    def save_patient(self, patient: Patient) -> Patient: ...

    # Event log
    @abstractmethod
    def append_event(self, entry: EventLogEntry) -> EventLogEntry: ...

    @abstractmethod
    def get_events_by_session(self, session_id: str) -> List[EventLogEntry]: ...

    # Resources
    @abstractmethod
    def set_resources(self, session_id: str, state: ResourceState) -> None: ...

    @abstractmethod
    def get_resources(self, session_id: str) -> Optional[ResourceState]: ...

    # Scenarios and configs
    @abstractmethod
    def add_scenario(self, scenario: ScenarioDefinition) -> None: ...

    @abstractmethod
    def get_scenario(self, scenario_id: str) -> Optional[ScenarioDefinition]: ...

    @abstractmethod
    def get_all_scenarios(self) -> List[ScenarioDefinition]: ...

    @abstractmethod
    def add_config(self, config: ConfigVersion) -> None: ...

    @abstractmethod
    def get_config(self, config_id: str) -> Optional[ConfigVersion]: ...

    @abstractmethod
    def get_all_configs(self) -> List[ConfigVersion]: ...

    def get_latest_config(self) -> Optional[ConfigVersion]:
        """Highest version number wins."""
        configs = self.get_all_configs()
        if not configs:
            return None
        return max(configs, key=lambda c: c.version)

    def update_resources(self, session_id: str, **updates: Any) -> Optional[ResourceState]:
        current = self.get_resources(session_id)
        if current is None:
            return None
        updated = current.model_copy(update=updates)
        self.set_resources(session_id, updated)
        return updated


class StateManager(SimulationRepository):
    """
    In-memory, dict-backed repository.

    Maintains:
    - Sessions, users and patients keyed by id
    - One append-only event list (insertion order preserved)
    - Resource state per session
    - Scenario and clinical config catalogs
    """

    def __init__(self):
        """Initialize the state manager."""
        self._sessions: Dict[str, Session] = {}
        self._users: Dict[str, User] = {}
        self._patients: Dict[str, Patient] = {}
        self._events: List[EventLogEntry] = []
        self._resources: Dict[str, ResourceState] = {}
        self._scenarios: Dict[str, ScenarioDefinition] = {}
        self._configs: Dict[str, ConfigVersion] = {}

        logger.info("StateManager initialized")

    # ========================
    # Session Management
    # ========================

    def add_session(self, session: Session) -> Session:
        self._sessions[session.id] = session
        logger.info(f"Added session: {session.id} ({session.code})")
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def get_session_by_code(self, code: str) -> Optional[Session]:
        return next((s for s in self._sessions.values() if s.code == code), None)

    def update_session(self, session_id: str, **updates: Any) -> Optional[Session]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        updated = session.model_copy(update=updates)
        self._sessions[session_id] = updated
        return updated

    # ========================
    # User Management
    # ========================

    def add_user(self, user: User) -> User:
        self._users[user.id] = user
        logger.debug(f"Added user: {user.id} to session {user.session_id}")
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def get_users_by_session(self, session_id: str) -> List[User]:
        return [u for u in self._users.values() if u.session_id == session_id]

    def update_user(self, user_id: str, **updates: Any) -> Optional[User]:
        user = self._users.get(user_id)
        if user is None:
            return None
        updated = user.model_copy(update=updates)
        self._users[user_id] = updated
        return updated

    # ========================
    # Patient Management
    # ========================

    def add_patient(self, patient: Patient) -> Patient:
        self._patients[patient.id] = patient
        logger.debug(f"Added patient: {patient.id} ({patient.scenario_patient_key})")
        return patient

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        return self._patients.get(patient_id)

    def get_patients_by_session(self, session_id: str) -> List[Patient]:
        return [p for p in self._patients.values() if p.session_id == session_id]

    def save_patient(self, patient: Patient) -> Patient:
        self._patients[patient.id] = patient
        return patient

    # ========================
    # Event Log
    # ========================

    def append_event(self, entry: EventLogEntry) -> EventLogEntry:
        self._events.append(entry)
        return entry

    def get_events_by_session(self, session_id: str) -> List[EventLogEntry]:
        return [e for e in self._events if e.session_id == session_id]

    # ========================
    # Resources
    # ========================

    def set_resources(self, session_id: str, state: ResourceState) -> None:
        self._resources[session_id] = state

    def get_resources(self, session_id: str) -> Optional[ResourceState]:
        return self._resources.get(session_id)

    # ========================
    # Scenarios and Configs
    # ========================

    def add_scenario(self, scenario: ScenarioDefinition) -> None:
        self._scenarios[scenario.id] = scenario
        logger.info(f"Added scenario: {scenario.id}")

    def get_scenario(self, scenario_id: str) -> Optional[ScenarioDefinition]:
        return self._scenarios.get(scenario_id)

    def get_all_scenarios(self) -> List[ScenarioDefinition]:
        return list(self._scenarios.values())

    def add_config(self, config: ConfigVersion) -> None:
        self._configs[config.id] = config
        logger.info(f"Added clinical config version {config.version}: {config.label}")

    def get_config(self, config_id: str) -> Optional[ConfigVersion]:
        return self._configs.get(config_id)

    def get_all_configs(self) -> List[ConfigVersion]:
        return sorted(self._configs.values(), key=lambda c: c.version, reverse=True)

    # ========================
    # State Summary
    # ========================

    def get_state_summary(self) -> Dict[str, Any]:
        """Get a summary of current state for debugging/monitoring."""
        return {
            "sessions": len(self._sessions),
            "users": len(self._users),
            "patients": len(self._patients),
            "events": len(self._events),
            "scenarios": list(self._scenarios.keys()),
            "config_versions": [c.version for c in self.get_all_configs()],
        }


# Singleton instance
_state_manager: Optional[StateManager] = None


def get_state_manager() -> StateManager:
    """Get the singleton state manager instance."""
    global _state_manager
    if _state_manager is None:
        _state_manager = StateManager()
    return _state_manager
