"""
Models package for the DKA training simulator.
"""

from .clinical_config import (
    ActionCategory,
    ActionDefinition,
    ClinicalRulesConfig,
    ConfigVersion,
    DeteriorationCurve,
    DeteriorationStage,
    DKATriggers,
    FetalStatus,
    PrescriptionType,
    ScoringWeights,
    VitalsSnapshot
)

from .scenario import (
    ScenarioDefinition,
    ScenarioPatientDef,
    ScenarioTimedEvent,
    TimedEventType
)

from .prescription import (
    FluidPrescription,
    InsulinPrescription,
    PotassiumPrescription,
    Prescription,
    PrescriptionAccuracy,
    PrescriptionFeedback,
    ValidationResult
)

from .patient import (
    InterventionEffect,
    InterventionType,
    Patient,
    PatientStatus,
    PendingAction,
    ResourceState
)

from .session import (
    DebriefData,
    EventLogEntry,
    EventLogType,
    ParticipantScore,
    ScoredAction,
    Session,
    SessionState,
    SessionStatus,
    User,
    UserRole
)

from .events import (
    AlertSeverity,
    SimEvent,
    SimEventType,
    ClockTickEvent,
    PatientArrivedEvent,
    VitalsUpdatedEvent,
    StatusChangedEvent,
    ActionPendingEvent,
    ActionResultEvent,
    EventLoggedEvent,
    ResourceChangedEvent,
    AlertFiredEvent,
    SessionStartedEvent,
    SessionPausedEvent,
    SessionEndedEvent
)

__all__ = [
    # Clinical config
    "ActionCategory",
    "ActionDefinition",
    "ClinicalRulesConfig",
    "ConfigVersion",
    "DeteriorationCurve",
    "DeteriorationStage",
    "DKATriggers",
    "FetalStatus",
    "PrescriptionType",
    "ScoringWeights",
    "VitalsSnapshot",

    # Scenario
    "ScenarioDefinition",
    "ScenarioPatientDef",
    "ScenarioTimedEvent",
    "TimedEventType",

    # Prescriptions
    "FluidPrescription",
    "InsulinPrescription",
    "PotassiumPrescription",
    "Prescription",
    "PrescriptionAccuracy",
    "PrescriptionFeedback",
    "ValidationResult",

    # Patient
    "InterventionEffect",
    "InterventionType",
    "Patient",
    "PatientStatus",
    "PendingAction",
    "ResourceState",

    # Session
    "DebriefData",
    "EventLogEntry",
    "EventLogType",
    "ParticipantScore",
    "ScoredAction",
    "Session",
    "SessionState",
    "SessionStatus",
    "User",
    "UserRole",

    # Events
    "AlertSeverity",
    "SimEvent",
    "SimEventType",
    "ClockTickEvent",
    "PatientArrivedEvent",
    "VitalsUpdatedEvent",
    "StatusChangedEvent",
    "ActionPendingEvent",
    "ActionResultEvent",
    "EventLoggedEvent",
    "ResourceChangedEvent",
    "AlertFiredEvent",
    "SessionStartedEvent",
    "SessionPausedEvent",
    "SessionEndedEvent"
]
