"""Wizard engine - step graph, transition state machine and supporting stores."""

from .engine import WizardEngine, StepActions, create_wizard
from .errors import (
    WizardError,
    DefinitionError,
    ResolutionError,
    TerminalStepError,
    AmbiguousTransitionError,
    GuardRejectedError,
    ValidationError,
    HookError,
    ConcurrentTransitionError,
    TransitionCancelledError,
)
from .graph import StepGraph
from .helpers import WizardHelpers
from .loader import SpecLoader
from .persistence import WizardPersistence, YamlFilePersistence, MemoryPersistence
from .schema import (
    StepDefinition,
    StepMeta,
    WizardOptions,
    TransitionResult,
    WizardEvent,
    WizardSnapshot,
    WizardGraph,
    LayoutResult,
    Progress,
)

__all__ = [
    'WizardEngine',
    'StepActions',
    'create_wizard',
    'StepGraph',
    'WizardHelpers',
    'SpecLoader',
    'WizardPersistence',
    'YamlFilePersistence',
    'MemoryPersistence',
    'StepDefinition',
    'StepMeta',
    'WizardOptions',
    'TransitionResult',
    'WizardEvent',
    'WizardSnapshot',
    'WizardGraph',
    'LayoutResult',
    'Progress',
    'WizardError',
    'DefinitionError',
    'ResolutionError',
    'TerminalStepError',
    'AmbiguousTransitionError',
    'GuardRejectedError',
    'ValidationError',
    'HookError',
    'ConcurrentTransitionError',
    'TransitionCancelledError',
]
