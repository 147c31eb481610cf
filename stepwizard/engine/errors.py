"""Exception hierarchy for the wizard engine."""

from typing import Any, Optional


class WizardError(Exception):
    """Base class for all wizard engine errors."""


class DefinitionError(WizardError):
    """Step graph is malformed. Raised at construction time."""


class ResolutionError(WizardError):
    """Successor resolution produced no valid step."""

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step


class TerminalStepError(ResolutionError):
    """next() was called on a step with no declared successors."""


class AmbiguousTransitionError(WizardError):
    """A step has several static successors and no target was given."""

    def __init__(self, step: str, candidates):
        super().__init__(
            f"Step '{step}' has {len(candidates)} successors {list(candidates)}; "
            f"an explicit target is required"
        )
        self.step = step
        self.candidates = list(candidates)


class GuardRejectedError(WizardError):
    """can_exit or can_enter returned a falsy value.

    Attributes:
        phase: 'exit' or 'enter'
        step: Step whose guard rejected the transition
        target: Step the transition was heading to
    """

    def __init__(self, phase: str, step: str, target: str):
        if phase == 'exit':
            message = f"Cannot exit step '{step}' towards '{target}'"
        else:
            message = f"Cannot enter step '{target}' from '{step}'"
        super().__init__(message)
        self.phase = phase
        self.step = step
        self.target = target


class ValidationError(WizardError):
    """The step validator raised. The original error is kept in ``error``."""

    def __init__(self, step: str, error: Any):
        super().__init__(f"Validation failed for step '{step}': {error}")
        self.step = step
        self.error = error


class HookError(WizardError):
    """A before_exit hook or a guard raised instead of returning.

    Attributes:
        step: Step owning the failing callback
        phase: 'before_exit', 'can_exit' or 'can_enter'
        error: The original exception
    """

    def __init__(self, step: str, phase: str, error: BaseException):
        super().__init__(f"{phase} hook of step '{step}' failed: {error}")
        self.step = step
        self.phase = phase
        self.error = error


class ConcurrentTransitionError(WizardError):
    """A mutation was requested while a transition is in flight."""


class TransitionCancelledError(WizardError):
    """The in-flight transition was cancelled before commit."""

    def __init__(self, step: str, target: str):
        super().__init__(f"Transition '{step}' -> '{target}' was cancelled")
        self.step = step
        self.target = target
