"""Error ledger and per-step runtime markers."""

import time
from typing import Dict, Any, Optional

from .schema import StepRuntime, StepStatus


class ErrorLedger:
    """
    Last error recorded against each step.

    Error values are opaque: validator exceptions, hook failures or anything
    a caller injects through mark_error.
    """

    def __init__(self):
        self._errors: Dict[str, Any] = {}

    def record(self, name: str, error: Any) -> None:
        self._errors[name] = error

    def clear(self, name: str) -> bool:
        """Remove the error for a step. Returns True if one was present."""
        if name not in self._errors:
            return False
        del self._errors[name]
        return True

    def get(self, name: str) -> Optional[Any]:
        return self._errors.get(name)

    def has(self, name: str) -> bool:
        return name in self._errors

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._errors)

    def replace(self, errors: Dict[str, Any]) -> None:
        self._errors = dict(errors)

    def reset(self) -> None:
        self._errors.clear()


class StepRuntimeTracker:
    """Status markers, visit counts and timestamps per step."""

    def __init__(self):
        self._runtime: Dict[str, StepRuntime] = {}

    def get(self, name: str) -> StepRuntime:
        return self._runtime.get(name) or StepRuntime()

    def status(self, name: str) -> Optional[StepStatus]:
        return self.get(name).status

    def set_status(self, name: str, status: Optional[StepStatus]) -> Optional[StepStatus]:
        """Set or clear the status marker.

        Returns:
            The previous status
        """
        runtime = self.get(name)
        previous = runtime.status
        self._runtime[name] = runtime.model_copy(update={'status': status})
        return previous

    def record_exit(self, name: str) -> None:
        runtime = self.get(name)
        self._runtime[name] = runtime.model_copy(update={
            'attempts': runtime.attempts + 1,
            'finished_at': time.time(),
        })

    def record_enter(self, name: str) -> None:
        runtime = self.get(name)
        self._runtime[name] = runtime.model_copy(update={
            'attempts': runtime.attempts + 1,
            'started_at': time.time(),
        })

    def as_dict(self) -> Dict[str, StepRuntime]:
        return dict(self._runtime)

    def replace(self, runtime: Dict[str, StepRuntime]) -> None:
        self._runtime = dict(runtime)

    def reset(self) -> None:
        self._runtime.clear()
