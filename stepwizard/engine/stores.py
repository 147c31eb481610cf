"""Context and per-step data stores."""

import copy
from typing import Dict, Any, Callable, Mapping, Optional, Union


ContextUpdate = Union[Mapping[str, Any], Callable[[Dict[str, Any]], None]]


class ContextStore:
    """
    Holds the single context dict shared by every step.

    The dict is updated in place, so anyone holding a reference sees later
    updates.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._initial = copy.deepcopy(dict(initial or {}))
        self._context: Dict[str, Any] = copy.deepcopy(self._initial)

    @property
    def value(self) -> Dict[str, Any]:
        return self._context

    def update(self, partial: ContextUpdate) -> Dict[str, Any]:
        """Shallow-merge a mapping into the context, or apply an updater.

        Args:
            partial: Keys to replace, or a callable that mutates the context

        Returns:
            The (same) context dict
        """
        if callable(partial):
            partial(self._context)
        else:
            self._context.update(partial)
        return self._context

    def replace(self, value: Mapping[str, Any]) -> None:
        """Swap contents wholesale, keeping the dict identity."""
        self._context.clear()
        self._context.update(value)

    def reset(self) -> None:
        self.replace(copy.deepcopy(self._initial))


class StepDataStore:
    """Last committed payload per step. Entries accumulate over the run."""

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def get(self, name: str) -> Any:
        return self._data.get(name)

    def has(self, name: str) -> bool:
        return name in self._data

    def set(self, name: str, data: Any) -> None:
        self._data[name] = data

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._data)

    def replace(self, data: Mapping[str, Any]) -> None:
        self._data = dict(data)

    def clear(self) -> None:
        self._data.clear()
