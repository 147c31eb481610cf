"""Read-only progress, availability and navigation helpers over a running wizard."""

import inspect
import logging
from collections import deque
from typing import Dict, List, Optional, TYPE_CHECKING

from .errors import ResolutionError
from .schema import Progress

if TYPE_CHECKING:
    from .engine import WizardEngine

logger = logging.getLogger(__name__)


class WizardHelpers:
    """
    Derived views of a wizard: step order, completion, availability and progress.

    Availability is computed synchronously. Entry guards that return an
    awaitable cannot be answered here, so such steps count as available and
    the guard is enforced when the transition runs.
    """

    def __init__(self, engine: 'WizardEngine'):
        self.engine = engine

    # Order

    def _index(self, ordered: List[str], name: str) -> int:
        self.engine.graph.get(name)
        return ordered.index(name)

    def ordered_steps(self) -> List[str]:
        """
        Steps in flow order.

        The graph's explicit order when it has one. Otherwise breadth-first
        from the initial step over static successors, followed by steps only
        reachable through dynamic resolvers, in definition order.
        """
        graph = self.engine.graph
        if graph.order is not None:
            ordered = graph.order
            return ordered + [name for name in graph.names() if name not in ordered]

        ordered = []
        seen = {graph.initial_step}
        queue = deque([graph.initial_step])

        while queue:
            name = queue.popleft()
            ordered.append(name)
            definition = graph.get(name)
            if definition.is_dynamic:
                continue
            for target in definition.next:
                if target not in seen:
                    seen.add(target)
                    queue.append(target)

        ordered.extend(name for name in graph.names() if name not in seen)
        return ordered

    def required_steps(self) -> List[str]:
        return [name for name in self.ordered_steps() if self.engine.graph.get(name).required]

    # Completion

    def is_step_satisfied(self, name: str) -> bool:
        """Terminated and skipped steps count as done; errored and loading ones do not."""
        status = self.engine.get_status(name)
        if status in ('terminated', 'skipped'):
            return True
        if status in ('error', 'loading'):
            return False
        return self.engine.is_step_complete(name)

    def completed_steps(self) -> List[str]:
        return [name for name in self.ordered_steps() if self.is_step_satisfied(name)]

    def remaining_steps(self) -> List[str]:
        return [name for name in self.ordered_steps() if not self.is_step_satisfied(name)]

    def remaining_required_count(self) -> int:
        return len([name for name in self.required_steps() if not self.is_step_satisfied(name)])

    def first_incomplete_step(self) -> Optional[str]:
        remaining = self.remaining_steps()
        return remaining[0] if remaining else None

    def last_completed_step(self) -> Optional[str]:
        """Nearest satisfied step at or before the current one in step order."""
        ordered = self.ordered_steps()
        index = ordered.index(self.engine.current_step)
        for name in reversed(ordered[:index + 1]):
            if self.is_step_satisfied(name):
                return name
        return None

    def progress(self, weights: Optional[Dict[str, float]] = None) -> Progress:
        """
        Share of ordered steps that are satisfied.

        Args:
            weights: Optional per-step weights overriding each step's own weight

        Returns:
            Progress with ratio, rounded percent and a 'done / total' label
        """
        ordered = self.ordered_steps()
        completed = set(self.completed_steps())
        weights = weights or {}

        def weight_of(name: str) -> float:
            return weights.get(name, self.engine.graph.get(name).weight)

        total_weight = sum(weight_of(name) for name in ordered)
        done_weight = sum(weight_of(name) for name in ordered if name in completed)
        ratio = done_weight / total_weight if total_weight > 0 else 0.0

        return Progress(
            ratio=ratio, percent=round(ratio * 100), label=f"{len(completed)} / {len(ordered)}"
        )

    def is_complete(self) -> bool:
        """True when every required step is satisfied."""
        return all(self.is_step_satisfied(name) for name in self.required_steps())

    # Availability

    def prerequisites_for(self, name: str) -> List[str]:
        return self.engine.graph.prerequisites_for(name)

    def is_reachable(self, name: str) -> bool:
        """True when every prerequisite of the step is complete."""
        return all(self.engine.is_step_complete(required) for required in self.prerequisites_for(name))

    def can_enter(self, name: str) -> bool:
        """
        Whether a step is available right now.

        A step is unavailable when an earlier required step is unfinished,
        when its prerequisites are incomplete, or when its entry guard says no.
        """
        ordered = self.ordered_steps()
        current = self.engine.current_step

        for earlier in ordered[:self._index(ordered, name)]:
            if earlier == current or not self.engine.graph.get(earlier).required:
                continue
            if not self.is_step_satisfied(earlier):
                return False

        if not self.is_reachable(name):
            return False

        definition = self.engine.graph.get(name)
        if not definition.declares('can_enter'):
            return True

        try:
            allowed = definition.can_enter(
                self.engine.get_step_data(current), self.engine.get_context(), current
            )
        except Exception as e:
            logger.debug(f"Entry guard of '{name}' raised during availability check: {e}")
            return False

        if inspect.isawaitable(allowed):
            if inspect.iscoroutine(allowed):
                allowed.close()
            return True
        return bool(allowed)

    def available_steps(self) -> List[str]:
        return [name for name in self.ordered_steps() if self.can_enter(name)]

    def unavailable_steps(self) -> List[str]:
        return [name for name in self.ordered_steps() if not self.can_enter(name)]

    def find_next_available(self, from_step: Optional[str] = None) -> Optional[str]:
        """First available step after from_step (default: current) in step order."""
        ordered = self.ordered_steps()
        start = self._index(ordered, from_step or self.engine.current_step) + 1
        for name in ordered[start:]:
            if self.can_enter(name):
                return name
        return None

    def find_prev_available(self, from_step: Optional[str] = None) -> Optional[str]:
        ordered = self.ordered_steps()
        end = self._index(ordered, from_step or self.engine.current_step)
        for name in reversed(ordered[:end]):
            if self.can_enter(name):
                return name
        return None

    def jump_to_next_required(self) -> Optional[str]:
        ordered = self.ordered_steps()
        start = ordered.index(self.engine.current_step) + 1
        for name in ordered[start:]:
            if self.engine.graph.get(name).required and self.can_enter(name):
                return name
        return None

    # Navigation

    def successors_of(self, name: str) -> List[str]:
        """Successors of any step given its stored data; empty if they cannot be resolved."""
        try:
            return self.engine.graph.successors(
                name, self.engine.get_step_data(name), self.engine.get_context()
            )
        except ResolutionError as e:
            logger.debug(f"Could not resolve successors of '{name}': {e}")
            return []

    def can_go_next(self) -> bool:
        """True when some successor of the current step is available."""
        return any(self.can_enter(name) for name in self.successors_of(self.engine.current_step))

    def can_go_back(self) -> bool:
        return self.engine.back_depth > 0

    def can_go_to(self, name: str) -> bool:
        """True for available steps without a status marker."""
        if self.engine.get_status(name) is not None:
            return False
        return self.can_enter(name)

    # Diagnostics

    def step_attempts(self, name: str) -> int:
        return self.engine.get_runtime(name).attempts

    def step_duration(self, name: str) -> Optional[float]:
        """Seconds between the last entry and the last exit of a step, if it has left since."""
        runtime = self.engine.get_runtime(name)
        if runtime.started_at is None or runtime.finished_at is None:
            return None
        if runtime.finished_at < runtime.started_at:
            return None
        return runtime.finished_at - runtime.started_at
