"""Core wizard engine - the step transition state machine."""

import asyncio
import copy
import inspect
import logging
from collections import deque
from typing import Dict, Any, Callable, List, Mapping, NamedTuple, Optional, Union

from .errors import (
    AmbiguousTransitionError,
    ConcurrentTransitionError,
    GuardRejectedError,
    HookError,
    ResolutionError,
    TerminalStepError,
    TransitionCancelledError,
    ValidationError,
)
from .events import EventDispatcher, Listener
from .graph import StepGraph
from .helpers import WizardHelpers
from .ledger import ErrorLedger, StepRuntimeTracker
from .persistence import WizardPersistence
from .schema import (
    StepDefinition,
    StepRuntime,
    StepStatus,
    TransitionResult,
    WizardEvent,
    WizardOptions,
    WizardSnapshot,
)
from .stores import ContextStore, ContextUpdate, StepDataStore

logger = logging.getLogger(__name__)


async def _resolve(value: Any) -> Any:
    """Await value if the callback returned an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


class _UndoEntry(NamedTuple):
    step: str
    context: Dict[str, Any]
    data: Dict[str, Any]


class _Transition:
    """Bookkeeping for one requested transition."""

    def __init__(self, kind: str, target: Optional[str] = None, data: Any = None):
        self.kind = kind
        self.target = target
        self.data = data
        self.from_step: Optional[str] = None
        self.pending: Any = None
        self.cancelled = False


class StepActions:
    """
    Mutation handles passed to before_exit and load hooks.

    Writes go straight to the stores and are not rolled back if the
    transition fails afterwards.
    """

    def __init__(self, engine: 'WizardEngine', transition: _Transition):
        self._engine = engine
        self._transition = transition

    @property
    def step(self) -> str:
        return self._transition.from_step

    @property
    def target(self) -> str:
        return self._transition.target

    @property
    def data(self) -> Any:
        return self._transition.pending

    @property
    def context(self) -> Dict[str, Any]:
        return self._engine.get_context()

    def update_context(self, partial: ContextUpdate) -> None:
        self._engine._apply_context_update(partial)

    def set_step_data(self, name: str, data: Any) -> None:
        """Write step data. Writing the leaving step also replaces the pending data."""
        self._engine._write_step_data(name, data)
        if name == self._transition.from_step:
            self._transition.pending = data

    def get_step_data(self, name: str) -> Any:
        return self._engine.get_step_data(name)


class WizardEngine:
    """
    Drives a wizard through a StepGraph.

    Key responsibilities:
    - Resolve successors (static or dynamic)
    - Run exit guard, before_exit hook, validator and entry guard in order
    - Commit current step, history, step data and error ledger together
    - Serialize transitions through a single FIFO gate
    - Notify subscribers of committed facts

    A failed transition never changes the current step or the history.
    Context and step data written by a before_exit hook before a later
    failure are kept.
    """

    def __init__(
        self,
        graph: StepGraph,
        initial_context: Optional[Mapping[str, Any]] = None,
        options: Optional[WizardOptions] = None,
        persistence: Optional[WizardPersistence] = None,
    ):
        """
        Initialize the wizard engine.

        Args:
            graph: Step graph to drive
            initial_context: Shared context the run starts with (copied)
            options: Engine options (default: WizardOptions())
            persistence: Optional adapter receiving a snapshot after every change
        """
        self.graph = graph
        self.options = options or WizardOptions()
        self.persistence = persistence
        self.helpers = WizardHelpers(self)

        self._context = ContextStore(initial_context)
        self._data = StepDataStore()
        self._errors = ErrorLedger()
        self._runtime = StepRuntimeTracker()
        self._events = EventDispatcher()
        self._undo: deque = deque(maxlen=self.options.max_history_size)
        self._gate = asyncio.Lock()
        self._active: Optional[_Transition] = None
        self._deferred: List[WizardEvent] = []
        self._loading: Optional[str] = None

        self._current_step = graph.initial_step
        self._history: List[str] = []
        self._enter_initial_step()

    def _enter_initial_step(self) -> None:
        initial = self.graph.initial_step
        self._current_step = initial
        self._history = [initial]
        self._seed_step_data(self.graph.get(initial))
        self._runtime.record_enter(initial)

    def _seed_step_data(self, definition: StepDefinition) -> None:
        if not self._data.has(definition.name) and definition.initial_data is not None:
            self._data.set(definition.name, copy.deepcopy(definition.initial_data))

    # Queries

    @property
    def current_step(self) -> str:
        return self._current_step

    @property
    def is_transitioning(self) -> bool:
        return self._active is not None

    @property
    def is_loading(self) -> bool:
        """True while a step's load hook is running."""
        return self._loading is not None

    @property
    def back_depth(self) -> int:
        """Number of transitions back() can still undo."""
        return len(self._undo)

    def get_step_data(self, name: str) -> Any:
        """Last committed payload of a step, or None."""
        self.graph.get(name)
        return self._data.get(name)

    def get_context(self) -> Dict[str, Any]:
        """The live shared context (same object across calls)."""
        return self._context.value

    def get_error(self, name: str) -> Optional[Any]:
        return self._errors.get(name)

    def get_errors(self) -> Dict[str, Any]:
        return self._errors.as_dict()

    def get_history(self) -> List[str]:
        """Visited steps in order, including the initial step."""
        return list(self._history)

    def get_status(self, name: str) -> Optional[StepStatus]:
        return self._runtime.status(name)

    def get_runtime(self, name: str) -> StepRuntime:
        return self._runtime.get(name)

    def get_next_steps(self) -> List[str]:
        """Candidate successors of the current step given its present data."""
        return self.graph.successors(
            self._current_step, self._data.get(self._current_step), self._context.value
        )

    def is_step_complete(self, name: Optional[str] = None) -> bool:
        """
        Evaluate a step's complete predicate with its present data.

        Does not attempt a transition.

        Args:
            name: Step to check (default: current step)
        """
        name = name or self._current_step
        definition = self.graph.get(name)
        return bool(definition.complete(self._data.get(name), self._context.value))

    # Direct mutations

    def _ensure_idle(self, operation: str) -> None:
        if self._active is not None:
            raise ConcurrentTransitionError(
                f"{operation}() called while transition "
                f"'{self._active.from_step}' -> '{self._active.target}' is in flight; "
                f"use the StepActions handle inside hooks"
            )

    def update_context(self, partial: ContextUpdate) -> Dict[str, Any]:
        """
        Shallow-merge keys into the shared context.

        Args:
            partial: Mapping of keys to replace, or a callable mutating the context

        Returns:
            The updated context

        Raises:
            ConcurrentTransitionError: If a transition is in flight
        """
        self._ensure_idle('update_context')
        return self._apply_context_update(partial)

    def _apply_context_update(self, partial: ContextUpdate) -> Dict[str, Any]:
        context = self._context.update(partial)
        self._save()
        self._events.emit(WizardEvent(
            kind='context_change', step=self._current_step, context=context,
        ))
        return context

    def set_step_data(self, name: str, data: Any) -> None:
        """
        Replace a step's payload without guards or validation.

        Raises:
            ResolutionError: If the step does not exist
            ConcurrentTransitionError: If a transition is in flight
        """
        self._ensure_idle('set_step_data')
        self._write_step_data(name, data)

    def _write_step_data(self, name: str, data: Any) -> None:
        self.graph.get(name)
        self._data.set(name, data)
        self._save()

    def mark_error(self, name: str, error: Any) -> None:
        """Record an error against a step without attempting a transition."""
        self.graph.get(name)
        self._record_error(name, error)

    def clear_error(self, name: str) -> None:
        self.graph.get(name)
        self._clear_error(name)
        self._save()

    def mark_terminated(self, name: str, error: Any = None) -> None:
        self._set_status(name, 'terminated')
        if error is not None:
            self._errors.record(name, error)
            self._events.emit(WizardEvent(kind='error', step=name, error=error, context=self._context.value))
        self._save()

    def mark_loading(self, name: str) -> None:
        self._set_status(name, 'loading')
        self._save()

    def mark_skipped(self, name: str) -> None:
        self._set_status(name, 'skipped')
        self._save()

    def mark_idle(self, name: str) -> None:
        """Remove any status marker from a step."""
        self._set_status(name, None)
        self._save()

    def _set_status(self, name: str, status: Optional[StepStatus]) -> None:
        self.graph.get(name)
        previous = self._runtime.set_status(name, status)
        if previous != status:
            logger.debug(f"Step '{name}' status {previous} -> {status}")

    def _record_error(self, name: str, error: Any) -> None:
        self._errors.record(name, error)
        self._runtime.set_status(name, 'error')
        self._save()
        event = WizardEvent(kind='error', step=name, error=error, context=self._context.value)
        if self._active is not None:
            # Delivered once the transition has settled
            self._deferred.append(event)
        else:
            self._events.emit(event)

    def _flush_deferred(self) -> None:
        events, self._deferred = self._deferred, []
        for event in events:
            self._events.emit(event)

    def _clear_error(self, name: str) -> None:
        self._errors.clear(name)
        if self._runtime.status(name) == 'error':
            self._runtime.set_status(name, None)

    # Subscriptions

    def subscribe(self, kind: str, listener: Listener) -> Callable[[], None]:
        """Subscribe to 'enter', 'exit', 'error', 'context_change' or 'transition'."""
        return self._events.subscribe(kind, listener)

    async def drain_listeners(self) -> None:
        """Wait until async listeners scheduled so far have finished."""
        await self._events.drain()

    def destroy(self) -> None:
        """Drop every subscriber."""
        self._events.clear()

    # Transitions

    async def next(self, target: Optional[str] = None, data: Any = None) -> TransitionResult:
        """
        Move to a successor of the current step.

        Args:
            target: Successor to move to (required when several static successors exist)
            data: Pending payload for the current step (default: its stored data)

        Returns:
            TransitionResult of the committed transition

        Raises:
            ResolutionError: Target is not a successor, resolver failed, or
                the step is terminal (TerminalStepError)
            AmbiguousTransitionError: Several static successors and no target
            GuardRejectedError: can_exit or can_enter returned falsy
            HookError: before_exit or a guard raised, or the load hook of
                the entered step raised (phase 'load', the move is committed)
            ValidationError: The validator rejected the pending data
            TransitionCancelledError: cancel() was called before commit
            ConcurrentTransitionError: Another transition is in flight and
                the policy is 'reject'
        """
        return await self._run(_Transition('next', target=target, data=data))

    async def go_to(self, name: str, data: Any = None) -> TransitionResult:
        """
        Move directly to any step, through the same guard/validation pipeline.

        Args:
            name: Step to move to
            data: Pending payload for the current step (default: its stored data)
        """
        self.graph.get(name)
        return await self._run(_Transition('goto', target=name, data=data))

    async def back(self) -> TransitionResult:
        """
        Return to the step before the last committed transition.

        Context and step data are restored to what they were before that
        transition. Guards, hooks and the validator are not evaluated; the
        entered step's load hook is. Errors of both steps are cleared, as
        for any committed transition.

        Raises:
            ResolutionError: If there is nothing to go back to
        """
        return await self._run(_Transition('back'))

    def cancel(self) -> bool:
        """
        Ask the in-flight transition to stop at its next suspension point.

        Returns:
            True if a transition was in flight
        """
        if self._active is None:
            return False
        self._active.cancelled = True
        logger.debug(f"Cancellation requested for transition from '{self._active.from_step}'")
        return True

    async def _run(self, request: _Transition) -> TransitionResult:
        if self.options.transition_policy == 'reject' and self._gate.locked():
            raise ConcurrentTransitionError(
                f"Transition requested from '{self._current_step}' while another is in flight"
            )

        async with self._gate:
            self._active = request
            try:
                if request.kind == 'back':
                    return await self._step_back(request)
                return await self._transition(request)
            finally:
                self._active = None
                self._flush_deferred()

    async def _transition(self, request: _Transition) -> TransitionResult:
        from_step = self._current_step
        definition = self.graph.get(from_step)
        context = self._context.value

        request.from_step = from_step
        request.pending = request.data if request.data is not None else self._data.get(from_step)
        undo = self._capture_undo()

        target = self._resolve_target(request, definition)
        request.target = target
        logger.debug(f"Transition ({request.kind}) '{from_step}' -> '{target}' started")

        allowed = await self._call_guard(
            from_step, 'can_exit', definition.can_exit, request.pending, context, target
        )
        self._check_cancelled(request)
        if not allowed:
            raise GuardRejectedError('exit', from_step, target)

        actions = StepActions(self, request)
        try:
            await _resolve(definition.before_exit(request.pending, context, actions))
        except Exception as e:
            error = HookError(from_step, 'before_exit', e)
            self._record_error(from_step, error)
            raise error from e
        self._check_cancelled(request)

        try:
            await _resolve(definition.validator(request.pending, context))
        except Exception as e:
            error = ValidationError(from_step, e)
            self._record_error(from_step, error)
            raise error from e
        self._check_cancelled(request)

        target_definition = self.graph.get(target)
        allowed = await self._call_guard(
            target, 'can_enter', target_definition.can_enter, request.pending, context, from_step
        )
        self._check_cancelled(request)
        if not allowed:
            raise GuardRejectedError('enter', from_step, target)

        result = self._commit(request, target_definition, undo)
        await self._run_load(target)
        return result

    def _resolve_target(self, request: _Transition, definition: StepDefinition) -> str:
        from_step = request.from_step
        if request.kind == 'goto':
            return request.target

        candidates = self.graph.successors(from_step, request.pending, self._context.value)

        if request.target is not None:
            if request.target not in candidates:
                raise ResolutionError(
                    f"'{request.target}' is not a successor of '{from_step}' (candidates: {candidates})",
                    step=from_step,
                )
            return request.target

        if not candidates:
            raise TerminalStepError(f"Step '{from_step}' has no successors", step=from_step)
        if definition.is_dynamic:
            return candidates[0]
        if len(candidates) > 1:
            raise AmbiguousTransitionError(from_step, candidates)
        return candidates[0]

    async def _call_guard(self, step: str, phase: str, guard, data, context, other: str) -> bool:
        try:
            return bool(await _resolve(guard(data, context, other)))
        except Exception as e:
            error = HookError(step, phase, e)
            self._record_error(step, error)
            raise error from e

    def _check_cancelled(self, request: _Transition) -> None:
        if request.cancelled:
            logger.debug(f"Transition '{request.from_step}' -> '{request.target}' cancelled")
            raise TransitionCancelledError(request.from_step, request.target)

    def _commit(self, request: _Transition, target_definition: StepDefinition,
                undo: _UndoEntry) -> TransitionResult:
        from_step = request.from_step
        target = target_definition.name

        if self.options.keep_history:
            self._undo.append(undo)

        if request.pending is not None:
            self._data.set(from_step, request.pending)
        self._seed_step_data(target_definition)

        self._current_step = target
        self._history.append(target)
        self._clear_error(from_step)
        self._clear_error(target)
        if from_step != target:
            self._runtime.record_exit(from_step)
        self._runtime.record_enter(target)

        # Committed: listeners may mutate again from here on
        self._active = None
        self._save()
        logger.debug(f"Transition ({request.kind}) '{from_step}' -> '{target}' committed")

        result = TransitionResult(
            from_step=from_step, to_step=target, kind=request.kind, data=request.pending,
        )
        self._emit_transition(result)
        return result

    async def _step_back(self, request: _Transition) -> TransitionResult:
        from_step = self._current_step
        request.from_step = from_step
        if not self._undo:
            raise ResolutionError("No history available to go back", step=from_step)

        entry = self._undo.pop()
        request.target = entry.step
        self._context.replace(entry.context)
        self._data.replace(entry.data)
        self._current_step = entry.step
        self._history.append(entry.step)
        self._clear_error(from_step)
        self._clear_error(entry.step)
        if from_step != entry.step:
            self._runtime.record_exit(from_step)
        self._runtime.record_enter(entry.step)

        self._active = None
        self._save()
        logger.debug(f"Went back from '{from_step}' to '{entry.step}'")

        result = TransitionResult(from_step=from_step, to_step=entry.step, kind='back')
        self._emit_transition(result)
        await self._run_load(entry.step)
        return result

    async def _run_load(self, name: str) -> None:
        """
        Run the load hook of a step that has just been entered.

        The transition is already committed, so a failure leaves the wizard
        on the step with a HookError (phase 'load') recorded and raised.
        """
        definition = self.graph.get(name)
        if not definition.declares('load'):
            return

        request = _Transition('load', target=name)
        request.from_step = name
        request.pending = self._data.get(name)
        self._loading = name
        self._runtime.set_status(name, 'loading')
        try:
            await _resolve(definition.load(request.pending, self._context.value, StepActions(self, request)))
        except Exception as e:
            self._loading = None
            error = HookError(name, 'load', e)
            self._record_error(name, error)
            raise error from e

        self._loading = None
        self._runtime.set_status(name, None)
        self._save()
        logger.debug(f"Step '{name}' loaded")

    def _emit_transition(self, result: TransitionResult) -> None:
        context = self._context.value
        self._events.emit(WizardEvent(
            kind='exit', step=result.from_step,
            from_step=result.from_step, to_step=result.to_step, context=context,
        ))
        self._events.emit(WizardEvent(
            kind='enter', step=result.to_step,
            from_step=result.from_step, to_step=result.to_step, context=context,
        ))
        self._events.emit(WizardEvent(
            kind='transition', step=result.to_step,
            from_step=result.from_step, to_step=result.to_step, context=context,
        ))

    def _capture_undo(self) -> _UndoEntry:
        return _UndoEntry(
            step=self._current_step,
            context=copy.deepcopy(self._context.value),
            data=copy.deepcopy(self._data.as_dict()),
        )

    # Whole-state operations

    def reset(self) -> None:
        """Start over: initial step, initial context, no data, errors or history."""
        self._ensure_idle('reset')
        self._context.reset()
        self._data.clear()
        self._errors.reset()
        self._runtime.reset()
        self._undo.clear()
        self._enter_initial_step()
        if self.persistence is not None:
            self.persistence.clear()
        logger.debug("Wizard reset")

    def snapshot(self) -> WizardSnapshot:
        """Deep copy of the live state, suitable for persistence."""
        return WizardSnapshot(
            current_step=self._current_step,
            context=copy.deepcopy(self._context.value),
            data=copy.deepcopy(self._data.as_dict()),
            errors=self._errors.as_dict(),
            history=list(self._history),
            runtime=self._runtime.as_dict(),
        )

    def restore(self, snapshot: Union[WizardSnapshot, Mapping[str, Any]]) -> None:
        """
        Replace the live state with a snapshot.

        Raises:
            ResolutionError: If the snapshot references unknown steps
            ConcurrentTransitionError: If a transition is in flight
        """
        self._ensure_idle('restore')
        if not isinstance(snapshot, WizardSnapshot):
            snapshot = WizardSnapshot.model_validate(snapshot)

        for name in [snapshot.current_step, *snapshot.history, *snapshot.data]:
            self.graph.get(name)

        self._context.replace(copy.deepcopy(snapshot.context))
        self._data.replace(copy.deepcopy(snapshot.data))
        self._errors.replace(snapshot.errors)
        self._runtime.replace(snapshot.runtime)
        self._current_step = snapshot.current_step
        self._history = list(snapshot.history) or [snapshot.current_step]
        self._undo.clear()
        logger.debug(f"Restored wizard at step '{snapshot.current_step}'")

    def _save(self) -> None:
        if self.persistence is None:
            return
        try:
            self.persistence.save(self.snapshot())
        except Exception:
            logger.exception("Failed to persist wizard snapshot")


def create_wizard(
    graph: Union[StepGraph, Mapping[str, StepDefinition]],
    initial_context: Optional[Mapping[str, Any]] = None,
    options: Optional[WizardOptions] = None,
    persistence: Optional[WizardPersistence] = None,
    initial_step: Optional[str] = None,
    order: Optional[List[str]] = None,
    prerequisites: Optional[Mapping[str, List[str]]] = None,
) -> WizardEngine:
    """
    Create a wizard positioned on the graph's initial step.

    Args:
        graph: StepGraph, or a mapping of name -> StepDefinition to build one from
        initial_context: Shared context the run starts with
        options: Engine options
        persistence: Adapter to load a saved snapshot from and save into
        initial_step: Starting step when graph is a mapping (default: first step)
        order: Explicit helper step order when graph is a mapping
        prerequisites: Wizard-level prerequisites when graph is a mapping

    Returns:
        A new WizardEngine

    Raises:
        DefinitionError: If the graph is malformed
    """
    if not isinstance(graph, StepGraph):
        graph = StepGraph(
            graph, initial_step=initial_step, order=order, prerequisites=prerequisites,
        )

    engine = WizardEngine(graph, initial_context, options=options, persistence=persistence)

    if persistence is not None:
        saved = persistence.load()
        if saved is not None:
            engine.restore(saved)

    return engine
