"""Pydantic models for wizard definitions, runtime state and graph export."""

from typing import List, Dict, Any, Optional, Union, Callable, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator


StepStatus = Literal['error', 'terminated', 'loading', 'skipped']
TransitionKind = Literal['next', 'goto', 'back']
EventKind = Literal['enter', 'exit', 'error', 'context_change', 'transition']


def always_true(*args) -> bool:
    """Default guard: every exit and every entry is allowed."""
    return True


def noop(*args) -> None:
    """Default validator and before_exit hook."""
    return None


def has_data(data: Any, context: Dict[str, Any]) -> bool:
    """Default completion check: the step is done once it holds data."""
    return data is not None


class StepMeta(BaseModel):
    """Descriptive metadata, used by helpers and graph export only."""

    model_config = ConfigDict(extra="allow")

    label: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class StepDefinition(BaseModel):
    """
    Definition of a single step in a wizard graph.

    Optional callbacks default to no-op implementations so the engine never
    has to check whether a callback exists:

    - validator(data, context): raise to reject the pending data
    - can_enter(data, context, from_step) / can_exit(data, context, to_step):
      truthy to allow, may be async
    - complete(data, context): synchronous completion check
    - before_exit(data, context, actions): side effects before leaving the
      step, may be async
    - load(data, context, actions): runs once the step has been entered,
      with the step marked loading, may be async
    - next: static list of successor names, or a callable
      (data, context) -> name | list of names
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1, description="Unique step name")
    initial_data: Optional[Any] = Field(None, description="Payload seeded on first entry")
    validator: Callable[..., Any] = Field(noop, description="Raises on invalid data")
    can_enter: Callable[..., Any] = Field(always_true, description="Entry guard")
    can_exit: Callable[..., Any] = Field(always_true, description="Exit guard")
    complete: Callable[..., bool] = Field(has_data, description="Completion predicate")
    before_exit: Callable[..., Any] = Field(noop, description="Hook run before leaving the step")
    load: Callable[..., Any] = Field(noop, description="Hook run after entering the step")
    next: Union[List[str], Callable[..., Any]] = Field(default_factory=list, description="Successors")
    required: bool = Field(True, description="Counts towards wizard completion")
    weight: float = Field(1.0, ge=0, description="Share of overall progress")
    prerequisites: List[str] = Field(default_factory=list, description="Steps that must be complete first")
    meta: StepMeta = Field(default_factory=StepMeta)

    @field_validator('next', mode='before')
    @classmethod
    def _normalize_next(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, tuple):
            return list(value)
        return value

    @property
    def is_dynamic(self) -> bool:
        """True if successors are computed from data and context."""
        return callable(self.next)

    def declares(self, field_name: str) -> bool:
        """True if the callback was supplied rather than defaulted."""
        return field_name in self.model_fields_set


class WizardOptions(BaseModel):
    """Engine behaviour switches."""

    model_config = ConfigDict(extra="forbid")

    transition_policy: Literal['queue', 'reject'] = Field(
        'queue', description="What to do with a transition requested while another is in flight"
    )
    keep_history: bool = Field(True, description="Keep undo snapshots for back()")
    max_history_size: int = Field(10, ge=1, description="Maximum undo snapshots kept")


class StepRuntime(BaseModel):
    """Per-step bookkeeping: status marker, visit counter and timestamps."""

    status: Optional[StepStatus] = None
    attempts: int = 0
    started_at: Optional[float] = None
    finished_at: Optional[float] = None


class TransitionResult(BaseModel):
    """Outcome of a committed transition."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    from_step: str
    to_step: str
    kind: TransitionKind
    data: Optional[Any] = None


class WizardEvent(BaseModel):
    """Notification delivered to subscribers."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: EventKind
    step: Optional[str] = None
    from_step: Optional[str] = None
    to_step: Optional[str] = None
    error: Optional[Any] = None
    context: Dict[str, Any] = Field(default_factory=dict)


class WizardSnapshot(BaseModel):
    """Serializable copy of a wizard's live state."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    current_step: str
    context: Dict[str, Any] = Field(default_factory=dict)
    data: Dict[str, Any] = Field(default_factory=dict)
    errors: Dict[str, Any] = Field(default_factory=dict)
    history: List[str] = Field(default_factory=list)
    runtime: Dict[str, StepRuntime] = Field(default_factory=dict)


class Progress(BaseModel):
    """Completion progress over the ordered steps."""

    ratio: float
    percent: int
    label: str


# Graph export for visualisation collaborators

class StepInfo(BaseModel):
    id: str
    label: str
    description: Optional[str] = None
    required: bool = True
    tags: List[str] = Field(default_factory=list)
    has: Dict[str, bool] = Field(default_factory=dict)
    next: Optional[List[str]] = None


class GraphNode(BaseModel):
    id: str
    label: str
    kind: Literal['step', 'start', 'end'] = 'step'
    info: StepInfo


class GraphEdge(BaseModel):
    id: str
    source: str
    target: str
    kind: Literal['transition', 'dynamic'] = 'transition'


class WizardGraph(BaseModel):
    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)


class Point(BaseModel):
    x: float
    y: float


class LayoutNode(BaseModel):
    id: str
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None


class LayoutEdge(BaseModel):
    id: str
    points: List[Point] = Field(default_factory=list)


class LayoutResult(BaseModel):
    """What an external layout function returns for a WizardGraph."""

    width: float
    height: float
    nodes: List[LayoutNode] = Field(default_factory=list)
    edges: List[LayoutEdge] = Field(default_factory=list)


LayoutStrategy = Callable[[WizardGraph], LayoutResult]


# YAML spec files

class StepSpec(BaseModel):
    """
    A step as written in a YAML wizard spec.

    Callables are given by registered name and bound by SpecLoader.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Unique step name")
    initial_data: Optional[Any] = Field(None, description="Payload seeded on first entry")
    validator: Optional[str] = Field(None, description="Registered validator name (e.g., 'checkout.validate_amount')")
    can_enter: Optional[str] = Field(None, description="Registered entry guard name")
    can_exit: Optional[str] = Field(None, description="Registered exit guard name")
    complete: Optional[str] = Field(None, description="Registered completion predicate name")
    before_exit: Optional[str] = Field(None, description="Registered before_exit hook name")
    load: Optional[str] = Field(None, description="Registered load hook name")
    next: Optional[Union[str, List[str], Dict[str, Any]]] = Field(
        None, description="Next step name, list of names, or resolver/when_value dict"
    )
    required: bool = True
    weight: float = Field(1.0, ge=0)
    prerequisites: List[str] = Field(default_factory=list)
    meta: StepMeta = Field(default_factory=StepMeta)


class WizardSpec(BaseModel):
    """Top-level YAML wizard spec."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Wizard identifier (e.g., 'checkout')")
    version: Union[str, float] = Field("1", description="Spec version")
    description: Optional[str] = Field(None, description="Human-readable description")
    initial_step: str = Field(..., description="Step the wizard starts on")
    options: WizardOptions = Field(default_factory=WizardOptions)
    steps: List[StepSpec] = Field(default_factory=list, description="Step definitions in order")
    order: Optional[List[str]] = Field(None, description="Display order of steps (default: flow order)")
    prerequisites: Dict[str, List[str]] = Field(
        default_factory=dict, description="Step name -> steps that must be complete first"
    )
