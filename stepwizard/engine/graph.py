"""StepGraph - immutable mapping from step name to step definition."""

import logging
from typing import Dict, Any, Iterable, Iterator, List, Mapping, Optional, Union

from .errors import DefinitionError, ResolutionError
from .schema import StepDefinition, StepInfo, GraphNode, GraphEdge, WizardGraph

logger = logging.getLogger(__name__)


class StepGraph:
    """
    The closed set of steps a wizard can be in.

    Built once and never mutated afterwards. Static successors are checked
    at construction; dynamic successors are checked when they are resolved.
    """

    def __init__(
        self,
        steps: Union[Mapping[str, StepDefinition], Iterable[StepDefinition]],
        initial_step: Optional[str] = None,
        order: Optional[List[str]] = None,
        prerequisites: Optional[Mapping[str, List[str]]] = None,
    ):
        """
        Build and check the graph.

        Args:
            steps: Mapping of name -> StepDefinition, or a sequence of definitions
            initial_step: Starting step (default: first step in definition order)
            order: Explicit step order for helpers (unlisted steps follow in
                definition order)
            prerequisites: Step name -> steps that must be complete first, for
                steps that declare none of their own

        Raises:
            DefinitionError: If names collide, a static successor is unknown,
                the graph is empty, the initial step is missing, or order and
                prerequisites name unknown steps
        """
        self._steps: Dict[str, StepDefinition] = {}

        if isinstance(steps, Mapping):
            for key, definition in steps.items():
                if key != definition.name:
                    raise DefinitionError(
                        f"Step registered as '{key}' is named '{definition.name}'"
                    )
                self._add(definition)
        else:
            for definition in steps:
                self._add(definition)

        if not self._steps:
            raise DefinitionError("A wizard needs at least one step")

        for definition in self._steps.values():
            if definition.is_dynamic:
                continue
            for target in definition.next:
                if target not in self._steps:
                    raise DefinitionError(
                        f"Step '{definition.name}' lists unknown successor '{target}'"
                    )

        if initial_step is None:
            initial_step = next(iter(self._steps))
        if initial_step not in self._steps:
            raise DefinitionError(f"Initial step '{initial_step}' is not defined")
        self._initial_step = initial_step

        self._order = self._check_order(order)
        self._prerequisites: Dict[str, List[str]] = {}
        for name, required in (prerequisites or {}).items():
            self._check_names(f"Prerequisites of '{name}'", [name, *required])
            self._prerequisites[name] = list(required)
        for definition in self._steps.values():
            self._check_names(f"Step '{definition.name}' prerequisites", definition.prerequisites)

    def _add(self, definition: StepDefinition) -> None:
        if definition.name in self._steps:
            raise DefinitionError(f"Duplicate step name '{definition.name}'")
        self._steps[definition.name] = definition

    def _check_names(self, owner: str, names: Iterable[str]) -> None:
        for name in names:
            if name not in self._steps:
                raise DefinitionError(f"{owner} refers to unknown step '{name}'")

    def _check_order(self, order: Optional[List[str]]) -> Optional[List[str]]:
        if order is None:
            return None
        self._check_names("Order", order)
        if len(set(order)) != len(order):
            raise DefinitionError(f"Order lists a step more than once: {order}")
        return list(order)

    @property
    def initial_step(self) -> str:
        return self._initial_step

    def get(self, name: str) -> StepDefinition:
        """Look up a step definition.

        Raises:
            ResolutionError: If the step does not exist
        """
        try:
            return self._steps[name]
        except KeyError:
            raise ResolutionError(f"Unknown step '{name}'", step=name) from None

    @property
    def order(self) -> Optional[List[str]]:
        """Explicit step order, or None when helpers derive it from the flow."""
        return list(self._order) if self._order is not None else None

    def prerequisites_for(self, name: str) -> List[str]:
        """Steps that must be complete before a step counts as reachable.

        Step-level prerequisites win over the graph-level mapping.
        """
        definition = self.get(name)
        if definition.declares('prerequisites'):
            return list(definition.prerequisites)
        return list(self._prerequisites.get(name, []))

    def names(self) -> List[str]:
        """All step names in definition order."""
        return list(self._steps)

    def __contains__(self, name: object) -> bool:
        return name in self._steps

    def __iter__(self) -> Iterator[str]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def successors(self, name: str, data: Any, context: Dict[str, Any]) -> List[str]:
        """
        Resolve the ordered successor list of a step.

        Static successors are returned as declared. Dynamic resolvers are
        called with (data, context) and their result is checked against the
        graph.

        Args:
            name: Step to resolve successors for
            data: Pending data of that step
            context: Shared wizard context

        Returns:
            Ordered list of successor names (may be empty for terminal steps)

        Raises:
            ResolutionError: If a dynamic resolver returns an unknown step,
                nothing at all, or something that is not a step name
        """
        definition = self.get(name)
        if not definition.is_dynamic:
            return list(definition.next)

        try:
            result = definition.next(data, context)
        except ResolutionError:
            raise
        except Exception as e:
            raise ResolutionError(f"Resolver of step '{name}' failed: {e}", step=name) from e

        if isinstance(result, str):
            candidates = [result]
        elif result is None:
            candidates = []
        else:
            try:
                candidates = list(result)
            except TypeError:
                raise ResolutionError(
                    f"Resolver of step '{name}' returned {result!r}, expected a step name",
                    step=name,
                ) from None

        if not candidates:
            raise ResolutionError(f"Resolver of step '{name}' returned no successor", step=name)

        for candidate in candidates:
            if not isinstance(candidate, str) or candidate not in self._steps:
                raise ResolutionError(
                    f"Resolver of step '{name}' returned unknown step {candidate!r}",
                    step=name,
                )
        return candidates

    def step_info(self, name: str) -> StepInfo:
        """Describe a step for visualisation tools."""
        definition = self.get(name)
        return StepInfo(
            id=name,
            label=definition.meta.label or name,
            description=definition.meta.description,
            required=definition.required,
            tags=list(definition.meta.tags),
            has={
                'validator': definition.declares('validator'),
                'can_enter': definition.declares('can_enter'),
                'can_exit': definition.declares('can_exit'),
                'complete': definition.declares('complete'),
                'before_exit': definition.declares('before_exit'),
                'load': definition.declares('load'),
                'dynamic_next': definition.is_dynamic,
            },
            next=None if definition.is_dynamic else list(definition.next),
        )

    def to_graph(self, samples: Optional[List[Dict[str, Any]]] = None) -> WizardGraph:
        """
        Export nodes and edges for an external layout or viewer.

        Dynamic successors cannot be enumerated, so each resolver is called
        with every sample and whatever it returns becomes a 'dynamic' edge.

        Args:
            samples: List of {'context': {...}, 'data': {step: payload}} dicts
                (default: one empty sample)

        Returns:
            WizardGraph with one node per step
        """
        samples = samples if samples is not None else [{}]
        nodes: List[GraphNode] = []
        edges: List[GraphEdge] = []
        seen = set()

        for name, definition in self._steps.items():
            info = self.step_info(name)
            if name == self._initial_step:
                kind = 'start'
            elif not definition.is_dynamic and not definition.next:
                kind = 'end'
            else:
                kind = 'step'
            nodes.append(GraphNode(id=name, label=info.label, kind=kind, info=info))

            if definition.is_dynamic:
                targets = []
                for sample in samples:
                    data = sample.get('data', {}).get(name)
                    try:
                        targets.extend(self.successors(name, data, dict(sample.get('context', {}))))
                    except Exception as e:
                        logger.debug(f"Resolver of step '{name}' failed on a sample: {e}")
                edge_kind = 'dynamic'
            else:
                targets = definition.next
                edge_kind = 'transition'

            for target in targets:
                edge_id = f"{name}__to__{target}"
                if edge_id in seen:
                    continue
                seen.add(edge_id)
                edges.append(GraphEdge(id=edge_id, source=name, target=target, kind=edge_kind))

        return WizardGraph(nodes=nodes, edges=edges)
