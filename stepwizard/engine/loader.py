"""SpecLoader - loads wizard definitions from YAML and binds their callbacks."""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Dict, Any, Callable, Optional, Tuple, Union

import pydantic
import yaml

from .errors import DefinitionError, ResolutionError
from .graph import StepGraph
from .schema import StepDefinition, StepSpec, WizardOptions, WizardSpec

logger = logging.getLogger(__name__)

CALLBACK_FIELDS = ('validator', 'can_enter', 'can_exit', 'complete', 'before_exit', 'load')


class SpecLoader:
    """
    Loads wizard specs from YAML files.

    Steps refer to callbacks by name (e.g. 'checkout.validate_amount');
    names are looked up in the loader's registry.
    """

    def __init__(self, base_path: Optional[Path] = None,
                 registry: Optional[Dict[str, Callable]] = None):
        """
        Initialize loader.

        Args:
            base_path: Directory holding <name>.yaml wizard specs (default: ./wizards)
            registry: Initial mapping of callback name -> callable
        """
        if base_path is None:
            base_path = Path.cwd() / "wizards"
        self.base_path = Path(base_path)
        self.registry: Dict[str, Callable] = dict(registry or {})

    def register(self, name: str, fn: Callable) -> None:
        """Make a callback available to specs under the given name."""
        if not callable(fn):
            raise TypeError(f"Callback '{name}' is not callable")
        self.registry[name] = fn

    def _spec_path(self, spec: Union[str, Path]) -> Path:
        path = Path(spec)
        if path.suffix in ('.yaml', '.yml'):
            return path
        return self.base_path / f"{spec}.yaml"

    def load_spec(self, spec: Union[str, Path]) -> WizardSpec:
        """
        Load and validate a wizard spec.

        Args:
            spec: Path to a .yaml/.yml file, or a spec name under base_path

        Returns:
            Validated WizardSpec instance

        Raises:
            FileNotFoundError: If the spec file doesn't exist
            DefinitionError: If the YAML doesn't match the schema
        """
        spec_path = self._spec_path(spec)

        if not spec_path.exists():
            raise FileNotFoundError(f"Wizard spec not found: {spec_path}")

        with open(spec_path, 'r') as f:
            data = yaml.safe_load(f)

        if not isinstance(data, Mapping):
            raise DefinitionError(f"Wizard spec {spec_path} must be a mapping")

        try:
            return WizardSpec(**data)
        except pydantic.ValidationError as e:
            raise DefinitionError(f"Invalid wizard spec {spec_path}: {e}") from e

    def build_graph(self, spec: WizardSpec) -> StepGraph:
        """
        Bind callbacks and build the step graph.

        Raises:
            DefinitionError: Unknown callback name, bad next rule, or a
                malformed graph
        """
        names = {step.name for step in spec.steps}
        definitions = [self._build_step(step, names) for step in spec.steps]
        return StepGraph(
            definitions,
            initial_step=spec.initial_step,
            order=spec.order,
            prerequisites=spec.prerequisites,
        )

    def load(self, spec: Union[str, Path]) -> Tuple[StepGraph, WizardOptions]:
        """Load a spec file and return its graph and options."""
        wizard_spec = self.load_spec(spec)
        graph = self.build_graph(wizard_spec)
        logger.debug(f"Loaded wizard '{wizard_spec.name}' with {len(graph)} steps")
        return graph, wizard_spec.options

    def _build_step(self, step: StepSpec, names) -> StepDefinition:
        fields: Dict[str, Any] = {
            'name': step.name,
            'initial_data': step.initial_data,
            'required': step.required,
            'weight': step.weight,
            'meta': step.meta,
        }
        if 'prerequisites' in step.model_fields_set:
            fields['prerequisites'] = step.prerequisites

        for field_name in CALLBACK_FIELDS:
            callback_name = getattr(step, field_name)
            if callback_name is not None:
                fields[field_name] = self._lookup(callback_name, step.name, field_name)

        if step.next is not None:
            fields['next'] = self._build_next(step, names)

        try:
            return StepDefinition(**fields)
        except pydantic.ValidationError as e:
            raise DefinitionError(f"Invalid step '{step.name}': {e}") from e

    def _lookup(self, callback_name: str, step_name: str, field_name: str) -> Callable:
        if callback_name not in self.registry:
            raise DefinitionError(
                f"Step '{step_name}' {field_name} refers to unregistered callback '{callback_name}'"
            )
        return self.registry[callback_name]

    def _build_next(self, step: StepSpec, names):
        """
        Translate a spec 'next' entry.

        Supported forms:
        - 'step_b' or ['step_b', 'step_c']: static successors
        - {'resolver': 'registered.name'}: dynamic resolver
        - {'when_value': {'field': 'role', 'cases': {...}, 'default': ..., 'source': 'data'}}:
          branch on a field of the step data (or of the context)
        """
        if isinstance(step.next, (str, list)):
            return step.next

        if 'resolver' in step.next:
            return self._lookup(step.next['resolver'], step.name, 'next')

        if 'when_value' in step.next:
            return self._compile_when_value(step.name, step.next['when_value'], names)

        raise DefinitionError(
            f"Step '{step.name}' has unsupported next rule {sorted(step.next)}; "
            f"expected 'resolver' or 'when_value'"
        )

    def _compile_when_value(self, step_name: str, rule: Dict[str, Any], names) -> Callable:
        if not isinstance(rule, Mapping) or 'field' not in rule:
            raise DefinitionError(f"Step '{step_name}' when_value needs a 'field'")

        field = rule['field']
        cases = dict(rule.get('cases') or {})
        default = rule.get('default')
        source = rule.get('source', 'data')

        if source not in ('data', 'context'):
            raise DefinitionError(f"Step '{step_name}' when_value source must be 'data' or 'context'")

        targets = list(cases.values()) + ([default] if default is not None else [])
        for target in targets:
            if target not in names:
                raise DefinitionError(f"Step '{step_name}' when_value targets unknown step '{target}'")

        def resolve(data: Any, context: Dict[str, Any]) -> str:
            subject = context if source == 'context' else data
            if isinstance(subject, Mapping):
                value = subject.get(field)
            else:
                value = getattr(subject, field, None)

            if value in cases:
                return cases[value]
            if default is not None:
                return default
            raise ResolutionError(
                f"No when_value case of step '{step_name}' matches {field}={value!r}",
                step=step_name,
            )

        return resolve
