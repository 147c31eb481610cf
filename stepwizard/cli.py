"""Command-line tools for wizard spec files.

Usage:
    python -m stepwizard check <spec.yaml> [--callbacks MODULE]
    python -m stepwizard graph <spec.yaml> [--callbacks MODULE]

Without --callbacks, callback names in the spec are bound to placeholders so
the graph structure can be checked on its own. MODULE must expose a
CALLBACKS dict of name -> callable.
"""

import argparse
import importlib
import sys
from typing import Dict, Callable, List, Optional

import yaml

from stepwizard.engine.errors import WizardError
from stepwizard.engine.loader import CALLBACK_FIELDS, SpecLoader
from stepwizard.engine.schema import WizardSpec
from stepwizard.utils.logging import configure_logging


def _placeholder(name: str) -> Callable:
    def placeholder(*args, **kwargs):
        raise NotImplementedError(f"Callback '{name}' is not bound (run with --callbacks)")
    return placeholder


def _placeholder_registry(spec: WizardSpec) -> Dict[str, Callable]:
    """Bind every callback name referenced by the spec to a placeholder."""
    registry = {}
    for step in spec.steps:
        names = [getattr(step, field) for field in CALLBACK_FIELDS]
        if isinstance(step.next, dict) and 'resolver' in step.next:
            names.append(step.next['resolver'])
        for name in names:
            if name is not None:
                registry[name] = _placeholder(name)
    return registry


def _load(args) -> tuple:
    loader = SpecLoader()
    spec = loader.load_spec(args.spec)

    if args.callbacks:
        module = importlib.import_module(args.callbacks)
        for name, fn in getattr(module, 'CALLBACKS', {}).items():
            loader.register(name, fn)
    else:
        for name, fn in _placeholder_registry(spec).items():
            loader.register(name, fn)

    return spec, loader.build_graph(spec)


def cmd_check(args) -> int:
    spec, graph = _load(args)
    print(f"{spec.name}: {len(graph)} steps, starts at '{graph.initial_step}'")
    return 0


def cmd_graph(args) -> int:
    _, graph = _load(args)
    yaml.safe_dump(graph.to_graph().model_dump(mode='json'), sys.stdout, sort_keys=False)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stepwizard",
        description="Check wizard spec files and export their step graph",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: $STEPWIZARD_LOG_LEVEL or INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, handler, help_text in (
        ("check", cmd_check, "Validate a spec and its step graph"),
        ("graph", cmd_graph, "Print the step graph as YAML"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("spec", help="Path to a wizard spec YAML file")
        sub.add_argument("--callbacks", help="Module exposing a CALLBACKS dict")
        sub.set_defaults(handler=handler)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    try:
        return args.handler(args)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except WizardError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
