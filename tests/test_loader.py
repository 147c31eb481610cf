"""Tests for SpecLoader - YAML loading, callback binding and when_value branching."""

import pytest
import tempfile
from pathlib import Path
from stepwizard.engine.engine import create_wizard
from stepwizard.engine.errors import DefinitionError, ResolutionError, ValidationError
from stepwizard.engine.loader import SpecLoader
from stepwizard.engine.schema import WizardSpec


def validate_amount(data, context):
    if not data or data.get('amount', 0) <= 0:
        raise ValueError("amount must be positive")


def pick_shipping(data, context):
    return 'express' if context.get('premium') else 'standard'


@pytest.fixture
def temp_dir():
    """Create temporary directory for test fixtures."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def registry():
    return {
        'checkout.validate_amount': validate_amount,
        'checkout.pick_shipping': pick_shipping,
    }


@pytest.fixture
def checkout_yaml(temp_dir):
    """Create a sample checkout wizard spec YAML file."""
    spec_content = """
name: checkout
version: "1.0"
description: Checkout flow
initial_step: account
options:
  transition_policy: reject
steps:
  - name: account
    meta:
      label: Account type
    next:
      when_value:
        field: kind
        cases:
          business: company
          personal: payment
  - name: company
    next: payment
  - name: payment
    validator: checkout.validate_amount
    initial_data:
      amount: 0
    next:
      resolver: checkout.pick_shipping
  - name: express
    next: [done]
  - name: standard
    next: done
  - name: done
    required: false
"""
    spec_file = temp_dir / "checkout.yaml"
    spec_file.write_text(spec_content)
    return spec_file


def write_spec(temp_dir, content, name='wizard.yaml'):
    path = temp_dir / name
    path.write_text(content)
    return path


def test_load_spec_from_path(checkout_yaml, registry):
    """SpecLoader loads and validates a spec file."""
    loader = SpecLoader(registry=registry)

    spec = loader.load_spec(checkout_yaml)

    assert isinstance(spec, WizardSpec)
    assert spec.name == 'checkout'
    assert spec.initial_step == 'account'
    assert spec.options.transition_policy == 'reject'
    assert [step.name for step in spec.steps] == [
        'account', 'company', 'payment', 'express', 'standard', 'done',
    ]


def test_load_spec_by_name(temp_dir, checkout_yaml):
    loader = SpecLoader(base_path=temp_dir)

    spec = loader.load_spec('checkout')

    assert spec.name == 'checkout'


def test_load_missing_spec(temp_dir):
    loader = SpecLoader(base_path=temp_dir)

    with pytest.raises(FileNotFoundError):
        loader.load_spec('nonexistent')


def test_load_non_mapping_spec(temp_dir):
    path = write_spec(temp_dir, "- just\n- a list\n")

    with pytest.raises(DefinitionError, match="must be a mapping"):
        SpecLoader().load_spec(path)


def test_load_spec_with_unknown_field(temp_dir):
    path = write_spec(temp_dir, """
name: broken
initial_step: a
steps:
  - name: a
    prompt: "not a step field"
""")

    with pytest.raises(DefinitionError, match="Invalid wizard spec"):
        SpecLoader().load_spec(path)


def test_build_graph_binds_callbacks(checkout_yaml, registry):
    loader = SpecLoader(registry=registry)

    graph, options = loader.load(checkout_yaml)

    assert graph.initial_step == 'account'
    assert graph.get('payment').validator is validate_amount
    assert graph.get('payment').is_dynamic
    assert graph.get('express').next == ['done']
    assert graph.get('standard').next == ['done']
    assert graph.get('done').required is False
    assert graph.get('account').meta.label == 'Account type'
    assert options.transition_policy == 'reject'


def test_unregistered_callback(checkout_yaml):
    loader = SpecLoader(registry={'checkout.pick_shipping': pick_shipping})

    with pytest.raises(DefinitionError, match="checkout.validate_amount"):
        loader.load(checkout_yaml)


def test_register_rejects_non_callable():
    loader = SpecLoader()

    with pytest.raises(TypeError):
        loader.register('bad', 'not callable')


def test_when_value_unknown_target(temp_dir):
    path = write_spec(temp_dir, """
name: broken
initial_step: a
steps:
  - name: a
    next:
      when_value:
        field: kind
        cases:
          x: missing
""")

    with pytest.raises(DefinitionError, match="unknown step 'missing'"):
        SpecLoader().load(path)


def test_unsupported_next_rule(temp_dir):
    path = write_spec(temp_dir, """
name: broken
initial_step: a
steps:
  - name: a
    next:
      goto: b
  - name: b
""")

    with pytest.raises(DefinitionError, match="unsupported next rule"):
        SpecLoader().load(path)


def test_when_value_resolves_from_data(checkout_yaml, registry):
    graph, _ = SpecLoader(registry=registry).load(checkout_yaml)

    assert graph.successors('account', {'kind': 'business'}, {}) == ['company']
    assert graph.successors('account', {'kind': 'personal'}, {}) == ['payment']

    with pytest.raises(ResolutionError, match="No when_value case"):
        graph.successors('account', {'kind': 'other'}, {})


def test_when_value_default_and_context_source(temp_dir):
    path = write_spec(temp_dir, """
name: plans
initial_step: plan
steps:
  - name: plan
    next:
      when_value:
        field: tier
        source: context
        cases:
          gold: concierge
        default: summary
  - name: concierge
  - name: summary
""")

    graph, _ = SpecLoader().load(path)

    assert graph.successors('plan', None, {'tier': 'gold'}) == ['concierge']
    assert graph.successors('plan', None, {'tier': 'bronze'}) == ['summary']


@pytest.mark.asyncio
async def test_loaded_wizard_runs_end_to_end(checkout_yaml, registry):
    """A YAML-defined wizard drives through branches, validation and resolvers."""
    graph, options = SpecLoader(registry=registry).load(checkout_yaml)
    wizard = create_wizard(graph, {'premium': True}, options=options)

    await wizard.next(data={'kind': 'personal'})
    assert wizard.current_step == 'payment'
    assert wizard.get_step_data('payment') == {'amount': 0}

    with pytest.raises(ValidationError):
        await wizard.next()

    await wizard.next(data={'amount': 40})
    await wizard.next()

    assert wizard.get_history() == ['account', 'payment', 'express', 'done']
    assert wizard.helpers.is_complete() is False


@pytest.mark.asyncio
async def test_load_hook_weight_and_prerequisites(temp_dir):
    """load callbacks, weights, order and prerequisites come through from YAML."""
    loaded = []

    def fetch_plans(data, context, actions):
        loaded.append(actions.step)
        actions.set_step_data('plans', {'options': ['basic']})

    path = write_spec(temp_dir, """
name: onboarding
initial_step: profile
order: [profile, plans, billing]
prerequisites:
  billing: [plans]
steps:
  - name: profile
    next: plans
  - name: plans
    load: onboarding.fetch_plans
    weight: 3
    next: billing
  - name: billing
    prerequisites: [profile]
""")

    graph, _ = SpecLoader(registry={'onboarding.fetch_plans': fetch_plans}).load(path)

    assert graph.order == ['profile', 'plans', 'billing']
    assert graph.get('plans').weight == 3
    assert graph.prerequisites_for('billing') == ['profile']

    wizard = create_wizard(graph)
    await wizard.next()

    assert loaded == ['plans']
    assert wizard.get_step_data('plans') == {'options': ['basic']}
    assert wizard.helpers.progress().ratio == pytest.approx(3 / 5)
