"""Tests for WizardHelpers - ordering, completion and progress."""

import pytest
from stepwizard.engine.engine import create_wizard
from stepwizard.engine.schema import StepDefinition


@pytest.fixture
def wizard(linear_steps):
    return create_wizard(linear_steps)


def test_ordered_steps_follow_static_edges():
    wizard = create_wizard({
        'c': StepDefinition(name='c'),
        'a': StepDefinition(name='a', next=['b']),
        'b': StepDefinition(name='b', next=['c']),
    }, initial_step='a')

    assert wizard.helpers.ordered_steps() == ['a', 'b', 'c']


def test_dynamic_targets_follow_in_definition_order():
    wizard = create_wizard({
        'role': StepDefinition(name='role', next=lambda data, context: 'admin'),
        'admin': StepDefinition(name='admin'),
        'user': StepDefinition(name='user'),
    })

    assert wizard.helpers.ordered_steps() == ['role', 'admin', 'user']


def test_progress_counts_completed_steps(wizard):
    assert wizard.helpers.progress().ratio == 0

    wizard.set_step_data('start', {'ok': True})
    progress = wizard.helpers.progress()

    assert progress.ratio == pytest.approx(1 / 3)
    assert progress.percent == 33
    assert progress.label == '1 / 3'
    assert wizard.helpers.completed_steps() == ['start']
    assert wizard.helpers.remaining_steps() == ['middle', 'end']


def test_progress_with_weights(wizard):
    wizard.set_step_data('start', {'ok': True})

    progress = wizard.helpers.progress(weights={'start': 3})

    assert progress.ratio == pytest.approx(0.6)
    assert progress.percent == 60


def test_status_markers_affect_satisfaction(wizard):
    wizard.mark_skipped('middle')
    wizard.mark_terminated('end')
    wizard.set_step_data('start', {'ok': True})
    wizard.mark_error('start', 'server rejected it')

    assert wizard.helpers.is_step_satisfied('middle') is True
    assert wizard.helpers.is_step_satisfied('end') is True
    assert wizard.helpers.is_step_satisfied('start') is False

    wizard.clear_error('start')
    assert wizard.helpers.is_step_satisfied('start') is True

    wizard.mark_loading('start')
    assert wizard.helpers.is_step_satisfied('start') is False


def test_is_complete_ignores_optional_steps():
    wizard = create_wizard({
        'a': StepDefinition(name='a', next='b'),
        'b': StepDefinition(name='b', required=False),
    })

    assert wizard.helpers.required_steps() == ['a']
    assert wizard.helpers.is_complete() is False

    wizard.set_step_data('a', 'done')

    assert wizard.helpers.is_complete() is True


def test_successors_of_swallows_resolution_errors():
    def needs_role(data, context):
        return data['role']

    wizard = create_wizard({
        'role': StepDefinition(name='role', next=needs_role),
        'admin': StepDefinition(name='admin'),
    })

    assert wizard.helpers.successors_of('role') == []

    wizard.set_step_data('role', {'role': 'admin'})

    assert wizard.helpers.successors_of('role') == ['admin']


@pytest.fixture
def onboarding():
    """profile -> plan -> billing -> review, billing needs plan, review is optional."""
    def has_email(data, context):
        return bool(data and data.get('email'))

    return create_wizard({
        'profile': StepDefinition(name='profile', complete=has_email, next='plan'),
        'plan': StepDefinition(name='plan', next='billing', weight=2),
        'billing': StepDefinition(name='billing', next='review', prerequisites=['plan']),
        'review': StepDefinition(name='review', required=False),
    })


def test_explicit_order_wins():
    wizard = create_wizard({
        'a': StepDefinition(name='a', next='b'),
        'b': StepDefinition(name='b', next='c'),
        'c': StepDefinition(name='c'),
    }, order=['c', 'a'])

    assert wizard.helpers.ordered_steps() == ['c', 'a', 'b']


def test_step_weight_drives_progress(onboarding):
    onboarding.set_step_data('plan', {'tier': 'pro'})

    progress = onboarding.helpers.progress()

    assert progress.ratio == pytest.approx(2 / 5)
    assert progress.label == '1 / 4'


def test_prerequisites_gate_reachability(onboarding):
    helpers = onboarding.helpers

    assert helpers.prerequisites_for('billing') == ['plan']
    assert helpers.is_reachable('billing') is False

    onboarding.set_step_data('plan', {'tier': 'pro'})

    assert helpers.is_reachable('billing') is True


def test_wizard_level_prerequisites():
    wizard = create_wizard({
        'a': StepDefinition(name='a', next='b'),
        'b': StepDefinition(name='b'),
    }, prerequisites={'b': ['a']})

    assert wizard.helpers.prerequisites_for('b') == ['a']
    assert wizard.helpers.is_reachable('b') is False


def test_availability_follows_required_predecessors(onboarding):
    helpers = onboarding.helpers

    # profile is current, so it does not block plan
    assert helpers.available_steps() == ['profile', 'plan']
    assert helpers.unavailable_steps() == ['billing', 'review']
    assert helpers.find_next_available() == 'plan'
    assert helpers.can_go_next() is True

    onboarding.set_step_data('plan', {'tier': 'pro'})

    assert helpers.can_enter('billing') is True
    assert helpers.can_enter('review') is False
    assert helpers.jump_to_next_required() == 'plan'


def test_entry_guard_affects_availability():
    wizard = create_wizard({
        'a': StepDefinition(name='a', next=['b', 'c']),
        'b': StepDefinition(
            name='b', required=False,
            can_enter=lambda data, context, from_step: context.get('admin'),
        ),
        'c': StepDefinition(name='c'),
    })

    assert wizard.helpers.can_enter('b') is False
    assert wizard.helpers.can_go_to('c') is True

    wizard.update_context({'admin': True})

    assert wizard.helpers.can_enter('b') is True


def test_async_entry_guard_counts_as_available():
    async def later(data, context, from_step):
        return False

    wizard = create_wizard({
        'a': StepDefinition(name='a', next='b'),
        'b': StepDefinition(name='b', can_enter=later),
    })

    assert wizard.helpers.can_enter('b') is True


def test_can_go_to_rejects_marked_steps(onboarding):
    onboarding.mark_skipped('plan')

    assert onboarding.helpers.can_go_to('plan') is False


@pytest.mark.asyncio
async def test_navigation_queries_track_transitions(onboarding):
    helpers = onboarding.helpers

    assert helpers.can_go_back() is False
    assert helpers.first_incomplete_step() == 'profile'
    assert helpers.last_completed_step() is None
    assert helpers.remaining_required_count() == 3

    await onboarding.next(data={'email': 'ann@example.com'})

    assert helpers.can_go_back() is True
    assert helpers.first_incomplete_step() == 'plan'
    assert helpers.last_completed_step() == 'profile'
    assert helpers.remaining_required_count() == 2
    assert helpers.find_prev_available() == 'profile'


@pytest.mark.asyncio
async def test_step_attempts_and_duration(onboarding):
    helpers = onboarding.helpers

    assert helpers.step_attempts('profile') == 1
    assert helpers.step_duration('profile') is None

    await onboarding.next(data={'email': 'ann@example.com'})

    assert helpers.step_attempts('profile') == 2
    assert helpers.step_duration('profile') >= 0
    assert helpers.step_duration('plan') is None
