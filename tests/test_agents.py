import random

import pytest

from actions import Action, ActionType, validate_action
from agents import CautiousDecider, Decider, RandomDecider, is_legal
from conftest import make_event_state, make_state


def test_base_decider_is_abstract():
    with pytest.raises(NotImplementedError):
        Decider().decide(make_state(), 0, random.Random(1))


@pytest.mark.parametrize("decider", [RandomDecider(), CautiousDecider()])
def test_decisions_are_always_legal(decider):
    rng = random.Random(5)
    states = [
        make_state(),
        make_state(money=(0.0, 0.0, 0.0)),
        make_event_state('embassy', money=(0.5, 3.0, 1.0)),
        make_event_state('order_attack_105'),
        make_state(phase='veche', attack_planning='planning', attack_target='bearhill'),
    ]
    for state in states:
        for seat in range(3):
            for _ in range(10):
                action = decider.decide(state, seat, rng)
                if action is not None:
                    assert validate_action(state, action, seat)


def test_cautious_builds_first():
    action = CautiousDecider().decide(make_state(money=(3.0, 0, 0)), 0, random.Random(1))
    assert action.action_type == ActionType.BUILD_BUILDING
    assert action.building_type == 'noble_manor'


def test_merchant_selects_capital_before_building():
    state = make_state(current_player=1, selected_region='gdov')
    action = CautiousDecider().decide(state, 1, random.Random(1))
    assert action.action_type == ActionType.SELECT_REGION
    assert action.region_name == 'pskov'


def test_cautious_backs_default_option():
    action = CautiousDecider().decide(make_event_state('plague'), 2, random.Random(1))
    assert action.vote == 'no_isolation'


def test_cautious_defends_only_with_money():
    state = make_event_state('order_attack_95', money=(5.0, 0.5, 5.0))
    assert CautiousDecider().decide(state, 0, random.Random(1)).vote is True
    assert CautiousDecider().decide(state, 1, random.Random(1)).vote is False


def test_nothing_to_do_outside_own_turn():
    assert CautiousDecider().decide(make_state(), 1, random.Random(1)) is None
    assert RandomDecider().decide(make_state(phase='veche'), 0, random.Random(1)) is None


def test_is_legal():
    assert is_legal(make_state(), Action(ActionType.NEXT_PHASE), 0)
    assert not is_legal(make_state(), Action(ActionType.RESOLVE_EVENT), 0)
