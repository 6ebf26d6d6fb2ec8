from transitions import Machine
from typing import Dict, List

from core.models import Flow

# Step names per flow; a session's flow_step is an index into these lists
FLOW_STEPS: Dict[Flow, List[str]] = {
    Flow.IDLE: ['idle'],
    Flow.ONBOARDING: [
        'welcome',
        'language',
        'age',
        'location',
        'category',
        'consent',
        'complete',
    ],
    Flow.ASSESSMENT: [
        'intro',
        'question_1',
        'question_2',
        'question_3',
        'question_4',
        'complete',
    ],
    Flow.MOOD_LOG: [
        'entry',
        'emotion_selection',
        'notes',
        'logged',
    ],
    Flow.CRISIS: [
        'immediate_response',
        'safety_check',
        'provide_resources',
        'follow_up_support',
    ],
}

# Non-linear jumps on top of the linear 'next_step' chain
EXTRA_TRANSITIONS = {
    Flow.CRISIS: [
        ('escalate', 'safety_check', 'follow_up_support'),
        ('show_resources', 'safety_check', 'follow_up_support'),
    ],
}


def create_flow_machine(flow: Flow, step: int = 0) -> Machine:
    """Create a step machine for a flow positioned at the given step.

    Args:
        flow: Flow whose step chain to build
        step: Index into FLOW_STEPS[flow] to start from

    Returns:
        transitions Machine acting as its own model
    """
    states = FLOW_STEPS[flow]
    machine = Machine(
        states=states,
        initial=states[step],
        auto_transitions=False,
        ignore_invalid_triggers=True
    )

    # Linear chain; the last state is terminal
    for source, dest in zip(states, states[1:]):
        machine.add_transition('next_step', source, dest)
    for trigger, source, dest in EXTRA_TRANSITIONS.get(flow, []):
        machine.add_transition(trigger, source, dest)
    return machine


def step_name(flow: Flow, step: int) -> str:
    return FLOW_STEPS[flow][step]


def step_index(flow: Flow, name: str) -> int:
    return FLOW_STEPS[flow].index(name)


def is_valid_step(flow: Flow, step: int) -> bool:
    """Check that a step index exists in the flow's machine."""
    return 0 <= step < len(FLOW_STEPS[flow])


def advance(flow: Flow, step: int, trigger: str = 'next_step') -> int:
    """Fire a trigger from a step and return the resulting step index.

    Invalid triggers leave the step unchanged.
    """
    machine = create_flow_machine(flow, step)
    machine.trigger(trigger)
    return step_index(flow, machine.state)


def is_terminal(flow: Flow, step: int) -> bool:
    return step == len(FLOW_STEPS[flow]) - 1
