# Tests for core/router.py
#
# - Crisis pre-emption runs first from every flow and step.
# - Active flows continue at their step.
# - Idle messages go through the ordered intent rules.

import unittest
from unittest.mock import MagicMock, patch

from core import fsm
from core.models import (
    ActionType, AssessmentContext, EmptyContext, Flow, MoodContext, OnboardingContext, Priority, Session,
)
from core.router import GENERAL_RESOURCE_LIMIT, FlowRouter
from database.models import Resource
from nlp.translator import Translator

CRITICAL_TEXT = "I am going to kill myself tonight"


class TestFlowRouter(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.translator = Translator.load()

    def setUp(self):
        self.lookup = MagicMock(return_value=[])
        self.router = FlowRouter(self.translator, self.lookup)
        self.session = Session.new('+6590000005')

    def in_flow(self, flow, step, context=None):
        return self.session.model_copy(update={
            'current_flow': flow, 'flow_step': step, 'context': context or EmptyContext(),
        })

    # --- Crisis pre-emption ---

    def test_crisis_preempts_every_flow_and_step(self):
        for flow in (Flow.IDLE, Flow.ONBOARDING, Flow.ASSESSMENT, Flow.MOOD_LOG, Flow.CRISIS):
            for step in range(len(fsm.FLOW_STEPS[flow])):
                with self.subTest(flow=flow, step=step):
                    handler, response = self.router.route(self.in_flow(flow, step), CRITICAL_TEXT)
                    self.assertEqual(handler, Flow.CRISIS)
                    self.assertEqual(response.message_key, 'crisis_immediate_response')
                    self.assertEqual(response.next_flow, Flow.CRISIS)
                    self.assertEqual(response.next_step, 1)
                    self.assertEqual(response.priority, Priority.CRITICAL)
                    self.assertEqual(response.context.trigger_level, 'critical')

    def test_benign_idiom_does_not_preempt(self):
        session = self.in_flow(Flow.ASSESSMENT, 2, AssessmentContext(answers=[1]))
        handler, response = self.router.route(session, "I killed it at work today")
        self.assertEqual(handler, Flow.ASSESSMENT)
        self.assertEqual(response.message_key, 'phq4_q2')

    def test_crisis_in_mood_notes_keeps_the_entry(self):
        session = self.in_flow(Flow.MOOD_LOG, 2, MoodContext(score=3, emotions=['sad']))
        handler, response = self.router.route(session, "I want to end my life tonight")
        self.assertEqual(handler, Flow.CRISIS)
        types = [a.type for a in response.actions]
        self.assertEqual(types, [ActionType.LOG_INTERACTION, ActionType.SAVE_MOOD])
        record = response.actions[-1].payload['record']
        self.assertEqual(record['score'], 3)
        self.assertEqual(record['crisis_level'], 'critical')

    def test_crisis_elsewhere_in_mood_log_saves_nothing(self):
        session = self.in_flow(Flow.MOOD_LOG, 1, MoodContext(score=3))
        _, response = self.router.route(session, CRITICAL_TEXT)
        self.assertNotIn(ActionType.SAVE_MOOD, [a.type for a in response.actions])

    # --- Active flows ---

    def test_active_flow_continues(self):
        session = self.in_flow(Flow.ONBOARDING, 2, OnboardingContext(language='en'))
        handler, response = self.router.route(session, '3')
        self.assertEqual(handler, Flow.ONBOARDING)
        self.assertEqual(response.message_key, 'location_question')
        self.assertEqual(response.context.age_range, '36-45')

    # --- Idle routing ---

    def test_idle_assessment(self):
        handler, response = self.router.route(self.session, 'I want to take the assessment')
        self.assertEqual(handler, Flow.ASSESSMENT)
        self.assertEqual(response.message_key, 'phq4_intro')
        self.assertEqual(response.next_step, 0)

    def test_idle_mood(self):
        handler, response = self.router.route(self.session, 'log my mood')
        self.assertEqual(handler, Flow.MOOD_LOG)
        self.assertEqual(response.message_key, 'mood_score_prompt')

    def test_greeting_starts_onboarding_for_new_users(self):
        handler, response = self.router.route(self.session, 'hello')
        self.assertEqual(handler, Flow.ONBOARDING)
        self.assertEqual(response.message_key, 'language_select')

    def test_greeting_welcomes_returning_users(self):
        session = self.session.model_copy(update={'is_new_user': False})
        handler, response = self.router.route(session, 'hello')
        self.assertEqual(handler, Flow.IDLE)
        self.assertEqual(response.message_key, 'welcome')
        self.assertIsNone(response.next_flow)

    def test_unmatched_gets_help(self):
        handler, response = self.router.route(self.session, 'blah blah')
        self.assertEqual(handler, Flow.IDLE)
        self.assertEqual(response.message_key, 'help_menu')
        self.assertEqual([b.id for b in response.buttons], ['take_assessment', 'log_mood', 'browse_resources'])

    def test_resources_are_stateless(self):
        self.lookup.return_value = [Resource(id=f'g{i}', title=f'Clinic {i}', category='general') for i in range(7)]
        handler, response = self.router.route(self.session, 'I need support')
        self.assertEqual(handler, Flow.IDLE)
        self.assertEqual(response.message_key, 'resources_intro')
        self.assertIsNone(response.next_flow)
        self.lookup.assert_called_once_with('general', 'en', GENERAL_RESOURCE_LIMIT)
        self.assertEqual(len(response.actions), GENERAL_RESOURCE_LIMIT)
        self.assertIn('**Clinic 0**', response.message)

    def test_empty_resources(self):
        _, response = self.router.route(self.session, 'resources')
        self.assertEqual(response.message_key, 'resources_empty')

    def test_detector_runs_before_intent(self):
        detector = MagicMock()
        detector.assess.side_effect = RuntimeError('detector down')
        router = FlowRouter(self.translator, self.lookup, detector)
        with patch('core.router.classify_intent') as mock_classify:
            with self.assertRaises(RuntimeError):
                router.route(self.session, 'hello')
            mock_classify.assert_not_called()


if __name__ == '__main__':
    unittest.main()
