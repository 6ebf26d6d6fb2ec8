# Tests for flows/crisis.py
#
# The resource lookup is a plain callable, so a MagicMock stands in for Supabase.

import unittest
from unittest.mock import MagicMock

from core.models import ActionType, CrisisContext, Flow, InteractionType, Priority, Session
from database.models import ReferralType, Resource, Urgency
from flows.crisis import CRISIS_RESOURCE_LIMIT, CrisisFlow, render_resources
from nlp.translator import Translator


def make_resources(count):
    return [
        Resource(
            id=f'res-{i}',
            title={'en': f'Helpline {i}', 'zh': f'热线 {i}'},
            description={'en': 'Free and confidential'},
            contact_info={'phone': f'1800-000-00{i}', 'website': f'https://help{i}.example.org'},
        )
        for i in range(count)
    ]


class TestCrisisFlow(unittest.TestCase):
    def setUp(self):
        self.lookup = MagicMock(return_value=make_resources(2))
        self.flow = CrisisFlow(Translator.load(), self.lookup)
        self.session = Session.new('+6590000004').model_copy(update={
            'current_flow': Flow.CRISIS,
            'context': CrisisContext(trigger_level='critical'),
        })

    def at_step(self, step):
        return self.session.model_copy(update={'flow_step': step})

    # --- Step 0 ---

    def test_immediate_response(self):
        response = self.flow.immediate_response(self.session, 'critical')
        self.assertEqual(response.message_key, 'crisis_immediate_response')
        self.assertEqual(response.priority, Priority.CRITICAL)
        self.assertEqual(response.next_flow, Flow.CRISIS)
        self.assertEqual(response.next_step, 1)
        self.assertEqual(len(response.quick_replies), 3)
        self.assertEqual(response.context, CrisisContext(trigger_level='critical'))
        log = response.actions[0]
        self.assertEqual(log.type, ActionType.LOG_INTERACTION)
        self.assertEqual(log.payload['interaction_type'], InteractionType.CRISIS_INTERVENTION.value)

    # --- Step 1 ---

    def test_danger_reply_jumps_to_immediate_help(self):
        for reply in ('I need help', 'not safe', 'I am not okay', '紧急'):
            with self.subTest(reply=reply):
                response = self.flow.handle(reply, self.at_step(1))
                self.assertEqual(response.message_key, 'crisis_immediate_help')
                self.assertEqual(response.next_step, 3)
                self.assertEqual(response.priority, Priority.CRITICAL)
                self.assertEqual([b.id for b in response.buttons], ['call_emergency', 'crisis_chat', 'safety_plan'])
                self.assertEqual(response.referral.urgency, Urgency.CRITICAL)
                self.assertEqual(response.referral.referral_type, ReferralType.EMERGENCY)

    def test_safe_reply_acknowledged(self):
        response = self.flow.handle("I'm safe now", self.at_step(1))
        self.assertEqual(response.message_key, 'crisis_glad_safe')
        self.assertEqual(response.next_step, 2)
        self.assertEqual(response.priority, Priority.HIGH)

    def test_negated_safe_reply_is_danger(self):
        replies = (
            "I don't feel safe",
            "I'm not feeling safe",
            'never safe here',
            'not really ok',
            'I no longer feel fine',
            'saya tidak merasa aman',
            'gak aman',
            '我不觉得安全',
        )
        for reply in replies:
            with self.subTest(reply=reply):
                response = self.flow.handle(reply, self.at_step(1))
                self.assertEqual(response.message_key, 'crisis_immediate_help')
                self.assertEqual(response.priority, Priority.CRITICAL)

    def test_safe_quick_replies_still_acknowledged(self):
        for reply in ("I'm safe right now", 'Saya aman sekarang', '我现在很安全', 'I am fine'):
            with self.subTest(reply=reply):
                response = self.flow.handle(reply, self.at_step(1))
                self.assertEqual(response.message_key, 'crisis_glad_safe')

    def test_unclear_reply_fails_open_to_resources(self):
        response = self.flow.handle('someone else', self.at_step(1))
        self.assertEqual(response.message_key, 'crisis_resources_intro')
        self.assertEqual(response.next_step, 3)
        self.lookup.assert_called_once_with('crisis', 'en', CRISIS_RESOURCE_LIMIT)

    # --- Step 2 ---

    def test_resources_rendered_and_logged(self):
        response = self.flow.handle('anything', self.at_step(2))
        self.assertIn('1. **Helpline 0**', response.message)
        self.assertIn('📞 1800-000-001', response.message)
        self.assertEqual(response.priority, Priority.HIGH)
        self.assertEqual(response.next_step, 3)
        logged = [a.payload['resource_id'] for a in response.actions]
        self.assertEqual(logged, ['res-0', 'res-1'])
        self.assertEqual(response.referral.resource_id, 'res-0')
        self.assertEqual(response.referral.urgency, Urgency.HIGH)

    def test_resources_capped(self):
        self.lookup.return_value = make_resources(CRISIS_RESOURCE_LIMIT + 3)
        response = self.flow.provide_resources(self.at_step(2))
        self.assertEqual(len(response.actions), CRISIS_RESOURCE_LIMIT)

    def test_no_resources_still_answers(self):
        self.lookup.return_value = []
        response = self.flow.provide_resources(self.at_step(2))
        self.assertIn(self.flow.text('crisis_resources_unavailable', 'en'), response.message)
        self.assertEqual(response.actions, [])
        self.assertIsNone(response.referral.resource_id)

    # --- Step 3 ---

    def test_follow_up_branches_all_end(self):
        cases = {
            'call the hotline': ('hotline_info', Priority.HIGH),
            'make a safety plan': ('safety_plan_created', Priority.MEDIUM),
            'find a therapist': ('professional_help_info', Priority.HIGH),
            'schedule a check in': ('followup_scheduled', Priority.MEDIUM),
            'thanks': ('continue_support', Priority.MEDIUM),
        }
        for reply, (key, priority) in cases.items():
            with self.subTest(reply=reply):
                response = self.flow.handle(reply, self.at_step(3))
                self.assertEqual(response.message_key, key)
                self.assertEqual(response.priority, priority)
                self.assertTrue(response.should_end_flow)

    def test_safety_plan_logs_and_refers(self):
        response = self.flow.handle('safety plan', self.at_step(3))
        self.assertEqual(response.actions[0].payload['interaction_type'], 'safety_plan_created')
        self.assertEqual(response.referral.referral_type, ReferralType.CRISIS)

    def test_followup_records_delay(self):
        response = self.flow.handle('follow up tomorrow', self.at_step(3))
        self.assertEqual(response.actions[0].payload['delay_hours'], 24)


class TestRenderResources(unittest.TestCase):
    def test_localized_with_fallback(self):
        text = render_resources(make_resources(1), 'zh')
        self.assertIn('1. **热线 0**', text)
        self.assertIn('   Free and confidential', text)
        self.assertIn('🌐 https://help0.example.org', text)

    def test_missing_contact_fields_skipped(self):
        text = render_resources([Resource(id='r', title='Plain')], 'en')
        self.assertEqual(text, '1. **Plain**\n')


if __name__ == '__main__':
    unittest.main()
