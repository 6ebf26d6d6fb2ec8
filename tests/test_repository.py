# Tests for database/repository.py (Supabase repository layer)
#
# Strategy:
# - Patch config.supabase_client.supabase_service with a chainable fake: every query
#   builder method returns the same mock and execute() returns an object with .data.
# - Any client exception must surface as PersistenceError naming the operation.

import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from core.errors import PersistenceError
from core.models import AssessmentContext, Flow, Session
from database import repository


def fake_client(rows=None, error=None):
    query = MagicMock()
    for name in ('select', 'eq', 'limit', 'upsert', 'insert', 'delete', 'contains', 'order'):
        getattr(query, name).return_value = query
    if error is not None:
        query.execute.side_effect = error
    else:
        query.execute.return_value = MagicMock(data=rows if rows is not None else [])
    client = MagicMock()
    client.table.return_value = query
    return client, query


class RepositoryTestCase(unittest.TestCase):
    def use_client(self, rows=None, error=None):
        client, query = fake_client(rows, error)
        patcher = patch('config.supabase_client.supabase_service', client)
        patcher.start()
        self.addCleanup(patcher.stop)
        return client, query


class TestSessionStore(RepositoryTestCase):
    def setUp(self):
        self.store = repository.SupabaseSessionStore()
        self.session = Session.new('+6590000007').model_copy(update={
            'current_flow': Flow.ASSESSMENT,
            'flow_step': 2,
            'context': AssessmentContext(answers=[1]),
            'last_activity': datetime(2024, 5, 1, tzinfo=timezone.utc),
        })

    def test_load_round_trips_row(self):
        client, query = self.use_client(rows=[self.session.model_dump(mode='json')])
        loaded = self.store.load('+6590000007')
        self.assertEqual(loaded, self.session)
        client.table.assert_called_with('bot_sessions')
        query.eq.assert_called_with('anonymous_id', '+6590000007')

    def test_load_missing(self):
        self.use_client(rows=[])
        self.assertIsNone(self.store.load('nobody'))

    def test_load_corrupt_row(self):
        self.use_client(rows=[{'anonymous_id': 'x', 'current_flow': 'bogus'}])
        with self.assertRaises(PersistenceError) as ctx:
            self.store.load('x')
        self.assertEqual(ctx.exception.operation, 'load_session')

    def test_save_upserts_on_identity(self):
        _, query = self.use_client(rows=[{}])
        self.store.save(self.session)
        row, = query.upsert.call_args.args
        self.assertEqual(row['anonymous_id'], '+6590000007')
        self.assertEqual(row['context'], {'kind': 'assessment', 'answers': [1]})
        self.assertEqual(query.upsert.call_args.kwargs, {'on_conflict': 'anonymous_id'})

    def test_save_failure_wrapped(self):
        self.use_client(error=RuntimeError('connection reset'))
        with self.assertRaises(PersistenceError) as ctx:
            self.store.save(self.session)
        self.assertEqual(ctx.exception.operation, 'save_session')
        self.assertIn('connection reset', str(ctx.exception))

    def test_erase(self):
        _, query = self.use_client(rows=[{'anonymous_id': 'x'}])
        self.assertTrue(self.store.erase('x'))
        query.delete.assert_called_once()

    def test_missing_client(self):
        with patch('config.supabase_client.supabase_service', None):
            with self.assertRaises(PersistenceError):
                self.store.load('x')


class TestCollaborators(RepositoryTestCase):
    def test_find_resources(self):
        _, query = self.use_client(rows=[{
            'id': 'r1', 'title': {'en': 'Helpline'}, 'description': 'Open 24/7',
            'contact_info': {'phone': '1800-221-4444'}, 'category': 'crisis',
        }])
        resources = repository.find_resources('crisis', 'en', 3)
        self.assertEqual(resources[0].id, 'r1')
        self.assertEqual(resources[0].localized('title', 'ta'), 'Helpline')
        query.contains.assert_called_with('languages', ['en'])
        query.limit.assert_called_with(3)

    def test_create_account(self):
        client, query = self.use_client(rows=[{'user_id': 'u1'}])
        user_id = repository.create_account('+659', 'u1', {
            'language': 'en', 'age_range': '18-25', 'location': 'Singapore',
            'worker_category': 'Domestic Helper', 'consent_given': True,
        })
        self.assertEqual(user_id, 'u1')
        client.table.assert_called_with('bot_users')
        row = query.upsert.call_args.args[0]
        self.assertEqual(row['identity'], '+659')
        self.assertTrue(row['consent_given'])

    def test_save_assessment_and_mood(self):
        client, query = self.use_client(rows=[{'id': 42}])
        self.assertEqual(repository.save_assessment({'user_id': 'u1', 'total_score': 7}), 42)
        client.table.assert_called_with('phq4_assessments')
        self.assertEqual(repository.save_mood({'user_id': 'u1', 'score': 5}), 42)
        client.table.assert_called_with('mood_logs')

    def test_create_referral(self):
        _, query = self.use_client(rows=[{'id': 9}])
        repository.create_referral('u1', 'high', 'r1', referral_type='crisis', language='zh')
        row = query.insert.call_args.args[0]
        self.assertEqual(row['urgency_level'], 'high')
        self.assertEqual(row['status'], 'pending')
        self.assertEqual(row['language'], 'zh')

    def test_log_interaction_failure_wrapped(self):
        self.use_client(error=RuntimeError('quota'))
        with self.assertRaises(PersistenceError):
            repository.log_interaction('u1', 'message_processed', {})


if __name__ == '__main__':
    unittest.main()
