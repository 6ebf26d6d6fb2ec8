# Tests for core/models.py value types

import unittest

from core.models import FlowResponse, TurnResult


class TestTurnResult(unittest.TestCase):
    def test_defaults(self):
        result = TurnResult(FlowResponse(message='hi'), [])
        self.assertEqual(tuple(result.errors), ())
        self.assertFalse(result.session_expired)

    def test_default_errors_not_shared(self):
        first = TurnResult(FlowResponse(message='a'), [])
        second = TurnResult(FlowResponse(message='b'), [])
        with self.assertRaises(AttributeError):
            first.errors.append('boom')
        self.assertEqual(len(second.errors), 0)


if __name__ == '__main__':
    unittest.main()
