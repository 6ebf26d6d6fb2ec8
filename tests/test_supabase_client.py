# Tests for config/supabase_client.test_connection
#
# The module attribute is patched; the real client is never contacted.

import unittest
from unittest.mock import MagicMock, patch

from config import supabase_client


class TestConnectionCheck(unittest.TestCase):
    def test_missing_client(self):
        with patch.object(supabase_client, 'supabase_service', None):
            self.assertFalse(supabase_client.test_connection())

    def test_success(self):
        client = MagicMock()
        with patch.object(supabase_client, 'supabase_service', client):
            self.assertTrue(supabase_client.test_connection())
        client.table.assert_called_once_with('bot_sessions')

    def test_query_failure(self):
        client = MagicMock()
        client.table.return_value.select.return_value.limit.return_value.execute.side_effect = RuntimeError('no table')
        with patch.object(supabase_client, 'supabase_service', client):
            self.assertFalse(supabase_client.test_connection())


if __name__ == '__main__':
    unittest.main()
