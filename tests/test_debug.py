from unittest import TestCase

from oauthssoclient.debug import DebugLogger


class DebugLoggerTestCase(TestCase):
    def test_disabled_logger_writes_nothing(self):
        with self.assertNoLogs('oauthssoclient.debug'):
            DebugLogger(False).log('hello', {'token': 'abc'})
            DebugLogger(False).log_request('Phase', {'a': 1})

    def test_masks_credentials(self):
        with self.assertLogs('oauthssoclient.debug', 'DEBUG') as logs:
            DebugLogger(True).log('Token exchange failed', {
                'code': 'authcode-0123456789',
                'client_secret': 'b54cc7b3e42b215d1792c300487f1cb1',
                'user': 'alice',
            })
        self.assertEqual(len(logs.output), 1)
        self.assertIn('"code": "authcode...[MASKED]"', logs.output[0])
        self.assertIn('"client_secret": "b54cc7b3...[MASKED]"', logs.output[0])
        self.assertIn('"user": "alice"', logs.output[0])
        self.assertNotIn('0123456789', logs.output[0])

    def test_log_request(self):
        with self.assertLogs('oauthssoclient.debug', 'DEBUG') as logs:
            DebugLogger(True).log_request('SSO Request Start', {
                'method': 'GET',
                'password': 'hunter2-hunter2',
                'claims': {'ID': 77},
            })
        self.assertEqual(logs.output, [
            'DEBUG:oauthssoclient.debug:=== SSO Request Start ===',
            'DEBUG:oauthssoclient.debug:method: GET',
            'DEBUG:oauthssoclient.debug:password: hunter2-...[MASKED]',
            'DEBUG:oauthssoclient.debug:claims: {"ID": 77}',
            'DEBUG:oauthssoclient.debug:=== End SSO Request Start ===',
        ])
