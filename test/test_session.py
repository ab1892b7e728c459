######################################################################
#
# File: test/test_session.py
#
# Copyright 2018 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import unittest.mock as mock

from b2backblaze.exception import AuthExpiredError, MalformedResponse, MissingAccountData, Unauthorized
from b2backblaze.raw_simulator import RawSimulator
from b2backblaze.session import B2Session
from .test_base import TestBase

AUTH_RESPONSE = dict(
    accountId='account-1',
    authorizationToken='token-1',
    apiUrl='https://api.example.com',
    downloadUrl='https://download.example.com',
    minimumPartSize=100,
)


class TestB2Session(TestBase):
    def setUp(self):
        self.raw_api = mock.MagicMock()
        self.raw_api.authorize_account.return_value = dict(AUTH_RESPONSE)
        self.raw_api.do_it.__name__ = 'do_it'
        self.raw_api.do_it.side_effect = ['ok']

        self.session = B2Session('account-1', 'secret-key', raw_api=self.raw_api)

    def test_realm_url(self):
        self.assertEqual('https://api.backblazeb2.com', self.session.realm_url)
        session = B2Session('a', 'k', realm='http://localhost:8180', raw_api=self.raw_api)
        self.assertEqual('http://localhost:8180', session.realm_url)

    def test_authorize(self):
        self.session.authorize()
        self.raw_api.authorize_account.assert_called_once_with(
            'https://api.backblazeb2.com', 'account-1', 'secret-key'
        )
        self.assertTrue(self.session.is_authorized())
        self.assertEqual('token-1', self.session.account_info.get_account_auth_token())
        self.assertEqual(100, self.session.get_minimum_part_size())

    def test_authorize_failure_keeps_previous_state(self):
        self.session.authorize()
        self.raw_api.authorize_account.side_effect = Unauthorized('bad key', 'unauthorized')
        with self.assertRaises(Unauthorized):
            self.session.authorize()
        self.assertTrue(self.session.is_authorized())
        self.assertEqual('token-1', self.session.account_info.get_account_auth_token())

    def test_authorize_malformed_response_keeps_previous_state(self):
        self.session.authorize()
        self.raw_api.authorize_account.return_value = dict(accountId='account-1')
        with self.assertRaises(MalformedResponse):
            self.session.authorize()
        self.assertEqual('https://api.example.com', self.session.account_info.get_api_url())

    def test_authorize_malformed_response_when_unauthorized(self):
        self.raw_api.authorize_account.return_value = dict(AUTH_RESPONSE, apiUrl=None)
        with self.assertRaises(MalformedResponse):
            self.session.authorize()
        self.assertFalse(self.session.is_authorized())

    def test_ensure_authorized_is_idempotent(self):
        self.session.ensure_authorized()
        self.session.ensure_authorized()
        self.assertEqual(1, self.raw_api.authorize_account.call_count)

    def test_invalidate(self):
        self.session.authorize()
        self.session.invalidate()
        self.assertFalse(self.session.is_authorized())
        with self.assertRaises(MissingAccountData):
            self.session.account_info.get_account_auth_token()

    def test_works_first_time(self):
        self.assertEqual('ok', self.session.do_it('x', y=1))
        self.raw_api.do_it.assert_called_once_with('https://api.example.com', 'token-1', 'x', y=1)

    def test_url_factory(self):
        self.session.do_it('x', url_factory=self.session.account_info.get_download_url)
        self.raw_api.do_it.assert_called_once_with('https://download.example.com', 'token-1', 'x')

    def test_works_second_time(self):
        self.raw_api.authorize_account.side_effect = [
            dict(AUTH_RESPONSE),
            dict(AUTH_RESPONSE, authorizationToken='token-2'),
        ]
        self.raw_api.do_it.side_effect = [
            AuthExpiredError('message', 'expired_auth_token'),
            'ok',
        ]
        self.assertEqual('ok', self.session.do_it())
        self.assertEqual(2, self.raw_api.authorize_account.call_count)
        self.assertEqual(
            [
                mock.call('https://api.example.com', 'token-1'),
                mock.call('https://api.example.com', 'token-2'),
            ],
            self.raw_api.do_it.call_args_list,
        )

    def test_fails_second_time(self):
        self.raw_api.do_it.side_effect = [
            AuthExpiredError('message', 'bad_auth_token'),
            AuthExpiredError('message', 'bad_auth_token'),
        ]
        with self.assertRaises(AuthExpiredError):
            self.session.do_it()
        self.assertEqual(2, self.raw_api.do_it.call_count)
        self.assertEqual(2, self.raw_api.authorize_account.call_count)

    def test_reauthorize_failure_is_raised(self):
        self.raw_api.authorize_account.side_effect = [
            dict(AUTH_RESPONSE),
            Unauthorized('key was deleted', 'unauthorized'),
        ]
        self.raw_api.do_it.side_effect = [AuthExpiredError('message', 'expired_auth_token')]
        with self.assertRaises(Unauthorized):
            self.session.do_it()
        self.assertFalse(self.session.is_authorized())

    def test_unauthorized_is_not_retried(self):
        self.raw_api.do_it.side_effect = [Unauthorized('no_go', 'unauthorized')]
        with self.assertRaises(Unauthorized):
            self.session.do_it()
        self.assertEqual(1, self.raw_api.authorize_account.call_count)

    def test_reauthorize_skipped_when_token_already_replaced(self):
        self.session.authorize()
        self.session._reauthorize('token-0')
        self.assertEqual(1, self.raw_api.authorize_account.call_count)

    def test_private_names_are_not_forwarded(self):
        with self.assertRaises(AttributeError):
            self.session._do_it


class TestB2SessionFromEnvironment(TestBase):
    def test_ok(self):
        environ = {
            'B2_APPLICATION_KEY_ID': 'key-id',
            'B2_APPLICATION_KEY': 'secret',
            'B2_REALM': 'staging',
            'B2_HTTP_TIMEOUT': '5',
        }
        session = B2Session.from_environment(environ)
        self.assertEqual('key-id', session.account_id)
        self.assertEqual('https://api.backblaze.net', session.realm_url)
        self.assertEqual(5.0, session.raw_api.b2_http.timeout)

    def test_default_timeout(self):
        environ = {'B2_APPLICATION_KEY_ID': 'key-id', 'B2_APPLICATION_KEY': 'secret'}
        session = B2Session.from_environment(environ)
        self.assertEqual('https://api.backblazeb2.com', session.realm_url)
        self.assertEqual(2.0, session.raw_api.b2_http.timeout)

    def test_missing_key(self):
        with self.assertRaises(MissingAccountData, 'Missing account data: B2_APPLICATION_KEY'):
            B2Session.from_environment({'B2_APPLICATION_KEY_ID': 'key-id'})

    def test_missing_key_id(self):
        with self.assertRaises(MissingAccountData):
            B2Session.from_environment({'B2_APPLICATION_KEY': 'secret'})


class TestB2SessionWithSimulator(TestBase):
    def setUp(self):
        self.raw_api = RawSimulator()
        (self.account_id, self.master_key) = self.raw_api.create_account()
        self.session = B2Session(self.account_id, self.master_key, raw_api=self.raw_api)

    def test_wrong_key(self):
        session = B2Session(self.account_id, 'wrong', raw_api=self.raw_api)
        with self.assertRaises(Unauthorized):
            session.authorize()
        self.assertFalse(session.is_authorized())

    def test_authorizes_on_first_call(self):
        self.assertEqual({'buckets': []}, self.session.list_buckets(self.account_id))
        self.assertTrue(self.session.is_authorized())
        self.assertEqual(RawSimulator.MIN_PART_SIZE, self.session.get_minimum_part_size())

    def test_expired_token_is_replaced(self):
        self.session.authorize()
        old_token = self.session.account_info.get_account_auth_token()
        self.raw_api.expire_auth_token(old_token)
        self.session.create_bucket(self.account_id, 'bucket1', 'allPrivate')
        new_token = self.session.account_info.get_account_auth_token()
        self.assertNotEqual(old_token, new_token)
        buckets = self.session.list_buckets(self.account_id)['buckets']
        self.assertEqual(['bucket1'], [b['bucketName'] for b in buckets])
