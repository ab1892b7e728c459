######################################################################
#
# File: test/test_account_info.py
#
# Copyright 2016 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

from b2backblaze.account_info import (
    AuthorizeAccountResponse,
    AuthorizeAccountResponseFactory,
    DEFAULT_MINIMUM_PART_SIZE,
    InMemoryAccountInfo,
    UploadUrlPool,
)
from b2backblaze.exception import MalformedResponse, MissingAccountData
from .test_base import TestBase


def _auth_response_dict(**overrides):
    response = dict(
        accountId='account-1',
        authorizationToken='token-1',
        apiUrl='https://api001.backblazeb2.com',
        downloadUrl='https://f001.backblazeb2.com',
        minimumPartSize=100000000,
    )
    response.update(overrides)
    return response


class TestAuthorizeAccountResponseFactory(TestBase):
    def test_ok(self):
        auth = AuthorizeAccountResponseFactory.from_api_response(_auth_response_dict())
        self.assertEqual(
            AuthorizeAccountResponse(
                'account-1', 'token-1', 'https://api001.backblazeb2.com',
                'https://f001.backblazeb2.com', 100000000
            ),
            auth,
        )

    def test_recommended_part_size(self):
        response = _auth_response_dict(recommendedPartSize=5000)
        del response['minimumPartSize']
        auth = AuthorizeAccountResponseFactory.from_api_response(response)
        self.assertEqual(5000, auth.minimum_part_size)

    def test_default_part_size(self):
        response = _auth_response_dict()
        del response['minimumPartSize']
        auth = AuthorizeAccountResponseFactory.from_api_response(response)
        self.assertEqual(DEFAULT_MINIMUM_PART_SIZE, auth.minimum_part_size)

    def test_missing_token(self):
        response = _auth_response_dict()
        del response['authorizationToken']
        with self.assertRaises(MalformedResponse):
            AuthorizeAccountResponseFactory.from_api_response(response)

    def test_empty_api_url(self):
        with self.assertRaises(MalformedResponse):
            AuthorizeAccountResponseFactory.from_api_response(_auth_response_dict(apiUrl=''))

    def test_bad_part_size(self):
        for bad_value in [0, -1, '100', None]:
            with self.assertRaises(MalformedResponse):
                AuthorizeAccountResponseFactory.from_api_response(
                    _auth_response_dict(minimumPartSize=bad_value)
                )

    def test_not_a_dict(self):
        with self.assertRaises(MalformedResponse):
            AuthorizeAccountResponseFactory.from_api_response(['accountId'])


class TestUploadUrlPool(TestBase):
    def setUp(self):
        self.pool = UploadUrlPool()

    def test_take_empty(self):
        self.assertEqual((None, None), self.pool.take('a'))

    def test_put_and_take(self):
        self.pool.put('a', 'url_a1', 'auth_token_a1')
        self.assertEqual((None, None), self.pool.take('b'))
        self.assertEqual(('url_a1', 'auth_token_a1'), self.pool.take('a'))
        self.assertEqual((None, None), self.pool.take('a'))

    def test_clear(self):
        self.pool.put('a', 'url_a1', 'auth_token_a1')
        self.pool.clear_for_key('a')
        self.pool.put('b', 'url_b1', 'auth_token_b1')
        self.assertEqual((None, None), self.pool.take('a'))
        self.assertEqual(('url_b1', 'auth_token_b1'), self.pool.take('b'))
        self.assertEqual((None, None), self.pool.take('b'))


class TestInMemoryAccountInfo(TestBase):
    def setUp(self):
        self.account_info = InMemoryAccountInfo()
        self.auth = AuthorizeAccountResponseFactory.from_api_response(_auth_response_dict())

    def test_starts_unauthorized(self):
        self.assertFalse(self.account_info.is_authorized())
        with self.assertRaises(MissingAccountData, 'Missing account data: api_url'):
            self.account_info.get_api_url()
        with self.assertRaises(MissingAccountData):
            self.account_info.get_account_auth_token()

    def test_set_auth_data(self):
        self.account_info.set_auth_data(self.auth)
        self.assertTrue(self.account_info.is_authorized())
        self.assertEqual('account-1', self.account_info.get_account_id())
        self.assertEqual('token-1', self.account_info.get_account_auth_token())
        self.assertEqual('https://api001.backblazeb2.com', self.account_info.get_api_url())
        self.assertEqual('https://f001.backblazeb2.com', self.account_info.get_download_url())
        self.assertEqual(100000000, self.account_info.get_minimum_part_size())

    def test_clear_auth_data(self):
        self.account_info.set_auth_data(self.auth)
        self.account_info.put_bucket_upload_url('bucket-1', 'url-1', 'token-1')
        self.account_info.put_large_file_upload_url('file-1', 'url-2', 'token-2')
        self.account_info.clear_auth_data()
        self.assertFalse(self.account_info.is_authorized())
        with self.assertRaises(MissingAccountData):
            self.account_info.get_download_url()
        self.assertEqual((None, None), self.account_info.take_bucket_upload_url('bucket-1'))
        self.assertEqual((None, None), self.account_info.take_large_file_upload_url('file-1'))

    def test_bucket_upload_urls(self):
        self.account_info.put_bucket_upload_url('bucket-1', 'url-1', 'token-1')
        self.assertEqual((None, None), self.account_info.take_bucket_upload_url('bucket-2'))
        self.account_info.clear_bucket_upload_data('bucket-1')
        self.assertEqual((None, None), self.account_info.take_bucket_upload_url('bucket-1'))

    def test_large_file_upload_urls(self):
        self.account_info.put_large_file_upload_url('file-1', 'url-1', 'token-1')
        self.account_info.put_large_file_upload_url('file-1', 'url-2', 'token-2')
        self.assertEqual(('url-2', 'token-2'), self.account_info.take_large_file_upload_url('file-1'))
        self.account_info.clear_large_file_upload_urls('file-1')
        self.assertEqual((None, None), self.account_info.take_large_file_upload_url('file-1'))
