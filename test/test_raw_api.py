######################################################################
#
# File: test/test_raw_api.py
#
# Copyright 2019 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import base64
import io
from unittest.mock import MagicMock

from b2backblaze.b2http import B2Http
from b2backblaze.exception import InvalidBucketName, InvalidMaxCount, TooManyFileInfos, UnusableFileName
from b2backblaze.raw_api import AUTO_CONTENT_TYPE, B2RawApi, DEFAULT_TRY_COUNT
from .test_base import TestBase

# Unicode characters for testing filenames.  (0x0394 is a letter Delta.)
TWO_BYTE_UNICHR = chr(0x0394)
CHAR_UNDER_32 = chr(31)
DEL_CHAR = chr(127)

API_URL = 'https://api001.backblazeb2.com'
SHA1 = '062685a84ab248d2488f02f6b01b948de2514ad8'


class TestRawAPIFilenames(TestBase):
    """Test that the filename checker passes conforming names and rejects those that don't."""

    def setUp(self):
        self.raw_api = B2RawApi(B2Http())

    def _should_be_ok(self, filename):
        self.assertIsNone(self.raw_api.check_b2_filename(filename))

    def _should_raise(self, filename, exception_message):
        with self.assertRaisesRegexp(UnusableFileName, exception_message):
            self.raw_api.check_b2_filename(filename)

    def test_b2_filename_checker(self):
        """
        From the B2 docs (https://www.backblaze.com/b2/docs/files.html):
        - Names can be pretty much any UTF-8 string up to 1024 bytes long.
        - No character codes below 32 are allowed.
        - DEL characters (127) are not allowed.
        - File names cannot start with "/", end with "/", or contain "//".
        - Maximum of 250 bytes of UTF-8 in each segment (part between slashes) of a file name.
        """
        self._should_be_ok('Kitten Videos')
        self._should_be_ok(u'自由.txt')

        s_1024 = 4 * (250 * 'x' + '/') + 20 * 'y'
        self._should_be_ok(s_1024)
        self._should_raise(s_1024 + 'x', "too long")
        s_1024_two_byte = 4 * (125 * TWO_BYTE_UNICHR + '/') + 20 * 'y'
        self._should_be_ok(s_1024_two_byte)
        self._should_raise(s_1024_two_byte + 'x', "too long")

        self._should_raise('', "at least 1 character")
        self._should_raise('hey' + CHAR_UNDER_32, "contains code.*less than 32")
        self._should_raise(TWO_BYTE_UNICHR + CHAR_UNDER_32, "contains code.*less than 32")
        self._should_raise(DEL_CHAR, "DEL.*not allowed")

        self._should_raise('/hey', "not start.*/")
        self._should_raise('hey/', "not .*end.*/")
        self._should_raise('not//allowed', "contain.*//")

        self._should_raise('foo/' + 251 * 'x', "segment too long")
        self._should_raise('foo/' + 125 * TWO_BYTE_UNICHR + 'x', "segment too long")

    def test_unprintable_to_hex(self):
        self.assertEqual(r'a\x07b', self.raw_api.unprintable_to_hex('a\x07b'))


class TestRawAPIValidation(TestBase):
    def setUp(self):
        self.b2_http = MagicMock()
        self.raw_api = B2RawApi(self.b2_http)

    def test_bucket_names(self):
        self.raw_api.check_bucket_name('my-bucket-1')
        for bad_name in ['short', 'x' * 51, 'has_underscore', 'has space']:
            with self.assertRaises(InvalidBucketName):
                self.raw_api.create_bucket(API_URL, 'token', 'account', bad_name, 'allPrivate')
        self.assertEqual([], self.b2_http.mock_calls)

    def test_too_many_file_infos(self):
        file_info = dict(('key%d' % (i,), 'value') for i in range(11))
        with self.assertRaises(TooManyFileInfos):
            self.raw_api.start_large_file(API_URL, 'token', 'bucket-id', 'name', None, file_info)
        self.assertEqual([], self.b2_http.mock_calls)

    def test_ten_file_infos_allowed(self):
        file_info = dict(('key%d' % (i,), 'value') for i in range(10))
        self.raw_api.check_file_info(file_info)

    def test_max_count(self):
        for bad_count in [0, 1001]:
            with self.assertRaises(InvalidMaxCount):
                self.raw_api.list_file_names(API_URL, 'token', 'bucket-id', None, bad_count)
        with self.assertRaises(InvalidMaxCount):
            self.raw_api.list_unfinished_large_files(API_URL, 'token', 'bucket-id', None, 101)
        self.assertEqual([], self.b2_http.mock_calls)


class TestRawAPIRequests(TestBase):
    def setUp(self):
        self.b2_http = MagicMock()
        self.b2_http.post_json_return_json.return_value = {}
        self.raw_api = B2RawApi(self.b2_http)

    def _posted(self):
        (url, headers, params, try_count) = self.b2_http.post_json_return_json.call_args[0]
        return url, headers, params, try_count

    def test_authorize_account(self):
        self.raw_api.authorize_account('https://api.backblazeb2.com', 'key-id', 'secret')
        (url, headers, try_count) = self.b2_http.get_json_return_json.call_args[0]
        self.assertEqual('https://api.backblazeb2.com/b2api/v1/b2_authorize_account', url)
        expected = 'Basic ' + base64.b64encode(b'key-id:secret').decode('ascii')
        self.assertEqual({'Authorization': expected}, headers)
        self.assertEqual(DEFAULT_TRY_COUNT, try_count)

    def test_start_large_file(self):
        self.raw_api.start_large_file(API_URL, 'token', 'bucket-id', 'big.bin', None, None)
        url, headers, params, try_count = self._posted()
        self.assertEqual(API_URL + '/b2api/v1/b2_start_large_file', url)
        self.assertEqual({'Authorization': 'token'}, headers)
        self.assertEqual(
            dict(
                bucketId='bucket-id',
                fileName='big.bin',
                fileInfo={},
                contentType=AUTO_CONTENT_TYPE,
            ),
            params,
        )

    def test_list_unfinished_large_files_sends_bucket_id(self):
        self.raw_api.list_unfinished_large_files(API_URL, 'token', 'bucket-id', None, 100)
        url, headers, params, try_count = self._posted()
        self.assertEqual(API_URL + '/b2api/v1/b2_list_unfinished_large_files', url)
        self.assertEqual('bucket-id', params['bucketId'])
        self.assertNotIn('fileId', params)

    def test_finish_large_file_is_sent_once(self):
        self.raw_api.finish_large_file(API_URL, 'token', 'file-id', [SHA1])
        url, headers, params, try_count = self._posted()
        self.assertEqual(API_URL + '/b2api/v1/b2_finish_large_file', url)
        self.assertEqual(dict(fileId='file-id', partSha1Array=[SHA1]), params)
        self.assertEqual(1, try_count)

    def test_create_bucket_leaves_out_unset_fields(self):
        self.raw_api.create_bucket(API_URL, 'token', 'account', 'my-bucket', 'allPublic')
        url, headers, params, try_count = self._posted()
        self.assertEqual(API_URL + '/b2api/v1/b2_create_bucket', url)
        self.assertEqual(
            dict(accountId='account', bucketName='my-bucket', bucketType='allPublic'), params
        )

    def test_list_file_names(self):
        self.raw_api.list_file_names(API_URL, 'token', 'bucket-id', 'a.txt', 10)
        url, headers, params, try_count = self._posted()
        self.assertEqual(API_URL + '/b2api/v1/b2_list_file_names', url)
        self.assertEqual(
            dict(bucketId='bucket-id', startFileName='a.txt', maxFileCount=10), params
        )

    def test_cancel_large_file(self):
        self.raw_api.cancel_large_file(API_URL, 'token', 'file-id')
        url, headers, params, try_count = self._posted()
        self.assertEqual(API_URL + '/b2api/v1/b2_cancel_large_file', url)
        self.assertEqual(dict(fileId='file-id'), params)
        self.assertEqual(DEFAULT_TRY_COUNT, try_count)

    def test_upload_part(self):
        data = io.BytesIO(b'x' * 100)
        self.raw_api.upload_part('https://pod.example.com/part', 'part-token', 3, 100, SHA1, data)
        (url, headers, stream), kwargs = self.b2_http.post_content_return_json.call_args
        self.assertEqual('https://pod.example.com/part', url)
        self.assertEqual(
            {
                'Authorization': 'part-token',
                'Content-Length': '100',
                'X-Bz-Part-Number': '3',
                'X-Bz-Content-Sha1': SHA1,
            },
            headers,
        )
        self.assertIs(data, stream)
        self.assertEqual({'partNumber': 3}, kwargs['post_params'])

    def test_upload_file(self):
        data = io.BytesIO(b'hello')
        self.raw_api.upload_file(
            'https://pod.example.com/upload', 'upload-token', u'dir/自由.txt', 5, None, SHA1,
            {'color': 'blue green'}, data
        )
        (url, headers, stream), kwargs = self.b2_http.post_content_return_json.call_args
        self.assertEqual('dir/%E8%87%AA%E7%94%B1.txt', headers['X-Bz-File-Name'])
        self.assertEqual(AUTO_CONTENT_TYPE, headers['Content-Type'])
        self.assertEqual('blue%20green', headers['X-Bz-Info-color'])
        self.assertEqual({'fileName': u'dir/自由.txt'}, kwargs['post_params'])

    def test_upload_file_checks_name(self):
        with self.assertRaises(UnusableFileName):
            self.raw_api.upload_file(
                'https://pod.example.com/upload', 'upload-token', 'bad//name', 5, None, SHA1, {},
                io.BytesIO(b'hello')
            )
        self.assertEqual([], self.b2_http.mock_calls)

    def test_download_url(self):
        self.assertEqual(
            'https://f001.backblazeb2.com/file/my-bucket/a%20b.txt',
            self.raw_api.get_download_url_by_name(
                'https://f001.backblazeb2.com', None, 'my-bucket', 'a b.txt'
            ),
        )

    def test_download_file_from_url(self):
        self.raw_api.download_file_from_url(
            None, 'token', 'https://f001.backblazeb2.com/file/b/f', range_=(0, 9)
        )
        (url, headers, try_count) = self.b2_http.get_content.call_args[0]
        self.assertEqual({'Authorization': 'token', 'Range': 'bytes=0-9'}, headers)

    def test_public_download_has_no_authorization(self):
        self.raw_api.download_file_from_url(None, None, 'https://f001.backblazeb2.com/file/b/f')
        (url, headers, try_count) = self.b2_http.get_content.call_args[0]
        self.assertEqual({}, headers)
