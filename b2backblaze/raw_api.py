######################################################################
#
# File: b2backblaze/raw_api.py
#
# Copyright 2018 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import base64
import re
from abc import abstractmethod

from .exception import InvalidBucketName, InvalidMaxCount, TooManyFileInfos, UnusableFileName
from .utils import B2TraceMetaAbstract, b2_url_encode, limit_trace_arguments

API_VERSION = 'v1'

# B2 picks the content type from the file name extension
AUTO_CONTENT_TYPE = 'b2/x-auto'

MAX_FILE_INFO_ENTRIES = 10
MAX_FILE_NAME_BYTES = 1024
MAX_FILE_NAME_SEGMENT_BYTES = 250
MAX_LIST_FILE_COUNT = 1000
MAX_LIST_PART_COUNT = 1000
MAX_LIST_UNFINISHED_COUNT = 100

# Calls that change nothing, or can safely be repeated, are tried this often
DEFAULT_TRY_COUNT = 5

_BUCKET_NAME = re.compile(r'[A-Za-z0-9-]{6,50}')
_CONTROL_CHARACTER = re.compile(r'[\x00-\x1f]')


class AbstractRawApi(object, metaclass=B2TraceMetaAbstract):
    """
    One method per B2 endpoint, plus the checks B2 would make on the
    arguments, done locally so that a bad request is never sent.

    Every endpoint method except authorize_account, upload_file and
    upload_part takes the API URL and the account auth token as its first
    two arguments; B2Session fills those in.
    """

    # authorization

    @abstractmethod
    def authorize_account(self, realm_url, account_id, application_key):
        pass

    @abstractmethod
    def get_download_authorization(
        self, api_url, account_auth_token, bucket_id, file_name_prefix, valid_duration_in_seconds
    ):
        pass

    # buckets

    @abstractmethod
    def create_bucket(
        self,
        api_url,
        account_auth_token,
        account_id,
        bucket_name,
        bucket_type,
        bucket_info=None,
        lifecycle_rules=None
    ):
        pass

    @abstractmethod
    def delete_bucket(self, api_url, account_auth_token, account_id, bucket_id):
        pass

    @abstractmethod
    def list_buckets(self, api_url, account_auth_token, account_id, bucket_id=None, bucket_name=None):
        pass

    # files

    @abstractmethod
    def delete_file_version(self, api_url, account_auth_token, file_id, file_name):
        pass

    @abstractmethod
    def download_file_from_url(self, _, account_auth_token_or_none, url, range_=None):
        pass

    @abstractmethod
    def get_file_info(self, api_url, account_auth_token, file_id):
        pass

    @abstractmethod
    def get_upload_url(self, api_url, account_auth_token, bucket_id):
        pass

    @abstractmethod
    def hide_file(self, api_url, account_auth_token, bucket_id, file_name):
        pass

    @abstractmethod
    def list_file_names(
        self, api_url, account_auth_token, bucket_id, start_file_name=None, max_file_count=None
    ):
        pass

    @abstractmethod
    def upload_file(
        self, upload_url, upload_auth_token, file_name, content_length, content_type, content_sha1,
        file_infos, data_stream
    ):
        pass

    # large files

    @abstractmethod
    def cancel_large_file(self, api_url, account_auth_token, file_id):
        pass

    @abstractmethod
    def finish_large_file(self, api_url, account_auth_token, file_id, part_sha1_array):
        pass

    @abstractmethod
    def get_upload_part_url(self, api_url, account_auth_token, file_id):
        pass

    @abstractmethod
    def list_parts(self, api_url, account_auth_token, file_id, start_part_number, max_part_count):
        pass

    @abstractmethod
    def list_unfinished_large_files(
        self, api_url, account_auth_token, bucket_id, start_file_id=None, max_file_count=None
    ):
        pass

    @abstractmethod
    def start_large_file(
        self, api_url, account_auth_token, bucket_id, file_name, content_type, file_info
    ):
        pass

    @abstractmethod
    def upload_part(
        self, upload_url, upload_auth_token, part_number, content_length, sha1_sum, input_stream
    ):
        pass

    def get_download_url_by_name(self, download_url, account_auth_token, bucket_name, file_name):
        return '%s/file/%s/%s' % (download_url, bucket_name, b2_url_encode(file_name))

    # checks

    def check_bucket_name(self, bucket_name):
        """
        6 to 50 letters, digits and dashes.
        """
        if not _BUCKET_NAME.fullmatch(bucket_name):
            raise InvalidBucketName(bucket_name)

    def check_file_info(self, file_info):
        count = len(file_info or {})
        if count > MAX_FILE_INFO_ENTRIES:
            raise TooManyFileInfos('%d given, B2 takes %d' % (count, MAX_FILE_INFO_ENTRIES))

    def check_max_count(self, max_count, limit):
        if max_count is None:
            return
        if max_count < 1 or max_count > limit:
            raise InvalidMaxCount('%s is not between 1 and %d' % (max_count, limit))

    def unprintable_to_hex(self, string):
        """
        >>> B2RawApi(None).unprintable_to_hex('a\\x07b')
        'a\\\\x07b'
        """
        return _CONTROL_CHARACTER.sub(lambda m: '\\x%02x' % (ord(m.group()),), string)

    def check_b2_filename(self, filename):
        """
        Raises UnusableFileName, saying which rule the name breaks.
        The rules are at https://www.backblaze.com/b2/docs/files.html
        """
        size = len(filename.encode('utf-8'))
        if size == 0:
            raise UnusableFileName('File name must be at least 1 character.')
        if size > MAX_FILE_NAME_BYTES:
            raise UnusableFileName(
                'File name is too long: %d bytes of UTF-8, at most %d' % (size, MAX_FILE_NAME_BYTES)
            )
        lowest = ord(min(filename))
        if lowest < 32:
            raise UnusableFileName(
                'File name "%s" contains code %d (hex %02x), less than 32.' %
                (self.unprintable_to_hex(filename), lowest, lowest)
            )
        if '\x7f' in filename:
            raise UnusableFileName('DEL character (0x7f) is not allowed in file names.')
        if filename.startswith('/') or filename.endswith('/'):
            raise UnusableFileName("File name must not start or end with '/'.")
        if '//' in filename:
            raise UnusableFileName("File name must not contain '//'.")
        for segment in filename.split('/'):
            if len(segment.encode('utf-8')) > MAX_FILE_NAME_SEGMENT_BYTES:
                raise UnusableFileName(
                    'File name segment too long: %r, at most %d bytes of UTF-8' %
                    (segment[:20] + '...', MAX_FILE_NAME_SEGMENT_BYTES)
                )


class B2RawApi(AbstractRawApi):
    """
    Sends each call to B2 through a B2Http and returns the decoded JSON
    answer as a dict, or raises a B2Error.  No state is kept here.

    The endpoints are described at https://www.backblaze.com/b2/docs/
    """

    def __init__(self, b2_http):
        self.b2_http = b2_http

    def _post_json(self, api_url, api_name, auth, try_count=DEFAULT_TRY_COUNT, **params):
        """
        POSTs the parameters that are not None as a JSON object to
        <api_url>/b2api/v1/<api_name>.
        """
        url = '%s/b2api/%s/%s' % (api_url, API_VERSION, api_name)
        body = dict((name, value) for (name, value) in params.items() if value is not None)
        return self.b2_http.post_json_return_json(url, {'Authorization': auth}, body, try_count)

    @limit_trace_arguments(skip=['application_key'])
    def authorize_account(self, realm_url, account_id, application_key):
        credentials = base64.b64encode(('%s:%s' % (account_id, application_key)).encode('utf-8'))
        headers = {'Authorization': 'Basic ' + credentials.decode('ascii')}
        url = '%s/b2api/%s/b2_authorize_account' % (realm_url, API_VERSION)
        return self.b2_http.get_json_return_json(url, headers, DEFAULT_TRY_COUNT)

    def get_download_authorization(
        self, api_url, account_auth_token, bucket_id, file_name_prefix, valid_duration_in_seconds
    ):
        return self._post_json(
            api_url,
            'b2_get_download_authorization',
            account_auth_token,
            bucketId=bucket_id,
            fileNamePrefix=file_name_prefix,
            validDurationInSeconds=valid_duration_in_seconds,
        )

    def create_bucket(
        self,
        api_url,
        account_auth_token,
        account_id,
        bucket_name,
        bucket_type,
        bucket_info=None,
        lifecycle_rules=None
    ):
        self.check_bucket_name(bucket_name)
        return self._post_json(
            api_url,
            'b2_create_bucket',
            account_auth_token,
            accountId=account_id,
            bucketName=bucket_name,
            bucketType=bucket_type,
            bucketInfo=bucket_info,
            lifecycleRules=lifecycle_rules,
        )

    def delete_bucket(self, api_url, account_auth_token, account_id, bucket_id):
        return self._post_json(
            api_url, 'b2_delete_bucket', account_auth_token, accountId=account_id, bucketId=bucket_id
        )

    def list_buckets(self, api_url, account_auth_token, account_id, bucket_id=None, bucket_name=None):
        return self._post_json(
            api_url,
            'b2_list_buckets',
            account_auth_token,
            accountId=account_id,
            bucketId=bucket_id,
            bucketName=bucket_name,
        )

    def delete_file_version(self, api_url, account_auth_token, file_id, file_name):
        return self._post_json(
            api_url, 'b2_delete_file_version', account_auth_token, fileId=file_id, fileName=file_name
        )

    def download_file_from_url(self, _, account_auth_token_or_none, url, range_=None):
        """
        Starts a streaming GET of the URL and returns the context manager
        from B2Http.get_content().  The first argument is there for
        B2Session and is ignored.

        :param account_auth_token_or_none: None downloads from a public bucket
        :param range_: (first byte, last byte), both included
        """
        headers = {}
        if account_auth_token_or_none is not None:
            headers['Authorization'] = account_auth_token_or_none
        if range_ is not None:
            first, last = range_
            if not 0 <= first <= last:
                raise ValueError('bad byte range: %r' % (range_,))
            headers['Range'] = 'bytes=%d-%d' % (first, last)
        return self.b2_http.get_content(url, headers, DEFAULT_TRY_COUNT)

    def get_file_info(self, api_url, account_auth_token, file_id):
        return self._post_json(api_url, 'b2_get_file_info', account_auth_token, fileId=file_id)

    def get_upload_url(self, api_url, account_auth_token, bucket_id):
        return self._post_json(api_url, 'b2_get_upload_url', account_auth_token, bucketId=bucket_id)

    def hide_file(self, api_url, account_auth_token, bucket_id, file_name):
        return self._post_json(
            api_url, 'b2_hide_file', account_auth_token, bucketId=bucket_id, fileName=file_name
        )

    def list_file_names(
        self, api_url, account_auth_token, bucket_id, start_file_name=None, max_file_count=None
    ):
        self.check_max_count(max_file_count, MAX_LIST_FILE_COUNT)
        return self._post_json(
            api_url,
            'b2_list_file_names',
            account_auth_token,
            bucketId=bucket_id,
            startFileName=start_file_name,
            maxFileCount=max_file_count,
        )

    @limit_trace_arguments(skip=['upload_auth_token', 'data_stream'])
    def upload_file(
        self, upload_url, upload_auth_token, file_name, content_length, content_type, content_sha1,
        file_infos, data_stream
    ):
        """
        Sends a whole file in one request.  The name and file info values
        go in headers, percent-encoded.

        :param upload_url: from b2_get_upload_url
        :param upload_auth_token: from b2_get_upload_url
        :param data_stream: a seekable file object with exactly content_length bytes
        """
        self.check_b2_filename(file_name)
        self.check_file_info(file_infos)
        headers = {
            'Authorization': upload_auth_token,
            'Content-Length': str(content_length),
            'Content-Type': content_type or AUTO_CONTENT_TYPE,
            'X-Bz-Content-Sha1': content_sha1,
            'X-Bz-File-Name': b2_url_encode(file_name),
        }
        for name, value in (file_infos or {}).items():
            headers['X-Bz-Info-%s' % (name,)] = b2_url_encode(value)
        return self.b2_http.post_content_return_json(
            upload_url, headers, data_stream, post_params={'fileName': file_name}
        )

    def cancel_large_file(self, api_url, account_auth_token, file_id):
        return self._post_json(api_url, 'b2_cancel_large_file', account_auth_token, fileId=file_id)

    def finish_large_file(self, api_url, account_auth_token, file_id, part_sha1_array):
        # tried once; LargeFileUploader looks up the outcome of a failed finish
        return self._post_json(
            api_url,
            'b2_finish_large_file',
            account_auth_token,
            try_count=1,
            fileId=file_id,
            partSha1Array=part_sha1_array,
        )

    def get_upload_part_url(self, api_url, account_auth_token, file_id):
        return self._post_json(api_url, 'b2_get_upload_part_url', account_auth_token, fileId=file_id)

    def list_parts(self, api_url, account_auth_token, file_id, start_part_number, max_part_count):
        self.check_max_count(max_part_count, MAX_LIST_PART_COUNT)
        return self._post_json(
            api_url,
            'b2_list_parts',
            account_auth_token,
            fileId=file_id,
            startPartNumber=start_part_number,
            maxPartCount=max_part_count,
        )

    def list_unfinished_large_files(
        self, api_url, account_auth_token, bucket_id, start_file_id=None, max_file_count=None
    ):
        self.check_max_count(max_file_count, MAX_LIST_UNFINISHED_COUNT)
        return self._post_json(
            api_url,
            'b2_list_unfinished_large_files',
            account_auth_token,
            bucketId=bucket_id,
            startFileId=start_file_id,
            maxFileCount=max_file_count,
        )

    def start_large_file(
        self, api_url, account_auth_token, bucket_id, file_name, content_type, file_info
    ):
        # B2 checks the name itself and answers with a 400
        self.check_file_info(file_info)
        return self._post_json(
            api_url,
            'b2_start_large_file',
            account_auth_token,
            bucketId=bucket_id,
            fileName=file_name,
            contentType=content_type or AUTO_CONTENT_TYPE,
            fileInfo=file_info or {},
        )

    @limit_trace_arguments(skip=['upload_auth_token', 'data_stream'])
    def upload_part(
        self, upload_url, upload_auth_token, part_number, content_length, content_sha1, data_stream
    ):
        headers = {
            'Authorization': upload_auth_token,
            'Content-Length': str(content_length),
            'X-Bz-Content-Sha1': content_sha1,
            'X-Bz-Part-Number': str(part_number),
        }
        return self.b2_http.post_content_return_json(
            upload_url, headers, data_stream, post_params={'partNumber': part_number}
        )
