######################################################################
#
# File: b2backblaze/raw_simulator.py
#
# Copyright 2018 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import itertools
import re
import threading
from contextlib import closing

from .exception import (
    AuthExpiredError,
    BadUploadUrl,
    DuplicateBucketName,
    FileNotPresent,
    InvalidFileNameError,
    MissingPart,
    NonExistentBucket,
    PartIntegrityError,
    Unauthorized,
    UnusableFileName,
)
from .raw_api import AbstractRawApi, MAX_LIST_FILE_COUNT, MAX_LIST_PART_COUNT, MAX_LIST_UNFINISHED_COUNT
from .utils import b2_url_decode, b2_url_encode, hex_sha1_of_bytes


class FileSimulator(object):
    """
    One version of a file: stored ('upload'), a hide marker ('hide'),
    or a large file that is still being uploaded ('start').
    """

    def __init__(
        self, account_id, bucket_id, file_id, action, name, content_type, content_sha1, file_info,
        data_bytes, upload_timestamp
    ):
        self.account_id = account_id
        self.bucket_id = bucket_id
        self.file_id = file_id
        self.action = action
        self.name = name
        self.content_type = content_type
        self.content_sha1 = content_sha1
        self.file_info = file_info or {}
        self.data_bytes = data_bytes
        self.upload_timestamp = upload_timestamp
        self.parts = {}  # part number -> (part dict, bytes), while action is 'start'

    @property
    def size(self):
        return len(self.data_bytes or b'')

    def as_file_dict(self):
        """
        The file as b2_upload_file, b2_get_file_info and b2_finish_large_file return it.
        """
        return dict(
            accountId=self.account_id,
            bucketId=self.bucket_id,
            fileId=self.file_id,
            fileName=self.name,
            action=self.action,
            contentLength=self.size,
            contentType=self.content_type,
            contentSha1=self.content_sha1,
            fileInfo=self.file_info,
            uploadTimestamp=self.upload_timestamp,
        )

    def as_listed_dict(self):
        """
        The file as b2_list_file_names and b2_hide_file return it.
        """
        return dict(
            fileId=self.file_id,
            fileName=self.name,
            action=self.action,
            size=self.size,
            contentType=self.content_type,
            contentSha1=self.content_sha1,
            fileInfo=self.file_info,
            uploadTimestamp=self.upload_timestamp,
        )

    def download_headers(self, first, last):
        headers = {
            'content-length': str(last - first + 1),
            'content-type': self.content_type,
            'x-bz-content-sha1': self.content_sha1,
            'x-bz-file-id': self.file_id,
            'x-bz-file-name': b2_url_encode(self.name),
            'x-bz-upload-timestamp': str(self.upload_timestamp),
        }
        if (first, last) != (0, self.size - 1):
            headers['content-range'] = 'bytes %d-%d/%d' % (first, last, self.size)
        for key, value in self.file_info.items():
            headers['x-bz-info-' + key] = value
        return headers

    def finish(self, part_sha1_array):
        numbers = sorted(self.parts)
        if not numbers:
            raise MissingPart(self.file_id)
        for expected, number in enumerate(numbers, 1):
            if expected != number:
                raise MissingPart(expected)
        stored_sha1s = [self.parts[number][0]['contentSha1'] for number in numbers]
        if stored_sha1s != part_sha1_array:
            raise PartIntegrityError(
                self.file_id, 'stored %s, asked for %s' % (stored_sha1s, part_sha1_array)
            )
        self.data_bytes = b''.join(self.parts[number][1] for number in numbers)
        self.content_sha1 = 'none'
        self.action = 'upload'
        self.parts = {}


class BucketSimulator(object):
    def __init__(self, account_id, bucket_id, bucket_name, bucket_type, bucket_info, lifecycle_rules):
        if bucket_type not in ('allPrivate', 'allPublic'):
            raise ValueError('unknown bucket type: %s' % (bucket_type,))
        self.account_id = account_id
        self.bucket_id = bucket_id
        self.bucket_name = bucket_name
        self.bucket_type = bucket_type
        self.bucket_info = bucket_info or {}
        self.lifecycle_rules = lifecycle_rules or []
        self.upload_url_counter = itertools.count()

    def bucket_dict(self):
        return dict(
            accountId=self.account_id,
            bucketId=self.bucket_id,
            bucketName=self.bucket_name,
            bucketType=self.bucket_type,
            bucketInfo=self.bucket_info,
            lifecycleRules=self.lifecycle_rules,
            revision=1,
        )


class FakeResponse(object):
    """
    Stands in for a streamed requests.Response.
    """

    def __init__(self, headers, data_bytes):
        self.headers = headers
        self.data_bytes = data_bytes
        self.closed = False

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.data_bytes), chunk_size):
            yield self.data_bytes[start:start + chunk_size]

    def close(self):
        self.closed = True


class RawSimulator(AbstractRawApi):
    """
    An in-memory B2 behind the AbstractRawApi interface, for testing the
    layers above B2RawApi.

    All state is guarded by one lock, so parts may be sent from several
    threads.  Besides the endpoints there are methods for tests to make
    accounts, expire tokens and inject upload failures.
    """

    API_URL = 'http://api.example.com'
    DOWNLOAD_URL = 'http://download.example.com'

    MIN_PART_SIZE = 200

    # File ids count down from here, across all buckets, so that the newest
    # version of a file sorts first.
    FIRST_FILE_NUMBER = 9999

    UPLOAD_URL = re.compile(r'https://upload\.example\.com/(?!part/)([^/]+)/([0-9]+)$')
    UPLOAD_PART_URL = re.compile(r'https://upload\.example\.com/part/([^/]+)/([0-9]+)$')
    DOWNLOAD_BY_NAME_URL = re.compile(re.escape(DOWNLOAD_URL) + r'/file/([^/]+)/(.+)$')

    def __init__(self):
        self._lock = threading.RLock()
        self.account_keys = {}  # account id -> application key
        self.token_accounts = {}  # auth token -> account id
        self.expired_auth_tokens = set()
        self.expired_upload_tokens = set()
        self.upload_errors = []
        self.buckets = {}  # bucket id -> BucketSimulator
        self.files = {}  # file id -> FileSimulator, for every bucket
        self.part_url_counters = {}  # file id -> counter
        self._account_numbers = itertools.count()
        self._token_numbers = itertools.count()
        self._bucket_numbers = itertools.count()
        self._file_numbers = itertools.count(self.FIRST_FILE_NUMBER, -1)
        self._timestamps = itertools.count(5000)

    # Test controls

    def create_account(self):
        """
        Returns (account id, application key) of a new account.
        """
        number = next(self._account_numbers)
        account_id, key = 'account-%d' % (number,), 'masterKey-%d' % (number,)
        self.account_keys[account_id] = key
        return account_id, key

    def expire_auth_token(self, auth_token):
        """
        Makes B2 answer expired_auth_token to the next use of an account token.
        """
        if auth_token not in self.token_accounts:
            raise ValueError('token was never issued: %s' % (auth_token,))
        self.expired_auth_tokens.add(auth_token)

    def expire_upload_token(self, upload_auth_token):
        self.expired_upload_tokens.add(upload_auth_token)

    def set_upload_errors(self, errors):
        """
        Each upload_file or upload_part call raises the next of these errors
        instead of storing the data, until there are none left.
        """
        with self._lock:
            self.upload_errors = list(errors)

    def get_bucket_file_names(self, bucket_id):
        """
        The names of every version in the bucket, unfinished large files included.
        """
        with self._lock:
            return sorted(f.name for f in self._files_in(bucket_id))

    def get_file_data(self, file_id):
        with self._lock:
            return self._get_file(file_id).data_bytes

    # Authorization

    def authorize_account(self, realm_url, account_id, application_key):
        key = self.account_keys.get(account_id)
        if key is None:
            raise Unauthorized('account/key ID not valid', 'unauthorized')
        if key != application_key:
            raise Unauthorized('secret key is wrong', 'unauthorized')
        with self._lock:
            token = 'auth_token_%d' % (next(self._token_numbers),)
            self.token_accounts[token] = account_id
        return dict(
            accountId=account_id,
            authorizationToken=token,
            apiUrl=self.API_URL,
            downloadUrl=self.DOWNLOAD_URL,
            minimumPartSize=self.MIN_PART_SIZE,
        )

    def get_download_authorization(
        self, api_url, account_auth_token, bucket_id, file_name_prefix, valid_duration_in_seconds
    ):
        self._check_auth(api_url, account_auth_token, self._get_bucket(bucket_id).account_id)
        token = 'fake_download_auth_token_%s_%s_%d' % (
            bucket_id, b2_url_encode(file_name_prefix), valid_duration_in_seconds
        )
        return dict(bucketId=bucket_id, fileNamePrefix=file_name_prefix, authorizationToken=token)

    # Buckets

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
        self._check_auth(api_url, account_auth_token, account_id)
        with self._lock:
            if any(b.bucket_name == bucket_name for b in self.buckets.values()):
                raise DuplicateBucketName(bucket_name)
            bucket_id = 'bucket_%d' % (next(self._bucket_numbers),)
            bucket = BucketSimulator(
                account_id, bucket_id, bucket_name, bucket_type, bucket_info, lifecycle_rules
            )
            self.buckets[bucket_id] = bucket
        return bucket.bucket_dict()

    def delete_bucket(self, api_url, account_auth_token, account_id, bucket_id):
        self._check_auth(api_url, account_auth_token, account_id)
        with self._lock:
            bucket = self._get_bucket(bucket_id)
            del self.buckets[bucket_id]
        return bucket.bucket_dict()

    def list_buckets(self, api_url, account_auth_token, account_id, bucket_id=None, bucket_name=None):
        self._check_auth(api_url, account_auth_token, account_id)
        with self._lock:
            found = [
                bucket for bucket in self.buckets.values()
                if bucket.account_id == account_id and bucket_id in (None, bucket.bucket_id) and
                bucket_name in (None, bucket.bucket_name)
            ]
        found.sort(key=lambda bucket: bucket.bucket_name)
        return dict(buckets=[bucket.bucket_dict() for bucket in found])

    # Files

    def delete_file_version(self, api_url, account_auth_token, file_id, file_name):
        with self._lock:
            file_sim = self.files.get(file_id)
            if file_sim is None or file_sim.name != file_name:
                raise FileNotPresent(file_name)
            self._check_auth(api_url, account_auth_token, file_sim.account_id)
            del self.files[file_id]
        return dict(fileId=file_id, fileName=file_name)

    def download_file_from_url(self, _, account_auth_token_or_none, url, range_=None):
        match = self.DOWNLOAD_BY_NAME_URL.match(url)
        if match is None:
            raise ValueError('not a download URL: %s' % (url,))
        bucket_name, file_name = match.group(1), b2_url_decode(match.group(2))
        with self._lock:
            bucket = self._get_bucket_by_name(bucket_name)
            if account_auth_token_or_none is not None:
                self._check_auth(self.API_URL, account_auth_token_or_none, bucket.account_id)
            elif bucket.bucket_type != 'allPublic':
                raise Unauthorized('', 'unauthorized')
            latest = self._latest_versions(bucket.bucket_id).get(file_name)
            if latest is None or latest.action != 'upload':
                raise FileNotPresent(file_name)
        first, last = range_ or (0, latest.size - 1)
        last = min(last, latest.size - 1)
        return closing(
            FakeResponse(latest.download_headers(first, last), latest.data_bytes[first:last + 1])
        )

    def get_file_info(self, api_url, account_auth_token, file_id):
        with self._lock:
            file_sim = self._get_file(file_id)
            self._check_auth(api_url, account_auth_token, file_sim.account_id)
            return file_sim.as_file_dict()

    def get_upload_url(self, api_url, account_auth_token, bucket_id):
        with self._lock:
            bucket = self._get_bucket(bucket_id)
            self._check_auth(api_url, account_auth_token, bucket.account_id)
            url = 'https://upload.example.com/%s/%d' % (bucket_id, next(bucket.upload_url_counter))
        return dict(bucketId=bucket_id, uploadUrl=url, authorizationToken=url)

    def hide_file(self, api_url, account_auth_token, bucket_id, file_name):
        with self._lock:
            bucket = self._get_bucket(bucket_id)
            self._check_auth(api_url, account_auth_token, bucket.account_id)
            hidden = self._add_file(bucket, 'hide', file_name, None, 'none', {}, b'')
            return hidden.as_listed_dict()

    def list_file_names(
        self, api_url, account_auth_token, bucket_id, start_file_name=None, max_file_count=None
    ):
        self.check_max_count(max_file_count, MAX_LIST_FILE_COUNT)
        max_file_count = max_file_count or 100
        with self._lock:
            bucket = self._get_bucket(bucket_id)
            self._check_auth(api_url, account_auth_token, bucket.account_id)
            latest = self._latest_versions(bucket_id)
        visible = [
            latest[name] for name in sorted(latest)
            if name >= (start_file_name or '') and latest[name].action == 'upload'
        ]
        page, rest = visible[:max_file_count], visible[max_file_count:]
        return dict(
            files=[f.as_listed_dict() for f in page],
            nextFileName=rest[0].name if rest else None,
        )

    def upload_file(
        self, upload_url, upload_auth_token, file_name, content_length, content_type, content_sha1,
        file_infos, data_stream
    ):
        self.check_b2_filename(file_name)
        self.check_file_info(file_infos)
        match = self.UPLOAD_URL.match(upload_url)
        if match is None or upload_auth_token != upload_url:
            raise BadUploadUrl(upload_url)
        with self._lock:
            self._raise_injected_error()
            bucket = self._get_bucket(match.group(1))
            data_bytes = self._read_checked(data_stream, content_length, content_sha1, file_name)
            stored = self._add_file(
                bucket, 'upload', file_name, content_type, content_sha1, file_infos, data_bytes
            )
            return stored.as_file_dict()

    # Large files

    def cancel_large_file(self, api_url, account_auth_token, file_id):
        with self._lock:
            file_sim = self._get_unfinished(file_id)
            self._check_auth(api_url, account_auth_token, file_sim.account_id)
            del self.files[file_id]
        return dict(
            accountId=file_sim.account_id,
            bucketId=file_sim.bucket_id,
            fileId=file_id,
            fileName=file_sim.name,
        )

    def finish_large_file(self, api_url, account_auth_token, file_id, part_sha1_array):
        with self._lock:
            file_sim = self._get_unfinished(file_id)
            self._check_auth(api_url, account_auth_token, file_sim.account_id)
            file_sim.finish(part_sha1_array)
            return file_sim.as_file_dict()

    def get_upload_part_url(self, api_url, account_auth_token, file_id):
        with self._lock:
            file_sim = self._get_unfinished(file_id)
            self._check_auth(api_url, account_auth_token, file_sim.account_id)
            counter = self.part_url_counters.setdefault(file_id, itertools.count())
            url = 'https://upload.example.com/part/%s/%d' % (file_id, next(counter))
        return dict(fileId=file_id, uploadUrl=url, authorizationToken=url)

    def list_parts(self, api_url, account_auth_token, file_id, start_part_number, max_part_count):
        self.check_max_count(max_part_count, MAX_LIST_PART_COUNT)
        max_part_count = max_part_count or 100
        with self._lock:
            file_sim = self._get_unfinished(file_id)
            self._check_auth(api_url, account_auth_token, file_sim.account_id)
            numbers = [n for n in sorted(file_sim.parts) if n >= (start_part_number or 1)]
            part_dicts = [file_sim.parts[n][0] for n in numbers[:max_part_count]]
        rest = numbers[max_part_count:]
        return dict(parts=part_dicts, nextPartNumber=rest[0] if rest else None)

    def list_unfinished_large_files(
        self, api_url, account_auth_token, bucket_id, start_file_id=None, max_file_count=None
    ):
        self.check_max_count(max_file_count, MAX_LIST_UNFINISHED_COUNT)
        max_file_count = max_file_count or 100
        with self._lock:
            bucket = self._get_bucket(bucket_id)
            self._check_auth(api_url, account_auth_token, bucket.account_id)
            unfinished = sorted(
                (
                    f for f in self._files_in(bucket_id)
                    if f.action == 'start' and
                    (start_file_id is None or int(f.file_id) <= int(start_file_id))
                ),
                key=lambda f: -int(f.file_id),
            )
        page, rest = unfinished[:max_file_count], unfinished[max_file_count:]
        return dict(
            files=[f.as_file_dict() for f in page],
            nextFileId=rest[0].file_id if rest else None,
        )

    def start_large_file(
        self, api_url, account_auth_token, bucket_id, file_name, content_type, file_info
    ):
        self.check_file_info(file_info)
        with self._lock:
            bucket = self._get_bucket(bucket_id)
            self._check_auth(api_url, account_auth_token, bucket.account_id)
            try:
                self.check_b2_filename(file_name)
            except UnusableFileName as e:
                raise InvalidFileNameError(str(e))
            started = self._add_file(bucket, 'start', file_name, content_type, 'none', file_info, None)
            return started.as_file_dict()

    def upload_part(
        self, upload_url, upload_auth_token, part_number, content_length, sha1_sum, input_stream
    ):
        match = self.UPLOAD_PART_URL.match(upload_url)
        if match is None:
            raise BadUploadUrl(upload_url)
        if upload_auth_token in self.expired_upload_tokens:
            raise AuthExpiredError('upload token expired', 'expired_auth_token')
        with self._lock:
            self._raise_injected_error()
            file_sim = self._get_unfinished(match.group(1))
            data_bytes = self._read_checked(input_stream, content_length, sha1_sum, part_number)
            part_dict = dict(
                fileId=file_sim.file_id,
                partNumber=part_number,
                contentLength=content_length,
                contentSha1=sha1_sum,
                uploadTimestamp=next(self._timestamps),
            )
            file_sim.parts[part_number] = (part_dict, data_bytes)
            return dict(part_dict)

    # Helpers; the callers hold the lock

    def _check_auth(self, api_url, account_auth_token, account_id):
        if api_url != self.API_URL:
            raise ValueError('wrong API URL: %s' % (api_url,))
        token_account = self.token_accounts.get(account_auth_token)
        if token_account is None:
            raise AuthExpiredError('unknown auth token', 'bad_auth_token')
        if account_auth_token in self.expired_auth_tokens:
            raise AuthExpiredError('auth token expired', 'expired_auth_token')
        if token_account != account_id:
            raise Unauthorized('', 'unauthorized')

    def _raise_injected_error(self):
        if self.upload_errors:
            raise self.upload_errors.pop(0)

    def _read_checked(self, stream, content_length, content_sha1, key):
        data_bytes = stream.read()
        if len(data_bytes) != content_length:
            raise ValueError('read %d bytes, expected %d' % (len(data_bytes), content_length))
        if hex_sha1_of_bytes(data_bytes) != content_sha1:
            raise PartIntegrityError(key, 'checksum did not match data received')
        return data_bytes

    def _add_file(self, bucket, action, name, content_type, content_sha1, file_info, data_bytes):
        file_id = str(next(self._file_numbers))
        file_sim = FileSimulator(
            bucket.account_id, bucket.bucket_id, file_id, action, name, content_type, content_sha1,
            file_info, data_bytes, next(self._timestamps)
        )
        self.files[file_id] = file_sim
        return file_sim

    def _files_in(self, bucket_id):
        return [f for f in self.files.values() if f.bucket_id == bucket_id]

    def _latest_versions(self, bucket_id):
        """
        File name -> newest finished version or hide marker with that name.
        """
        latest = {}
        for f in self._files_in(bucket_id):
            if f.action == 'start':
                continue
            current = latest.get(f.name)
            # ids count down
            if current is None or int(f.file_id) < int(current.file_id):
                latest[f.name] = f
        return latest

    def _get_bucket(self, bucket_id):
        if bucket_id not in self.buckets:
            raise NonExistentBucket(bucket_id)
        return self.buckets[bucket_id]

    def _get_bucket_by_name(self, bucket_name):
        for bucket in self.buckets.values():
            if bucket.bucket_name == bucket_name:
                return bucket
        raise NonExistentBucket(bucket_name)

    def _get_file(self, file_id):
        if file_id not in self.files:
            raise FileNotPresent()
        return self.files[file_id]

    def _get_unfinished(self, file_id):
        file_sim = self._get_file(file_id)
        if file_sim.action != 'start':
            raise FileNotPresent(file_sim.name)
        return file_sim
