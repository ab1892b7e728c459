######################################################################
#
# File: b2backblaze/account_info.py
#
# Copyright 2018 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import threading

from .exception import MalformedResponse, MissingAccountData
from .response import get_fields
from .utils import B2TraceMeta, limit_trace_arguments

# Used when b2_authorize_account does not name a part size.
DEFAULT_MINIMUM_PART_SIZE = 100 * 1000 * 1000

REALM_URLS = {
    'production': 'https://api.backblazeb2.com',
    'staging': 'https://api.backblaze.net',
    'dev': 'http://api.backblazeb2.xyz:8180',
}

# Older and newer servers name the part size differently.
_PART_SIZE_KEYS = ('minimumPartSize', 'recommendedPartSize', 'absoluteMinimumPartSize')


class AuthorizeAccountResponse(object):
    """
    What a session keeps from b2_authorize_account.
    """

    def __init__(self, account_id, authorization_token, api_url, download_url, minimum_part_size):
        self.account_id = account_id
        self.authorization_token = authorization_token
        self.api_url = api_url
        self.download_url = download_url
        self.minimum_part_size = minimum_part_size

    def __repr__(self):
        return '<%s %s %s>' % (self.__class__.__name__, self.account_id, self.api_url)

    def __eq__(self, other):
        return isinstance(other, self.__class__) and vars(self) == vars(other)

    def __ne__(self, other):
        return not (self == other)


class AuthorizeAccountResponseFactory(object):
    @classmethod
    def from_api_response(cls, response):
        """
        Reads a b2_authorize_account response:

            {
              "accountId": "YOUR_ACCOUNT_ID",
              "apiUrl": "https://api001.backblazeb2.com",
              "authorizationToken": "4_0022623512fc8f80000000001_0186e431_d18d02_acct_tH7VW03boebOXayIc43-sxptpfA=",
              "downloadUrl": "https://f001.backblazeb2.com",
              "minimumPartSize": 100000000
            }

        All four strings must be present and non-empty.
        """
        strings = get_fields(
            response, 'authorization', 'accountId', 'authorizationToken', 'apiUrl', 'downloadUrl'
        )
        for value in strings:
            if not isinstance(value, str) or not value:
                raise MalformedResponse('authorization has an empty or non-string field')
        return AuthorizeAccountResponse(*strings, minimum_part_size=cls._part_size(response))

    @classmethod
    def _part_size(cls, response):
        for key in _PART_SIZE_KEYS:
            if key not in response:
                continue
            value = response[key]
            # bool is an int, and never a size
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise MalformedResponse('%s is not a positive integer: %r' % (key, value))
            return value
        return DEFAULT_MINIMUM_PART_SIZE


class UploadUrlPool(object):
    """
    Upload URLs with their tokens, kept by key (a bucket id or a large
    file id).  A URL that is taken is in use by one upload only, and is put
    back when that upload succeeds.

    This class is THREAD SAFE.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._by_key = {}

    def put(self, key, url, auth_token):
        with self._lock:
            self._by_key.setdefault(key, []).append((url, auth_token))

    def take(self, key):
        """
        Returns (url, auth_token), or (None, None) when the pool has none for the key.
        """
        with self._lock:
            available = self._by_key.get(key)
            if not available:
                return (None, None)
            return available.pop()

    def clear_for_key(self, key):
        with self._lock:
            self._by_key.pop(key, None)

    def clear(self):
        with self._lock:
            self._by_key = {}


class InMemoryAccountInfo(object, metaclass=B2TraceMeta):
    """
    The authorization of one session, and the upload URLs obtained with it.

    The authorization is one AuthorizeAccountResponse, swapped as a whole,
    so the token and the URLs read from it always come from the same
    b2_authorize_account call.  Getters raise MissingAccountData while
    there is none.

    This class is THREAD SAFE.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._auth = None
        self._bucket_upload_urls = UploadUrlPool()
        self._large_file_upload_urls = UploadUrlPool()

    @limit_trace_arguments(only=['self'])
    def set_auth_data(self, auth_response):
        with self._lock:
            self._auth = auth_response

    def clear_auth_data(self):
        """
        Drops the authorization together with the upload URLs handed out under it.
        """
        with self._lock:
            self._auth = None
        self._bucket_upload_urls.clear()
        self._large_file_upload_urls.clear()

    def is_authorized(self):
        with self._lock:
            return self._auth is not None

    def _auth_field(self, name):
        with self._lock:
            auth = self._auth
        if auth is None:
            raise MissingAccountData(name)
        return getattr(auth, name)

    def get_account_id(self):
        return self._auth_field('account_id')

    def get_account_auth_token(self):
        return self._auth_field('authorization_token')

    def get_api_url(self):
        return self._auth_field('api_url')

    def get_download_url(self):
        return self._auth_field('download_url')

    def get_minimum_part_size(self):
        return self._auth_field('minimum_part_size')

    @limit_trace_arguments(only=['self', 'bucket_id'])
    def put_bucket_upload_url(self, bucket_id, upload_url, upload_auth_token):
        self._bucket_upload_urls.put(bucket_id, upload_url, upload_auth_token)

    def take_bucket_upload_url(self, bucket_id):
        return self._bucket_upload_urls.take(bucket_id)

    def clear_bucket_upload_data(self, bucket_id):
        self._bucket_upload_urls.clear_for_key(bucket_id)

    @limit_trace_arguments(only=['self', 'file_id'])
    def put_large_file_upload_url(self, file_id, upload_url, upload_auth_token):
        self._large_file_upload_urls.put(file_id, upload_url, upload_auth_token)

    def take_large_file_upload_url(self, file_id):
        return self._large_file_upload_urls.take(file_id)

    def clear_large_file_upload_urls(self, file_id):
        self._large_file_upload_urls.clear_for_key(file_id)
