######################################################################
#
# File: b2backblaze/session.py
#
# Copyright 2018 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import functools
import logging
import os
import threading

from .account_info import AuthorizeAccountResponseFactory, InMemoryAccountInfo, REALM_URLS
from .b2http import B2Http
from .exception import AuthExpiredError, MissingAccountData
from .raw_api import B2RawApi
from .utils import B2TraceMeta

logger = logging.getLogger(__name__)

# Names of the environment variables read by B2Session.from_environment()
ENV_APPLICATION_KEY_ID = 'B2_APPLICATION_KEY_ID'
ENV_APPLICATION_KEY = 'B2_APPLICATION_KEY'
ENV_REALM = 'B2_REALM'
ENV_HTTP_TIMEOUT = 'B2_HTTP_TIMEOUT'


class B2Session(object, metaclass=B2TraceMeta):
    """
        Owns the credentials of one account and the authorization obtained
        with them.

        Also a *magic* facade that supplies the correct api_url and
        account_auth_token to methods of the underlying raw_api:

            session.list_parts(file_id, 1, 100)

        calls raw_api.list_parts(api_url, account_auth_token, file_id, 1, 100),
        authorizing first if needed.  When B2 says the token is no longer
        valid, the session authorizes again and repeats the call, once.
    """

    def __init__(
        self,
        account_id,
        application_key,
        realm='production',
        timeout=None,
        raw_api=None,
        account_info=None
    ):
        """
        :param account_id: account id, or application key id
        :param application_key: the secret that goes with it
        :param realm: 'production', 'staging', 'dev', or the URL of an authorization server
        :param timeout: seconds to wait for each HTTP request, 2.0 if None
        :param raw_api: an AbstractRawApi, built from a B2Http if None
        :param account_info: an InMemoryAccountInfo, new if None
        """
        self.account_id = account_id
        self._application_key = application_key
        self.realm = realm
        self.realm_url = REALM_URLS.get(realm, realm)
        self.raw_api = raw_api or B2RawApi(B2Http(timeout=timeout))
        self.account_info = account_info or InMemoryAccountInfo()
        self._auth_lock = threading.RLock()

    @classmethod
    def from_environment(cls, environ=None, raw_api=None):
        """
        Makes a session from B2_APPLICATION_KEY_ID and B2_APPLICATION_KEY,
        and the optional B2_REALM and B2_HTTP_TIMEOUT.
        """
        if environ is None:
            environ = os.environ
        account_id = environ.get(ENV_APPLICATION_KEY_ID)
        if not account_id:
            raise MissingAccountData(ENV_APPLICATION_KEY_ID)
        application_key = environ.get(ENV_APPLICATION_KEY)
        if not application_key:
            raise MissingAccountData(ENV_APPLICATION_KEY)
        realm = environ.get(ENV_REALM) or 'production'
        timeout = environ.get(ENV_HTTP_TIMEOUT)
        if timeout is not None:
            timeout = float(timeout)
        return cls(account_id, application_key, realm=realm, timeout=timeout, raw_api=raw_api)

    def authorize(self):
        """
        Calls b2_authorize_account and stores the result.

        The stored state changes only when the response is complete and
        well formed; any error leaves it as it was, and is raised.
        """
        with self._auth_lock:
            response = self.raw_api.authorize_account(
                self.realm_url, self.account_id, self._application_key
            )
            auth = AuthorizeAccountResponseFactory.from_api_response(response)
            self.account_info.set_auth_data(auth)
            logger.info('authorized account %s at %s', auth.account_id, auth.api_url)
            return auth

    def ensure_authorized(self):
        """
        Authorizes unless already authorized.  No network call when the
        session already holds a token.
        """
        if not self.account_info.is_authorized():
            with self._auth_lock:
                if not self.account_info.is_authorized():
                    self.authorize()

    def invalidate(self):
        """
        Forgets the token, the URLs, and the upload URLs obtained with them.
        """
        with self._auth_lock:
            self.account_info.clear_auth_data()

    def is_authorized(self):
        return self.account_info.is_authorized()

    def get_minimum_part_size(self):
        self.ensure_authorized()
        return self.account_info.get_minimum_part_size()

    def _reauthorize(self, rejected_token):
        """
        Authorizes again, unless another thread already replaced the
        rejected token.
        """
        with self._auth_lock:
            if (
                self.account_info.is_authorized() and
                self.account_info.get_account_auth_token() != rejected_token
            ):
                return
            self.account_info.clear_auth_data()
            self.authorize()

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)
        f = getattr(self.raw_api, name)

        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            auth_failure_encountered = False
            # download_file_from_url needs the download URL
            url_factory = kwargs.pop('url_factory', self.account_info.get_api_url)
            while 1:
                self.ensure_authorized()
                api_url = url_factory()
                account_auth_token = self.account_info.get_account_auth_token()
                try:
                    return f(api_url, account_auth_token, *args, **kwargs)
                except AuthExpiredError:
                    if auth_failure_encountered:
                        raise
                    auth_failure_encountered = True
                    logger.info('auth token rejected by %s, authorizing again', name)
                    self._reauthorize(account_auth_token)

        return wrapper
