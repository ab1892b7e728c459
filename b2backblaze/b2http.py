######################################################################
#
# File: b2backblaze/b2http.py
#
# Copyright 2018 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import io
import json
import logging
import socket
import time
from contextlib import closing

import arrow
import requests
from requests.packages.urllib3.exceptions import MaxRetryError, ProtocolError

from .exception import (
    B2Error, BadDateFormat, BrokenPipe, B2ConnectionError, B2RequestTimeout, ClockSkew,
    ConnectionReset, interpret_b2_error, MalformedResponse, UnknownError, UnknownHost
)
from .version import USER_AGENT

logger = logging.getLogger(__name__)

# Seconds to wait for the server, for every call.
DEFAULT_TIMEOUT = 2.0

# 206 is the answer to a ranged download
SUCCESS_STATUSES = frozenset([200, 206])

MAX_CLOCK_SKEW_SECONDS = 10 * 60
SERVER_DATE_FORMAT = 'ddd, DD MMM YYYY HH:mm:ss ZZZ'


def _connection_error_to_b2_error(error):
    """
    Looks at what urllib3 wrapped in a requests.ConnectionError to pick
    the matching B2Error.
    """
    cause = error.args[0] if error.args else None
    if isinstance(cause, MaxRetryError):
        if 'nodename nor servname provided, or not known' in str(cause.args[0]):
            # DNS is down somewhere between here and B2
            return UnknownHost()
    elif isinstance(cause, ProtocolError) and len(cause.args) > 1:
        reason = cause.args[1]
        if isinstance(reason, socket.error) and reason.args[1:2] == ('Broken pipe',):
            # B2 stopped reading the request body
            return BrokenPipe()
    return B2ConnectionError(str(error))


def _translate_errors(fcn, post_params=None):
    """
    Calls fcn, which sends one request, and returns its response.  Whatever
    goes wrong comes out as a B2Error.
    """
    try:
        response = fcn()
    except B2Error:
        raise
    except requests.ConnectionError as e:
        raise _connection_error_to_b2_error(e)
    except requests.Timeout as e:
        raise B2RequestTimeout(str(e))
    except Exception as e:
        description = repr(e)
        # pyOpenSSL is optional, so its SysCallError(104, 'ECONNRESET') is matched by name
        if description.startswith('SysCallError') and 'ECONNRESET' in description:
            raise ConnectionReset()
        logger.exception('unexpected error while talking to B2')
        raise UnknownError(description)

    if response.status_code not in SUCCESS_STATUSES:
        raise _interpret_error_response(response, post_params)
    return response


def _interpret_error_response(response, post_params):
    """
    B2 explains a failure with a JSON body holding status, code and message.
    A proxy in front of B2 may send anything at all, and then only the HTTP
    status is known.
    """
    try:
        body = json.loads(response.content.decode('utf-8'))
        status, code, message = int(body['status']), body['code'], body['message']
    except (ValueError, KeyError, TypeError):
        status, code, message = response.status_code, 'unknown', 'undecodable error response'
    return interpret_b2_error(status, code, message, post_params)


def _translate_and_retry(fcn, try_count, post_params=None):
    """
    Sends the request up to try_count times.  An error gets another try
    only when it says a retry may help, after a pause that starts at one
    second and grows by half each time.  The error of the last try is raised.
    """
    pause = 1.0
    for attempt in range(1, try_count + 1):
        try:
            return _translate_errors(fcn, post_params)
        except B2Error as e:
            if attempt == try_count or not e.should_retry_http():
                raise
            logger.debug(
                'try %d of %d failed with %s, pausing %.1f seconds', attempt, try_count, e, pause
            )
            time.sleep(pause)
            pause *= 1.5


def _json_body(response):
    """
    Decodes the body of a successful response, and closes the response.
    """
    try:
        return json.loads(response.content.decode('utf-8'))
    except ValueError:
        raise MalformedResponse('response body is not JSON')
    finally:
        response.close()


class HttpCallback(object):
    """
    Hooks around every request.  Both do nothing here.
    """

    def pre_request(self, method, url, headers):
        """
        May raise a B2HttpCallbackException to stop the request
        from being sent.
        """

    def post_request(self, method, url, headers, response):
        """
        May raise a B2HttpCallbackException to make the request
        count as failed.
        """


class ClockSkewHook(HttpCallback):
    """
    Fails requests when the server clock and the local clock disagree by
    more than ten minutes.
    """

    def post_request(self, method, url, headers, response):
        # Looks like "Fri, 16 Dec 2016 20:52:30 GMT"
        date_header = response.headers['Date']
        try:
            # arrow parses English month names whatever the locale is
            server_time = arrow.get(date_header, SERVER_DATE_FORMAT)
        except arrow.parser.ParserError:
            logger.exception('cannot parse Date header %r', date_header)
            raise BadDateFormat(date_header)

        skew_seconds = int((arrow.utcnow() - server_time).total_seconds())
        if abs(skew_seconds) > MAX_CLOCK_SKEW_SECONDS:
            raise ClockSkew(skew_seconds)


class B2Http(object):
    """
    Sends requests to B2 through a requests.Session.

    Every method either returns what B2 sent back or raises a B2Error:

        try:
            bucket_dict = b2_http.post_json_return_json(url, headers, params)
        except B2Error as e:
            ...

    try_count is how many times a request that fails with a retryable error
    is sent.  Every request waits at most `timeout` seconds for the server.
    """

    def __init__(self, requests_module=None, install_clock_skew_hook=True, timeout=None):
        """
        :param requests_module: the requests module, or a mock of it
        :param install_clock_skew_hook: check the Date header of every response
        :param timeout: seconds to wait for the server, DEFAULT_TIMEOUT if None
        """
        self.session = (requests_module or requests).Session()
        self.timeout = DEFAULT_TIMEOUT if timeout is None else timeout
        self.callbacks = []
        if install_clock_skew_hook:
            self.add_callback(ClockSkewHook())

    def add_callback(self, callback):
        self.callbacks.append(callback)

    def post_content_return_json(self, url, headers, data, try_count=1, post_params=None):
        """
        Posts the contents of a seekable file-like object and returns the
        decoded JSON response.

        :param post_params: what the request is about, to make errors more specific
        """
        response = self._send('POST', url, headers, try_count, post_params=post_params, data=data)
        return _json_body(response)

    def post_json_return_json(self, url, headers, params, try_count=1):
        body = io.BytesIO(json.dumps(params).encode('utf-8'))
        return self.post_content_return_json(url, headers, body, try_count, post_params=params)

    def get_json_return_json(self, url, headers, try_count=1):
        return _json_body(self._send('GET', url, headers, try_count))

    def get_content(self, url, headers, try_count=1):
        """
        Starts a streaming download.  Returns a context manager giving the
        response, which has `headers` and `iter_content()`, and closing it
        at the end:

            with b2_http.get_content(url, headers) as response:
                for chunk in response.iter_content(chunk_size=1024):
                    ...
        """
        return closing(self._send('GET', url, headers, try_count, stream=True))

    def _send(self, method, url, headers, try_count, post_params=None, data=None, stream=False):
        headers = dict(headers)
        headers['User-Agent'] = USER_AGENT
        send = getattr(self.session, method.lower())
        options = {'headers': headers, 'timeout': self.timeout}
        if data is not None:
            options['data'] = data
        if stream:
            options['stream'] = True

        def attempt():
            if data is not None:
                # a retry sends the body from the start again
                data.seek(0)
            for callback in self.callbacks:
                callback.pre_request(method, url, headers)
            response = send(url, **options)
            for callback in self.callbacks:
                callback.post_request(method, url, headers, response)
            return response

        return _translate_and_retry(attempt, try_count, post_params)
