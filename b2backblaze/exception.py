######################################################################
#
# File: b2backblaze/exception.py
#
# Copyright 2016 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import re
from abc import ABCMeta

# "AlreadyFailed" -> "Already Failed", "UnknownHTTPError" -> "Unknown HTTP Error"
_WORD_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])')


class B2Error(Exception, metaclass=ABCMeta):
    """
    Root of everything this package raises.

    Two class attributes tell the callers what to do next: `retry_http`
    lets B2Http send the same request again, and `retry_upload` lets an
    uploader fetch a fresh upload URL and send the data again.
    """

    retry_http = False
    retry_upload = False

    @property
    def prefix(self):
        """
        The class name, spelled out as words

        >>> B2SimpleError().prefix
        'Simple error'
        >>> AlreadyFailed().prefix
        'Already failed'
        >>> InvalidPartSize().prefix
        'Invalid part size'
        """
        name = self.__class__.__name__
        if name.startswith('B2'):
            name = name[2:]
        words = _WORD_BOUNDARY.sub(' ', name).lower()
        return words[:1].upper() + words[1:]

    def should_retry_http(self):
        return self.retry_http

    def should_retry_upload(self):
        return self.retry_upload


class B2SimpleError(B2Error, metaclass=ABCMeta):
    """
    Shows as "<prefix>: <argument>".
    """

    def __str__(self):
        return '%s: %s' % (self.prefix, Exception.__str__(self))


class TransientNetworkError(B2Error, metaclass=ABCMeta):
    """
    The request may succeed if it is sent again later.
    """
    retry_http = True
    retry_upload = True


class ValidationError(B2SimpleError, metaclass=ABCMeta):
    """
    Found wrong before anything was sent to B2.
    """


class FatalProtocolError(B2SimpleError, metaclass=ABCMeta):
    """
    B2 answered with something this client cannot make sense of.
    """


# Local validation

class InvalidBucketName(ValidationError):
    pass


class InvalidMaxCount(ValidationError):
    pass


class InvalidPartSize(ValidationError):
    pass


class InvalidUploadSource(ValidationError):
    pass


class TooManyFileInfos(ValidationError):
    prefix = 'Too many file info entries'


class UnusableFileName(ValidationError):
    """
    The name breaks the B2 rules for file names, see
    https://www.backblaze.com/b2/docs/files.html
    """


# Transport

class B2ConnectionError(TransientNetworkError, B2SimpleError):
    pass


class B2RequestTimeout(TransientNetworkError, B2SimpleError):
    pass


class BrokenPipe(TransientNetworkError):
    retry_http = False

    def __str__(self):
        return 'Broken pipe: unable to send entire request'


class ConnectionReset(TransientNetworkError):
    retry_http = False

    def __str__(self):
        return 'Connection reset'


class UnknownHost(TransientNetworkError):
    def __str__(self):
        return 'unknown host'


class ServiceError(TransientNetworkError):
    """
    HTTP 5xx.  Shows as "<status> <code> <message>".
    """


class TooManyRequests(TransientNetworkError):
    def __str__(self):
        return 'Too many requests'


class B2HttpCallbackException(B2SimpleError):
    """
    Raised by an HttpCallback to fail a request.
    """


class ClockSkew(B2HttpCallbackException):
    def __init__(self, clock_skew_seconds):
        """
        :param clock_skew_seconds: local time minus server time
        """
        super(ClockSkew, self).__init__()
        self.clock_skew_seconds = clock_skew_seconds

    def __str__(self):
        direction = 'ahead of' if self.clock_skew_seconds >= 0 else 'behind'
        return 'Clock skew: local clock is %d seconds %s server' % (
            abs(self.clock_skew_seconds), direction
        )


# Responses

class BadDateFormat(FatalProtocolError):
    prefix = 'Date from server'


class MalformedResponse(FatalProtocolError):
    pass


class UnknownError(FatalProtocolError):
    pass


class BadJson(B2SimpleError):
    prefix = 'Bad request'


class Conflict(B2SimpleError):
    pass


class StorageCapExceeded(B2Error):
    def __str__(self):
        return 'Cannot upload files, storage cap exceeded.'


# Authorization

class MissingAccountData(B2Error):
    def __init__(self, key):
        super(MissingAccountData, self).__init__(key)
        self.key = key

    def __str__(self):
        return 'Missing account data: %s' % (self.key,)


class Unauthorized(B2Error):
    retry_upload = True

    def __init__(self, message, code):
        super(Unauthorized, self).__init__(message, code)
        self.message = message
        self.code = code

    def __str__(self):
        return '%s (%s)' % (self.message, self.code)


class AuthExpiredError(Unauthorized):
    """
    The token is no longer accepted.  A token that is accepted but lacks a
    capability gives a plain Unauthorized.
    """

    def __init__(self, message, code):
        super(AuthExpiredError, self).__init__(
            'Invalid authorization token. Server said: ' + message, code
        )


# Buckets and files

class DuplicateBucketName(B2SimpleError):
    prefix = 'Bucket name is already in use'


class NonExistentBucket(B2SimpleError):
    prefix = 'No such bucket'


class FileAlreadyHidden(B2SimpleError):
    pass


class FileNotPresent(B2SimpleError):
    pass


class InvalidFileNameError(B2SimpleError):
    """
    B2 refused a file name.  Large file names are only checked there.
    """
    prefix = 'Invalid file name'


# Uploads

class AlreadyFailed(B2SimpleError):
    pass


class BadUploadUrl(TransientNetworkError, B2SimpleError):
    retry_http = False


class InvalidUploadState(B2SimpleError):
    """
    The uploader cannot do that now, e.g. finish() after cancel().
    """


class MissingPart(B2SimpleError):
    prefix = 'Part number has not been uploaded'


class PartIntegrityError(B2Error):
    retry_upload = True

    def __init__(self, key, message=''):
        super(PartIntegrityError, self).__init__(key, message)
        self.key = key
        self.message = message

    def __str__(self):
        return 'Part %s has wrong SHA1' % (self.key,)


class MaxRetriesExceeded(B2Error):
    def __init__(self, limit, exception_info_list):
        super(MaxRetriesExceeded, self).__init__(limit)
        self.limit = limit
        self.exception_info_list = exception_info_list

    def __str__(self):
        return 'FAILED to upload after %s tries. Encountered exceptions: %s' % (
            self.limit, '\n'.join(map(str, self.exception_info_list))
        )


class UploadCancelled(B2SimpleError):
    pass


def _file_not_present(status, code, message, post_params):
    if 'fileName' in post_params:
        return FileNotPresent(post_params['fileName'])
    return FileNotPresent()


def _bad_request(status, code, message, post_params):
    lowered = message.lower()
    if 'checksum' in lowered:
        # b2_upload_part says "Checksum did not match data received"
        return PartIntegrityError(post_params.get('partNumber'), message)
    if 'fileName' in post_params and ('file name' in lowered or 'filename' in lowered):
        return InvalidFileNameError(message)
    return None


# (status, code) -> factory(status, code, message, post_params).  A factory
# returning None leaves the decision to the status-only rules below.
_ERROR_FACTORIES = {
    (400, 'already_hidden'): lambda s, c, m, p: FileAlreadyHidden(p.get('fileName')),
    (400, 'bad_json'): lambda s, c, m, p: BadJson(m),
    (400, 'bad_request'): _bad_request,
    (400, 'checksum_mismatch'): lambda s, c, m, p: PartIntegrityError(p.get('partNumber'), m),
    (400, 'duplicate_bucket_name'): lambda s, c, m, p: DuplicateBucketName(p.get('bucketName')),
    (400, 'file_not_present'): _file_not_present,
    (400, 'missing_part'): lambda s, c, m, p: MissingPart(p.get('fileId')),
    (400, 'no_such_file'): _file_not_present,
    (400, 'part_sha1_mismatch'): lambda s, c, m, p: PartIntegrityError(p.get('fileId'), m),
    (401, 'bad_auth_token'): lambda s, c, m, p: AuthExpiredError(m, c),
    (401, 'expired_auth_token'): lambda s, c, m, p: AuthExpiredError(m, c),
    (403, 'storage_cap_exceeded'): lambda s, c, m, p: StorageCapExceeded(),
    (404, 'not_found'): _file_not_present,
}


def interpret_b2_error(status, code, message, post_params=None):
    """
    Picks the B2Error for an error response.

    :param post_params: the parameters of the failed request; the file name,
                        bucket name or part number in them go into the error
    """
    post_params = post_params or {}
    factory = _ERROR_FACTORIES.get((status, code))
    if factory is not None:
        error = factory(status, code, message, post_params)
        if error is not None:
            return error

    summary = '%d %s %s' % (status, code, message)
    if status == 401:
        return Unauthorized(message, code)
    if status == 409:
        return Conflict()
    if status == 429:
        return TooManyRequests()
    if 500 <= status < 600:
        return ServiceError(summary)
    return UnknownError(summary)
