######################################################################
#
# File: b2backblaze/response.py
#
# Copyright 2019 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

from .exception import MalformedResponse


def get_fields(response, what, *keys):
    """
    Returns the values of the given keys of a decoded JSON object,
    or raises MalformedResponse naming `what` when one is missing.

    >>> get_fields({'fileId': 'id-1', 'fileName': 'a.txt'}, 'file', 'fileName', 'fileId')
    ['a.txt', 'id-1']
    """
    if not isinstance(response, dict):
        raise MalformedResponse('%s is not an object: %r' % (what, response))
    missing = [key for key in keys if key not in response]
    if missing:
        raise MalformedResponse('%s is missing %s' % (what, ', '.join(missing)))
    return [response[key] for key in keys]


def get_page(response, what, items_key, next_key):
    """
    Splits one page of a paged listing into (items, start of the next page).
    The second value is None on the last page.

    >>> get_page({'files': [], 'nextFileName': None}, 'file names', 'files', 'nextFileName')
    ([], None)
    """
    (items,) = get_fields(response, what, items_key)
    if not isinstance(items, list):
        raise MalformedResponse('%s in %s is not a list' % (items_key, what))
    return items, response.get(next_key)


def get_upload_url(response):
    """
    Returns (upload_url, upload_auth_token) from a b2_get_upload_url or
    b2_get_upload_part_url response.
    """
    upload_url, auth_token = get_fields(
        response, 'upload url', 'uploadUrl', 'authorizationToken'
    )
    if not upload_url or not auth_token:
        raise MalformedResponse('empty upload url or token')
    return upload_url, auth_token
