######################################################################
#
# File: b2backblaze/utils.py
#
# Copyright 2019 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import concurrent.futures as futures
import hashlib
from urllib.parse import quote, unquote_plus

from logfury.v1 import DefaultTraceAbstractMeta, DefaultTraceMeta, limit_trace_arguments, disable_trace

from .exception import InvalidPartSize

assert limit_trace_arguments
assert disable_trace

SHA1_BLOCK_SIZE = 1024 * 1024


class B2TraceMeta(DefaultTraceMeta):
    """
    Logs every call of a public method at DEBUG level, with its arguments.
    """


class B2TraceMetaAbstract(DefaultTraceAbstractMeta):
    pass


def b2_url_encode(s):
    """
    Percent-encodes a file name for an HTTP header or a download URL.

    >>> b2_url_encode(u'dir/a b.txt')
    'dir/a%20b.txt'
    """
    return quote(s.encode('utf-8'), safe='/\\')


def b2_url_decode(s):
    """
    B2 may send a space as '+' or as '%20'.

    >>> b2_url_decode('a+b%20c')
    'a b c'
    """
    return unquote_plus(s)


def hex_sha1_of_bytes(data):
    return hashlib.sha1(data).hexdigest()


def hex_sha1_of_stream(input_stream, content_length):
    """
    Reads exactly content_length bytes and returns their hex SHA1.
    Raises ValueError when the stream has fewer.
    """
    digest = hashlib.sha1()
    remaining = content_length
    while remaining > 0:
        block = input_stream.read(min(remaining, SHA1_BLOCK_SIZE))
        if not block:
            raise ValueError(
                'stream ended %d bytes short of %d' % (remaining, content_length)
            )
        digest.update(block)
        remaining -= len(block)
    return digest.hexdigest()


def choose_part_ranges(content_length, minimum_part_size):
    """
    Splits content_length bytes into (offset, length) parts of
    minimum_part_size bytes, the last one taking the remainder.
    No part is empty.

    >>> choose_part_ranges(250, 100)
    [(0, 100), (100, 100), (200, 50)]
    """
    check_part_size(minimum_part_size)
    return [
        (offset, min(minimum_part_size, content_length - offset))
        for offset in range(0, content_length, minimum_part_size)
    ]


def check_part_size(part_size):
    # bool is an int, and never a size
    if isinstance(part_size, bool) or not isinstance(part_size, int) or part_size <= 0:
        raise InvalidPartSize('part size must be a positive number of bytes, not %r' % (part_size,))


def interruptible_get_result(future):
    """
    Waits for a future one second at a time, so that Ctrl-C still
    reaches the waiting thread.
    """
    while True:
        try:
            return future.result(timeout=1.0)
        except futures.TimeoutError:
            continue
