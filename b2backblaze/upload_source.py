######################################################################
#
# File: b2backblaze/upload_source.py
#
# Copyright 2018 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import io
import os
from abc import ABCMeta, abstractmethod

from .exception import InvalidUploadSource
from .utils import hex_sha1_of_bytes, hex_sha1_of_stream


class AbstractUploadSource(object, metaclass=ABCMeta):
    """
    Data to upload.

    open() may be called any number of times and must give the same bytes
    every time, because a part that fails is read again.
    """

    @abstractmethod
    def get_content_length(self):
        pass

    @abstractmethod
    def get_content_sha1(self):
        """
        Returns the hex SHA1 of the whole content.
        """

    @abstractmethod
    def open(self):
        """
        Returns a binary file object positioned at the start, usable in a with statement.
        """


class UploadSourceBytes(AbstractUploadSource):
    def __init__(self, data_bytes):
        if not isinstance(data_bytes, (bytes, bytearray)):
            raise InvalidUploadSource(
                'cannot upload a %s, only bytes' % (type(data_bytes).__name__,)
            )
        self.data_bytes = bytes(data_bytes)

    def get_content_length(self):
        return len(self.data_bytes)

    def get_content_sha1(self):
        return hex_sha1_of_bytes(self.data_bytes)

    def open(self):
        return io.BytesIO(self.data_bytes)

    def __repr__(self):
        return '<%s %d bytes>' % (self.__class__.__name__, len(self.data_bytes))


class UploadSourceLocalFile(AbstractUploadSource):
    """
    A file on the local disk.  Its size is read once, when the source is
    made, and the file must not change while it is uploaded.
    """

    def __init__(self, local_path, content_sha1=None):
        if not os.path.isfile(local_path):
            raise InvalidUploadSource('not a file: %s' % (local_path,))
        self.local_path = local_path
        self.content_length = os.path.getsize(local_path)
        self.content_sha1 = content_sha1

    def get_content_length(self):
        return self.content_length

    def get_content_sha1(self):
        if self.content_sha1 is None:
            with self.open() as f:
                try:
                    self.content_sha1 = hex_sha1_of_stream(f, self.content_length)
                except ValueError as e:
                    raise InvalidUploadSource('%s shrank: %s' % (self.local_path, e))
        return self.content_sha1

    def open(self):
        return open(self.local_path, 'rb')

    def __repr__(self):
        return '<%s %s>' % (self.__class__.__name__, self.local_path)
