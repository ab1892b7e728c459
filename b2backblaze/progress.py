######################################################################
#
# File: b2backblaze/progress.py
#
# Copyright 2018 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

from abc import ABCMeta, abstractmethod

from tqdm import tqdm


class AbstractProgressListener(object, metaclass=ABCMeta):
    """
    Told how far an upload has got.

    set_total_bytes() comes first.  bytes_completed() then gets the number
    of bytes sent so far, which goes down again when a part is resent.
    close() comes last, exactly once.  A listener is also a context
    manager that closes it.
    """

    def __init__(self):
        self._closed = False

    @abstractmethod
    def set_total_bytes(self, total_byte_count):
        pass

    @abstractmethod
    def bytes_completed(self, byte_count):
        pass

    @abstractmethod
    def close(self):
        assert not self._closed, 'progress listener closed twice'
        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class TqdmProgressListener(AbstractProgressListener):
    """
    Draws a tqdm progress bar on stderr.
    """

    def __init__(self, description):
        super(TqdmProgressListener, self).__init__()
        self.description = description
        self.bar = None
        self.shown = 0

    def set_total_bytes(self, total_byte_count):
        if self.bar is None:
            self.bar = tqdm(
                desc=self.description,
                total=total_byte_count,
                unit='B',
                unit_scale=True,
                leave=True,
                miniters=1,
            )

    def bytes_completed(self, byte_count):
        # a tqdm bar only moves forward; after a resend it waits to catch up
        if byte_count > self.shown:
            self.bar.update(byte_count - self.shown)
            self.shown = byte_count

    def close(self):
        if self.bar is not None:
            self.bar.close()
        super(TqdmProgressListener, self).close()


class DoNothingProgressListener(AbstractProgressListener):
    def set_total_bytes(self, total_byte_count):
        pass

    def bytes_completed(self, byte_count):
        pass

    def close(self):
        super(DoNothingProgressListener, self).close()


class ProgressListenerForTest(AbstractProgressListener):
    """
    Records each call as a string, e.g. 'bytes_completed(100)'.
    """

    def __init__(self):
        super(ProgressListenerForTest, self).__init__()
        self.calls = []

    def set_total_bytes(self, total_byte_count):
        self.calls.append('set_total_bytes(%d)' % (total_byte_count,))

    def bytes_completed(self, byte_count):
        self.calls.append('bytes_completed(%d)' % (byte_count,))

    def close(self):
        self.calls.append('close()')
        super(ProgressListenerForTest, self).close()

    def get_calls(self):
        return self.calls


def make_progress_listener(description, quiet):
    """
    A tqdm bar labelled with the description, or nothing when quiet.
    """
    if quiet:
        return DoNothingProgressListener()
    return TqdmProgressListener(description)


class RangeOfInputStream(object):
    """
    Reads `length` bytes of a seekable stream, starting at `offset`, as if
    they were a whole stream.  seek(0) goes back to `offset`.
    """

    def __init__(self, stream, offset, length):
        self.stream = stream
        self.offset = offset
        self.length = length
        self.position = 0

    def seek(self, pos):
        self.stream.seek(self.offset + pos)
        self.position = pos

    def read(self, size=None):
        left = self.length - self.position
        if size is not None and 0 <= size < left:
            left = size
        data = self.stream.read(left)
        self.position += len(data)
        return data


class ReadingStreamWithProgress(object):
    """
    Passes reads through to a stream and tells a progress listener the
    number of bytes read so far, plus `offset`.

    It has no tell(), so requests sends it with the Content-Length header
    it is given.
    """

    def __init__(self, stream, progress_listener, offset=0):
        self.stream = stream
        self.progress_listener = progress_listener
        self.offset = offset
        self.bytes_read = 0

    def seek(self, pos):
        self.bytes_read = 0
        return self.stream.seek(pos)

    def read(self, size=None):
        data = self.stream.read() if size is None else self.stream.read(size)
        self.bytes_read += len(data)
        self.progress_listener.bytes_completed(self.offset + self.bytes_read)
        return data
