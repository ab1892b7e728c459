######################################################################
#
# File: test/test_progress.py
#
# Copyright 2019 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import io
from unittest.mock import call, patch

from b2backblaze.progress import (
    DoNothingProgressListener,
    make_progress_listener,
    ProgressListenerForTest,
    RangeOfInputStream,
    ReadingStreamWithProgress,
    TqdmProgressListener,
)
from .test_base import TestBase


class TestRangeOfInputStream(TestBase):
    def setUp(self):
        self.file = io.BytesIO(b'0123456789')
        self.file.seek(3)
        self.stream = RangeOfInputStream(self.file, 3, 4)

    def test_read_all(self):
        self.assertEqual(b'3456', self.stream.read())
        self.assertEqual(b'', self.stream.read())

    def test_read_in_pieces(self):
        self.assertEqual(b'34', self.stream.read(2))
        self.assertEqual(b'56', self.stream.read(5))
        self.assertEqual(b'', self.stream.read(1))

    def test_seek_zero_rewinds_to_the_offset(self):
        self.stream.read()
        self.stream.seek(0)
        self.assertEqual(b'3456', self.stream.read(-1))


class TestReadingStreamWithProgress(TestBase):
    def setUp(self):
        self.listener = ProgressListenerForTest()
        self.stream = ReadingStreamWithProgress(io.BytesIO(b'0123456789'), self.listener)

    def test_reports_total_so_far(self):
        self.stream.read(4)
        self.stream.read(4)
        self.stream.read()
        self.assertEqual(
            ['bytes_completed(4)', 'bytes_completed(8)', 'bytes_completed(10)'],
            self.listener.get_calls(),
        )

    def test_seek_restarts_count(self):
        self.stream.read(4)
        self.stream.seek(0)
        self.assertEqual(b'0123456789', self.stream.read())
        self.assertEqual(
            ['bytes_completed(4)', 'bytes_completed(10)'],
            self.listener.get_calls(),
        )

    def test_offset(self):
        stream = ReadingStreamWithProgress(io.BytesIO(b'abc'), self.listener, offset=100)
        stream.read()
        self.assertEqual(['bytes_completed(103)'], self.listener.get_calls())

    def test_no_tell(self):
        # requests measures streams that have tell() by seeking to their end
        self.assertFalse(hasattr(self.stream, 'tell'))


class TestProgressListeners(TestBase):
    def test_make_progress_listener(self):
        self.assertIsInstance(make_progress_listener('file', True), DoNothingProgressListener)
        self.assertIsInstance(make_progress_listener('file', False), TqdmProgressListener)

    def test_close_twice(self):
        listener = DoNothingProgressListener()
        listener.close()
        with self.assertRaises(AssertionError):
            listener.close()

    def test_context_manager_closes(self):
        with ProgressListenerForTest() as listener:
            listener.set_total_bytes(10)
            listener.bytes_completed(5)
        self.assertEqual(
            ['set_total_bytes(10)', 'bytes_completed(5)', 'close()'], listener.get_calls()
        )

    def test_tqdm_listener_never_goes_backwards(self):
        with patch('b2backblaze.progress.tqdm') as mock_tqdm:
            listener = TqdmProgressListener('big.bin')
            listener.set_total_bytes(100)
            listener.bytes_completed(40)
            listener.bytes_completed(10)
            listener.bytes_completed(70)
            listener.close()
        bar = mock_tqdm.return_value
        self.assertEqual([call(40), call(30)], bar.update.call_args_list)
        bar.close.assert_called_once_with()
