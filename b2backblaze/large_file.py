######################################################################
#
# File: b2backblaze/large_file.py
#
# Copyright 2019 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import concurrent.futures as futures
import logging
import threading
import time

from .exception import (
    AlreadyFailed, B2Error, InvalidUploadSource, InvalidUploadState, MaxRetriesExceeded,
    PartIntegrityError, TransientNetworkError, UploadCancelled
)
from .file_version import FileVersionInfoFactory
from .part import PartFactory
from .progress import AbstractProgressListener, DoNothingProgressListener, RangeOfInputStream, ReadingStreamWithProgress
from .raw_api import AUTO_CONTENT_TYPE
from .response import get_upload_url
from .unfinished_large_file import UnfinishedLargeFileFactory
from .utils import B2TraceMeta, check_part_size, choose_part_ranges, hex_sha1_of_stream, interruptible_get_result

logger = logging.getLogger(__name__)


class LargeFileUploadState(object):
    """
    Tracks the status of uploading a large file, accepting updates
    from the tasks that upload each of the parts.

    The aggregated progress is passed on to a ProgressListener that
    reports the progress for the file as a whole.

    This class is THREAD SAFE.
    """

    def __init__(self, file_progress_listener):
        self.lock = threading.RLock()
        self.error = None
        self.file_progress_listener = file_progress_listener
        self.bytes_completed = 0

    def set_error(self, error):
        """
        Remembers the first error.  Later ones are consequences of it.
        """
        with self.lock:
            if self.error is None:
                self.error = error

    def has_error(self):
        with self.lock:
            return self.error is not None

    def get_error(self):
        with self.lock:
            assert self.has_error()
            return self.error

    def get_error_message(self):
        return str(self.get_error())

    def update_part_bytes(self, bytes_delta):
        with self.lock:
            self.bytes_completed += bytes_delta
            self.file_progress_listener.bytes_completed(self.bytes_completed)


class PartProgressReporter(AbstractProgressListener):
    """
    An adapter that listens to the progress of upload a part and
    gives the information to a LargeFileUploadState.

    Accepts absolute bytes_completed from the uploader, and reports
    deltas to the LargeFileUploadState.  The bytes_completed for the
    part will drop back to 0 on a retry, which will result in a
    negative delta.
    """

    def __init__(self, large_file_upload_state):
        super(PartProgressReporter, self).__init__()
        self.large_file_upload_state = large_file_upload_state
        self.prev_byte_count = 0

    def bytes_completed(self, byte_count):
        self.large_file_upload_state.update_part_bytes(byte_count - self.prev_byte_count)
        self.prev_byte_count = byte_count

    def close(self):
        pass

    def set_total_bytes(self, total_byte_count):
        pass


class LargeFileUploader(object, metaclass=B2TraceMeta):
    """
    Uploads one large file, part by part.

    The upload goes through these states:

        not_started --start()--> started --finish()--> finished
                                 started --cancel()--> cancelled

    While started, upload_next_part() sends one part, and
    upload_all_parts() sends every part not sent yet, serially or
    from a thread pool.  upload() does the whole thing, and cancels
    the large file on B2 if anything goes wrong, so the space reserved
    for it is not left behind.

    Parts are sent in order of part number, starting at 1.  All parts
    are minimum_part_size bytes long, except the last one, which is
    whatever remains.

    The upload source must return the same bytes each time it is opened,
    because a part that fails is read again and sent again, with a fresh
    upload URL, up to MAX_UPLOAD_ATTEMPTS times.
    """

    NOT_STARTED = 'not_started'
    STARTED = 'started'
    FINISHED = 'finished'
    CANCELLED = 'cancelled'

    MAX_UPLOAD_ATTEMPTS = 5
    DEFAULT_LIST_PARTS_BATCH_SIZE = 100

    def __init__(
        self,
        session,
        bucket_id,
        file_name,
        upload_source,
        content_type=None,
        file_info=None,
        minimum_part_size=None,
        progress_listener=None
    ):
        """
        :param session: a B2Session
        :param bucket_id: the bucket to put the file in
        :param file_name: the name of the new B2 file
        :param upload_source: an AbstractUploadSource with the contents of the file
        :param content_type: the MIME type, or None to let B2 choose it from the file name
        :param file_info: custom file info to be stored with the file
        :param minimum_part_size: bytes per part, or None to use the size the account was given
        :param progress_listener: object to notify as data is transferred
        """
        if minimum_part_size is not None:
            check_part_size(minimum_part_size)
        self.session = session
        self.bucket_id = bucket_id
        self.file_name = file_name
        self.upload_source = upload_source
        self.content_type = content_type or AUTO_CONTENT_TYPE
        self.file_info = file_info or {}
        self.minimum_part_size = minimum_part_size
        self.total_size = upload_source.get_content_length()
        self.progress_listener = progress_listener or DoNothingProgressListener()
        self.file_id = None
        self.part_ranges = None
        self.file_version = None
        self._lock = threading.RLock()
        self._state = self.NOT_STARTED
        self._parts = {}
        self._upload_state = LargeFileUploadState(self.progress_listener)
        self._progress_closed = False

    @property
    def state(self):
        with self._lock:
            return self._state

    @property
    def parts(self):
        """
        The parts uploaded so far, ordered by part number.
        """
        with self._lock:
            return [self._parts[part_number] for part_number in sorted(self._parts)]

    def start(self):
        """
        Tells B2 that a large file is coming.  Returns an UnfinishedLargeFile.
        """
        with self._lock:
            self._require_state('start', self.NOT_STARTED)
        self.session.raw_api.check_file_info(self.file_info)
        if self.total_size == 0:
            raise InvalidUploadSource('a large file needs at least one byte: %s' % (self.file_name,))
        if self.minimum_part_size is None:
            self.minimum_part_size = self.session.get_minimum_part_size()
        part_ranges = choose_part_ranges(self.total_size, self.minimum_part_size)

        response = self.session.start_large_file(
            self.bucket_id, self.file_name, self.content_type, self.file_info
        )
        unfinished_file = UnfinishedLargeFileFactory.from_api_response(response)

        with self._lock:
            self.file_id = unfinished_file.file_id
            self.part_ranges = part_ranges
            self._state = self.STARTED
        self.progress_listener.set_total_bytes(self.total_size)
        logger.info(
            'started large file %s (%s) with %d parts', self.file_name, self.file_id,
            len(part_ranges)
        )
        return unfinished_file

    def upload_next_part(self):
        """
        Uploads the part with the lowest number that has not been
        uploaded yet, and returns its Part.
        """
        with self._lock:
            self._require_state('upload_next_part', self.STARTED)
            remaining = self._remaining_part_numbers()
            if not remaining:
                raise InvalidUploadState('all parts of %s are uploaded' % (self.file_name,))
        return self._upload_and_record(remaining[0])

    def upload_all_parts(self, max_workers=1, cancel_event=None):
        """
        Uploads every part not uploaded yet, and returns all of the Parts,
        ordered by part number.

        :param max_workers: the number of parts to send at the same time
        :param cancel_event: a threading.Event; no new part is started once it is set
        """
        with self._lock:
            self._require_state('upload_all_parts', self.STARTED)
            remaining = self._remaining_part_numbers()

        if max_workers <= 1:
            for part_number in remaining:
                self._raise_if_cancelled(cancel_event)
                self._upload_and_record(part_number)
            return self.parts

        with futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            part_futures = [
                executor.submit(self._upload_part_in_pool, part_number, cancel_event)
                for part_number in remaining
            ]
            for f in part_futures:
                try:
                    interruptible_get_result(f)
                except B2Error as e:
                    logger.debug('part upload stopped: %s', e)

        if self._upload_state.has_error():
            raise self._upload_state.get_error()
        return self.parts

    def finish(self):
        """
        Tells B2 that all of the parts are uploaded.  Returns the
        FileVersionInfo of the new file.

        The request is not repeated blindly when its outcome is unknown:
        after a network failure, B2 is asked whether the file exists,
        and the finish is sent again only if it does not.
        """
        with self._lock:
            self._require_state('finish', self.STARTED)
            remaining = self._remaining_part_numbers()
            if remaining:
                raise InvalidUploadState(
                    'cannot finish %s, parts not uploaded: %s' % (self.file_name, remaining)
                )
            part_sha1_array = [part.content_sha1 for part in self.parts]

        try:
            response = self.session.finish_large_file(self.file_id, part_sha1_array)
        except TransientNetworkError as e:
            response = self._recover_from_failed_finish(e, part_sha1_array)
        file_version = FileVersionInfoFactory.from_api_response(response)

        with self._lock:
            self.file_version = file_version
            self._state = self.FINISHED
        self.session.account_info.clear_large_file_upload_urls(self.file_id)
        self._close_progress()
        logger.info('finished large file %s (%s)', self.file_name, self.file_id)
        return file_version

    def cancel(self):
        """
        Tells B2 to throw away the parts uploaded so far.

        Before start() there is nothing on B2 to throw away, so the uploader
        is only marked as cancelled.  Once finished or cancelled, does nothing.

        :return: a FileVersionInfo with action 'cancel', or None if B2 was not called
        """
        with self._lock:
            if self._state in (self.FINISHED, self.CANCELLED):
                return None
            if self._state == self.NOT_STARTED:
                self._state = self.CANCELLED
                return None
            file_id = self.file_id

        response = self.session.cancel_large_file(file_id)

        with self._lock:
            self._state = self.CANCELLED
        self.session.account_info.clear_large_file_upload_urls(file_id)
        self._close_progress()
        logger.info('cancelled large file %s (%s)', self.file_name, file_id)
        return FileVersionInfoFactory.from_cancel_large_file_response(response)

    def upload(self, cancel_event=None, max_workers=1):
        """
        Starts (if needed), uploads all of the parts, and finishes.
        Returns the FileVersionInfo of the new file.

        If anything fails after the start, or cancel_event is set, the
        large file is cancelled on B2 and the error is raised; for the
        event, that error is UploadCancelled.
        """
        if self.state == self.NOT_STARTED:
            self.start()
        try:
            self.upload_all_parts(max_workers=max_workers, cancel_event=cancel_event)
            self._raise_if_cancelled(cancel_event)
            return self.finish()
        except Exception as e:
            logger.warning('upload of %s failed, cancelling it: %s', self.file_name, e)
            self._cancel_after_failure()
            raise

    def list_parts(self, start_part_number=None, batch_size=None):
        """
        Generator that yields a Part for each part that B2 has for this file.

        :param start_part_number: the first part number to return.  defaults to the first part.
        :param batch_size: the number of parts to fetch at a time from the server
        """
        with self._lock:
            if self.file_id is None:
                raise InvalidUploadState('list_parts called before start')
            file_id = self.file_id
        batch_size = batch_size or self.DEFAULT_LIST_PARTS_BATCH_SIZE
        while True:
            response = self.session.list_parts(file_id, start_part_number, batch_size)
            parts, start_part_number = PartFactory.from_list_parts_response(response)
            for part in parts:
                yield part
            if start_part_number is None:
                break

    def _require_state(self, operation, expected_state):
        if self._state != expected_state:
            raise InvalidUploadState(
                '%s needs state %s, %s is %s' %
                (operation, expected_state, self.file_name, self._state)
            )

    def _remaining_part_numbers(self):
        return [
            part_number for part_number in range(1, len(self.part_ranges) + 1)
            if part_number not in self._parts
        ]

    def _raise_if_cancelled(self, cancel_event):
        if cancel_event is not None and cancel_event.is_set():
            raise UploadCancelled(self.file_name)

    def _upload_part_in_pool(self, part_number, cancel_event):
        try:
            self._raise_if_cancelled(cancel_event)
            return self._upload_and_record(part_number)
        except Exception as e:
            self._upload_state.set_error(e)
            raise

    def _upload_and_record(self, part_number):
        part = self._upload_part(part_number)
        with self._lock:
            self._parts[part_number] = part
        return part

    def _upload_part(self, part_number):
        offset, content_length = self.part_ranges[part_number - 1]
        with self.upload_source.open() as f:
            f.seek(offset)
            try:
                sha1_sum = hex_sha1_of_stream(f, content_length)
            except ValueError as e:
                raise InvalidUploadSource('part %d of %s: %s' % (part_number, self.file_name, e))

        part_progress_listener = PartProgressReporter(self._upload_state)
        exception_list = []
        wait_time = 1.0
        for _ in range(self.MAX_UPLOAD_ATTEMPTS):
            # if another part has already had an error there's no point in
            # uploading this part
            if self._upload_state.has_error():
                raise AlreadyFailed(self._upload_state.get_error_message())

            try:
                # refresh upload data in every attempt to work around a "busy storage pod"
                upload_url, upload_auth_token = self._get_upload_part_data()
                with self.upload_source.open() as file:
                    file.seek(offset)
                    range_stream = RangeOfInputStream(file, offset, content_length)
                    input_stream = ReadingStreamWithProgress(range_stream, part_progress_listener)
                    response = self.session.raw_api.upload_part(
                        upload_url, upload_auth_token, part_number, content_length, sha1_sum,
                        input_stream
                    )
                part = PartFactory.from_upload_part_response(response)
                if part.content_sha1 != sha1_sum:
                    raise PartIntegrityError(
                        part_number, 'B2 stored %s, sent %s' % (part.content_sha1, sha1_sum)
                    )
                self.session.account_info.put_large_file_upload_url(
                    self.file_id, upload_url, upload_auth_token
                )
                return part

            except B2Error as e:
                if not e.should_retry_upload():
                    raise
                logger.info('upload of part %d of %s failed: %s', part_number, self.file_id, e)
                exception_list.append(e)
                self.session.account_info.clear_large_file_upload_urls(self.file_id)
                if isinstance(e, TransientNetworkError):
                    time.sleep(wait_time)
                    wait_time *= 1.5

        raise MaxRetriesExceeded(self.MAX_UPLOAD_ATTEMPTS, exception_list)

    def _get_upload_part_data(self):
        """
        Takes ownership of an upload URL / auth token for this file, getting
        a new one from B2 if there are none to reuse.
        """
        account_info = self.session.account_info
        upload_url, upload_auth_token = account_info.take_large_file_upload_url(self.file_id)
        if None not in (upload_url, upload_auth_token):
            return upload_url, upload_auth_token

        return get_upload_url(self.session.get_upload_part_url(self.file_id))

    def _recover_from_failed_finish(self, error, part_sha1_array):
        logger.warning(
            'finish of %s failed with %s, checking whether B2 finished it', self.file_id, error
        )
        try:
            file_info_dict = self.session.get_file_info(self.file_id)
        except B2Error:
            logger.exception('could not get file info for %s', self.file_id)
            raise error
        action = file_info_dict.get('action')
        if action == 'upload':
            return file_info_dict
        if action == 'start':
            return self.session.finish_large_file(self.file_id, part_sha1_array)
        raise error

    def _cancel_after_failure(self):
        try:
            self.cancel()
        except B2Error:
            logger.exception('could not cancel large file %s', self.file_id)

    def _close_progress(self):
        with self._lock:
            if self._progress_closed:
                return
            self._progress_closed = True
        self.progress_listener.close()
