######################################################################
#
# File: b2backblaze/service.py
#
# Copyright 2019 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import logging

from requests.structures import CaseInsensitiveDict

from .bucket import BucketFactory
from .exception import B2Error, FileNotPresent, MaxRetriesExceeded, NonExistentBucket
from .file_version import FileIdAndName, FileVersionInfoFactory
from .large_file import LargeFileUploader
from .progress import DoNothingProgressListener, ReadingStreamWithProgress, make_progress_listener
from .response import get_fields, get_upload_url
from .unfinished_large_file import UnfinishedLargeFileFactory
from .upload_source import AbstractUploadSource, UploadSourceBytes
from .utils import B2TraceMeta, b2_url_decode, disable_trace, limit_trace_arguments

logger = logging.getLogger(__name__)


class DownloadedFile(object):
    """
    The headers and, unless only the metadata was requested, the
    contents of a downloaded file.
    """

    def __init__(self, headers, content):
        self.headers = headers
        self.content = content  # None when only the metadata was fetched

    @property
    def file_id(self):
        return self.headers.get('x-bz-file-id')

    @property
    def file_name(self):
        file_name = self.headers.get('x-bz-file-name')
        if file_name is None:
            return None
        return b2_url_decode(file_name)

    def __repr__(self):
        return '<%s %s %s>' % (self.__class__.__name__, self.file_id, self.file_name)


class B2Service(object, metaclass=B2TraceMeta):
    """
    Convenience operations on buckets and files, built on a B2Session.

    Every method authorizes first if the session is not authorized yet,
    and raises a B2Error when B2 refuses the request.
    """

    MAX_UPLOAD_ATTEMPTS = 5
    LIST_FILE_NAMES_BATCH_SIZE = 1000
    DOWNLOAD_CHUNK_SIZE = 1024 * 1024

    def __init__(self, session):
        self.session = session

    # buckets

    def list_buckets(self, bucket_name=None):
        """
        Returns a list of Buckets, all of the account's, or only the one
        with the given name.
        """
        response = self.session.list_buckets(self._account_id(), bucket_name=bucket_name)
        return BucketFactory.from_api_response(response)

    def is_bucket_exist(self, bucket_id):
        return any(bucket.id_ == bucket_id for bucket in self.list_buckets())

    def get_bucket_by_id(self, bucket_id):
        for bucket in self.list_buckets():
            if bucket.id_ == bucket_id:
                return bucket
        raise NonExistentBucket(bucket_id)

    def get_bucket_by_name(self, bucket_name):
        for bucket in self.list_buckets(bucket_name=bucket_name):
            if bucket.name == bucket_name:
                return bucket
        raise NonExistentBucket(bucket_name)

    def create_bucket(self, name, bucket_type, bucket_info=None, lifecycle_rules=None):
        response = self.session.create_bucket(
            self._account_id(),
            name,
            bucket_type,
            bucket_info=bucket_info,
            lifecycle_rules=lifecycle_rules,
        )
        return BucketFactory.from_api_bucket_dict(response)

    def delete_bucket(self, bucket_id):
        response = self.session.delete_bucket(self._account_id(), bucket_id)
        return BucketFactory.from_api_bucket_dict(response)

    def _account_id(self):
        self.session.ensure_authorized()
        return self.session.account_info.get_account_id()

    # files

    def get(self, bucket_name, file_name, private=False, metadata_only=False):
        """
        Downloads a file by name.  Returns a DownloadedFile.

        :param private: send the account auth token, needed for private buckets
        :param metadata_only: fetch only the headers, not the contents
        """
        self.session.ensure_authorized()
        download_url = self.session.account_info.get_download_url()
        url = self.session.raw_api.get_download_url_by_name(
            download_url, None, bucket_name, file_name
        )
        if private:
            response_context = self.session.download_file_from_url(
                url, url_factory=self.session.account_info.get_download_url
            )
        else:
            response_context = self.session.raw_api.download_file_from_url(None, None, url)
        with response_context as response:
            headers = CaseInsensitiveDict(response.headers)
            if metadata_only:
                content = None
            else:
                content = b''.join(response.iter_content(chunk_size=self.DOWNLOAD_CHUNK_SIZE))
        return DownloadedFile(headers, content)

    @limit_trace_arguments(skip=['data'])
    def insert(self, bucket_id, data, file_name, content_type=None, file_info=None):
        """
        Uploads a small file and returns its FileVersionInfo.

        :param data: bytes, or an AbstractUploadSource
        """
        if isinstance(data, AbstractUploadSource):
            upload_source = data
        else:
            upload_source = UploadSourceBytes(data)
        return self._upload_small_file(
            bucket_id, upload_source, file_name, content_type, file_info or {}
        )

    def delete(self, bucket_name, file_name):
        """
        Deletes the latest version of a file.  Returns its FileIdAndName.
        """
        downloaded = self.get(bucket_name, file_name, private=True, metadata_only=True)
        if downloaded.file_id is None:
            raise FileNotPresent(file_name)
        self.session.delete_file_version(downloaded.file_id, file_name)
        return FileIdAndName(downloaded.file_id, file_name)

    def rename(self, bucket_name, file_name, target_bucket_id, new_file_name):
        """
        Copies a file under a new name, possibly into another bucket,
        then deletes the original.  B2 has no rename, so this is a download,
        an upload, and a delete.  Returns the FileVersionInfo of the new file.
        """
        downloaded = self.get(bucket_name, file_name, private=True)
        if downloaded.file_id is None:
            raise FileNotPresent(file_name)
        new_file = self.insert(
            target_bucket_id,
            downloaded.content,
            new_file_name,
            content_type=downloaded.headers.get('content-type'),
        )
        self.session.delete_file_version(downloaded.file_id, file_name)
        return new_file

    def all(self, bucket_id):
        """
        Returns a FileVersionInfo for every file in the bucket.
        """
        return list(self.list_file_names(bucket_id))

    def list_file_names(self, bucket_id, start_file_name=None):
        """
        Generator over the latest version of each file in the bucket.
        """
        while True:
            response = self.session.list_file_names(
                bucket_id, start_file_name, self.LIST_FILE_NAMES_BATCH_SIZE
            )
            file_versions, start_file_name = \
                FileVersionInfoFactory.from_list_file_names_response(response)
            for file_version in file_versions:
                yield file_version
            if start_file_name is None:
                break

    def exists(self, bucket_name, file_name):
        try:
            downloaded = self.get(bucket_name, file_name, private=True, metadata_only=True)
        except FileNotPresent:
            return False
        return downloaded.file_name == file_name

    def get_file_info(self, file_id):
        return FileVersionInfoFactory.from_api_response(self.session.get_file_info(file_id))

    def hide_file(self, bucket_id, file_name):
        response = self.session.hide_file(bucket_id, file_name)
        return FileVersionInfoFactory.from_api_response(response)

    def get_download_authorization(self, bucket_id, file_name_prefix, valid_duration_in_seconds):
        response = self.session.get_download_authorization(
            bucket_id, file_name_prefix, valid_duration_in_seconds
        )
        token, = get_fields(response, 'download authorization', 'authorizationToken')
        return token

    # large files

    @limit_trace_arguments(skip=['upload_source', 'progress_listener', 'cancel_event'])
    def upload_large_file(
        self,
        bucket_id,
        upload_source,
        file_name,
        content_type=None,
        file_info=None,
        minimum_part_size=None,
        max_workers=1,
        cancel_event=None,
        progress_listener=None,
        quiet=True
    ):
        """
        Uploads a large file, part by part, and returns its FileVersionInfo.

        :param progress_listener: told how many bytes are sent; when None, a
                                  tqdm bar shows the progress unless quiet
        """
        if progress_listener is None:
            progress_listener = make_progress_listener(file_name, quiet)
        uploader = LargeFileUploader(
            self.session,
            bucket_id,
            file_name,
            upload_source,
            content_type=content_type,
            file_info=file_info,
            minimum_part_size=minimum_part_size,
            progress_listener=progress_listener,
        )
        return uploader.upload(cancel_event=cancel_event, max_workers=max_workers)

    def list_unfinished_large_files(self, bucket_id, start_file_id=None, batch_size=None):
        """
        Generator over the large files in the bucket that were started
        and neither finished nor cancelled.
        """
        batch_size = batch_size or 100
        while True:
            response = self.session.list_unfinished_large_files(
                bucket_id, start_file_id, batch_size
            )
            unfinished_files, start_file_id = UnfinishedLargeFileFactory.from_list_response(response)
            for unfinished_file in unfinished_files:
                yield unfinished_file
            if start_file_id is None:
                break

    def cancel_large_file(self, file_id):
        response = self.session.cancel_large_file(file_id)
        return FileVersionInfoFactory.from_cancel_large_file_response(response)

    @disable_trace
    def _upload_small_file(self, bucket_id, upload_source, file_name, content_type, file_info):
        content_length = upload_source.get_content_length()
        sha1_sum = upload_source.get_content_sha1()
        progress_listener = DoNothingProgressListener()
        exception_info_list = []
        for _ in range(self.MAX_UPLOAD_ATTEMPTS):
            try:
                # refresh upload data in every attempt to work around a "busy storage pod"
                upload_url, upload_auth_token = self._get_upload_data(bucket_id)
                with upload_source.open() as file:
                    input_stream = ReadingStreamWithProgress(file, progress_listener)
                    upload_response = self.session.raw_api.upload_file(
                        upload_url, upload_auth_token, file_name, content_length, content_type,
                        sha1_sum, file_info, input_stream
                    )
                self.session.account_info.put_bucket_upload_url(
                    bucket_id, upload_url, upload_auth_token
                )
                return FileVersionInfoFactory.from_api_response(upload_response)

            except B2Error as e:
                if not e.should_retry_upload():
                    raise
                logger.info('upload of %s failed: %s', file_name, e)
                exception_info_list.append(e)
                self.session.account_info.clear_bucket_upload_data(bucket_id)

        raise MaxRetriesExceeded(self.MAX_UPLOAD_ATTEMPTS, exception_info_list)

    def _get_upload_data(self, bucket_id):
        """
        Takes ownership of an upload URL / auth token for the bucket and
        returns it.
        """
        account_info = self.session.account_info
        upload_url, upload_auth_token = account_info.take_bucket_upload_url(bucket_id)
        if None not in (upload_url, upload_auth_token):
            return upload_url, upload_auth_token

        return get_upload_url(self.session.get_upload_url(bucket_id))
