######################################################################
#
# File: b2backblaze/unfinished_large_file.py
#
# Copyright 2016 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

from .response import get_fields, get_page


class UnfinishedLargeFile(object):
    """
    A large file that was started, and is neither finished nor cancelled.
    """

    def __init__(self, file_id, file_name, bucket_id, content_type=None, file_info=None):
        self.file_id = file_id
        self.file_name = file_name
        self.bucket_id = bucket_id
        self.content_type = content_type
        self.file_info = file_info or {}

    def __repr__(self):
        return '<%s %s %s>' % (self.__class__.__name__, self.file_id, self.file_name)

    def __eq__(self, other):
        return isinstance(other, self.__class__) and vars(self) == vars(other)

    def __ne__(self, other):
        return not (self == other)


class UnfinishedLargeFileFactory(object):
    @classmethod
    def from_api_response(cls, file_dict):
        """
        Reads the file returned by b2_start_large_file, or listed by
        b2_list_unfinished_large_files.
        """
        file_id, file_name, bucket_id = get_fields(
            file_dict, 'unfinished large file', 'fileId', 'fileName', 'bucketId'
        )
        return UnfinishedLargeFile(
            file_id, file_name, bucket_id, file_dict.get('contentType'), file_dict.get('fileInfo')
        )

    @classmethod
    def from_list_response(cls, response):
        files, next_file_id = get_page(
            response, 'unfinished large files', 'files', 'nextFileId'
        )
        return [cls.from_api_response(file_dict) for file_dict in files], next_file_id
