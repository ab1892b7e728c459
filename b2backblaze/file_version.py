######################################################################
#
# File: b2backblaze/file_version.py
#
# Copyright 2016 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

from .exception import MalformedResponse
from .response import get_fields, get_page


class FileVersionInfo(object):
    """
    One version of a file.  `action` is 'upload' for a stored file,
    'hide' for a hide marker, 'start' for a large file in progress and
    'cancel' for a large file that was thrown away.
    """

    def __init__(
        self,
        id_,
        file_name,
        size,
        content_type=None,
        content_sha1=None,
        file_info=None,
        upload_timestamp=None,
        action=None
    ):
        self.id_ = id_
        self.file_name = file_name
        self.size = size
        self.content_type = content_type
        self.content_sha1 = content_sha1
        self.file_info = file_info or {}
        self.upload_timestamp = upload_timestamp
        self.action = action

    def __repr__(self):
        return '<%s %s %s %s>' % (self.__class__.__name__, self.id_, self.file_name, self.action)

    def __eq__(self, other):
        return isinstance(other, self.__class__) and vars(self) == vars(other)

    def __ne__(self, other):
        return not (self == other)


class FileVersionInfoFactory(object):
    @classmethod
    def from_api_response(cls, file_dict):
        """
        Reads the file objects returned by b2_upload_file,
        b2_finish_large_file, b2_get_file_info, b2_hide_file and
        b2_list_file_names.  Listings give the length as "size", the
        others as "contentLength":

            {
              "fileId": "4_z27c88f1d182b150646ff0b16_f1004ba650fe24e6b_d20150809_m012853_c100_v0009990_t0000",
              "fileName": "typing_test.txt",
              "contentLength": 46,
              "contentSha1": "bae5ed658ab3546aee12f23f36392f35dba1ebdd",
              "contentType": "text/plain",
              "fileInfo": {"author": "unknown"},
              "action": "upload",
              "uploadTimestamp": 1439083733000
            }
        """
        id_, file_name = get_fields(file_dict, 'file version', 'fileId', 'fileName')
        size = file_dict.get('contentLength', file_dict.get('size'))
        if size is None:
            raise MalformedResponse('file version %s has no length' % (id_,))
        return FileVersionInfo(
            id_,
            file_name,
            size,
            content_type=file_dict.get('contentType'),
            content_sha1=file_dict.get('contentSha1'),
            file_info=file_dict.get('fileInfo'),
            upload_timestamp=file_dict.get('uploadTimestamp'),
            action=file_dict.get('action'),
        )

    @classmethod
    def from_list_file_names_response(cls, response):
        """
        Returns ([FileVersionInfo], next file name) for one page of b2_list_file_names.
        """
        files, next_file_name = get_page(response, 'file names', 'files', 'nextFileName')
        return [cls.from_api_response(file_dict) for file_dict in files], next_file_name

    @classmethod
    def from_cancel_large_file_response(cls, response):
        # b2_cancel_large_file only says which file it was
        id_, file_name = get_fields(response, 'cancelled file', 'fileId', 'fileName')
        return FileVersionInfo(id_, file_name, 0, action='cancel')


class FileIdAndName(object):
    """
    What is left of a deleted file version.
    """

    def __init__(self, file_id, file_name):
        self.file_id = file_id
        self.file_name = file_name

    def __repr__(self):
        return '<%s %s %s>' % (self.__class__.__name__, self.file_id, self.file_name)

    def __eq__(self, other):
        return isinstance(other, self.__class__) and vars(self) == vars(other)

    def __ne__(self, other):
        return not (self == other)
