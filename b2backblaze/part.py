######################################################################
#
# File: b2backblaze/part.py
#
# Copyright 2018 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import re

from .exception import MalformedResponse
from .response import get_fields, get_page

_HEX_SHA1 = re.compile(r'[0-9a-f]{40}')


class Part(object):
    """
    One uploaded part of a large file.
    """

    def __init__(self, file_id, part_number, content_length, content_sha1, upload_timestamp=None):
        self.file_id = file_id
        self.part_number = part_number
        self.content_length = content_length
        self.content_sha1 = content_sha1
        self.upload_timestamp = upload_timestamp

    def __repr__(self):
        return '<Part %d of %s, %d bytes, sha1 %s>' % (
            self.part_number, self.file_id, self.content_length, self.content_sha1
        )

    def __eq__(self, other):
        return isinstance(other, self.__class__) and vars(self) == vars(other)

    def __ne__(self, other):
        return not (self == other)


class PartFactory(object):
    @classmethod
    def from_list_parts_dict(cls, part_dict):
        """
        Reads a part as b2_upload_part returns it, and as b2_list_parts
        lists it:

            {
              "fileId": "4_ze73ede9c9c8412db49f60715_f100b4e93fbae6252_d20150824_m224353_c900_v8881000_t0001",
              "partNumber": 1,
              "contentLength": 100000000,
              "contentSha1": "062685a84ab248d2488f02f6b01b948de2514ad8",
              "uploadTimestamp": 1462212184000
            }
        """
        file_id, part_number, content_length, content_sha1 = get_fields(
            part_dict, 'part', 'fileId', 'partNumber', 'contentLength', 'contentSha1'
        )
        if not isinstance(part_number, int) or part_number < 1:
            raise MalformedResponse('bad part number: %r' % (part_number,))
        if not isinstance(content_length, int) or content_length < 0:
            raise MalformedResponse('bad content length: %r' % (content_length,))
        if not isinstance(content_sha1, str) or not _HEX_SHA1.fullmatch(content_sha1.lower()):
            raise MalformedResponse('bad content sha1: %r' % (content_sha1,))
        return Part(
            file_id, part_number, content_length, content_sha1.lower(),
            part_dict.get('uploadTimestamp')
        )

    from_upload_part_response = from_list_parts_dict

    @classmethod
    def from_list_parts_response(cls, response):
        """
        Returns ([Part], next part number) for one page of b2_list_parts.
        """
        part_dicts, next_part_number = get_page(response, 'parts', 'parts', 'nextPartNumber')
        return [cls.from_list_parts_dict(part_dict) for part_dict in part_dicts], next_part_number
