######################################################################
#
# File: b2backblaze/bucket.py
#
# Copyright 2016 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

from .response import get_fields, get_page


class Bucket(object):
    def __init__(self, id_, name, type_, bucket_info=None, lifecycle_rules=None, revision=None):
        self.id_ = id_
        self.name = name
        self.type_ = type_  # 'allPrivate' or 'allPublic'
        self.bucket_info = bucket_info or {}
        self.lifecycle_rules = lifecycle_rules or []
        self.revision = revision

    def __repr__(self):
        return 'Bucket<%s,%s,%s>' % (self.id_, self.name, self.type_)

    def __eq__(self, other):
        return isinstance(other, self.__class__) and vars(self) == vars(other)

    def __ne__(self, other):
        return not (self == other)


class BucketFactory(object):
    @classmethod
    def from_api_response(cls, response):
        """
        Returns a Bucket for each bucket in a b2_list_buckets response.
        """
        bucket_dicts, _ = get_page(response, 'bucket list', 'buckets', None)
        return [cls.from_api_bucket_dict(bucket_dict) for bucket_dict in bucket_dicts]

    @classmethod
    def from_api_bucket_dict(cls, bucket_dict):
        """
        Reads one bucket:

            {
                "accountId": "4aa9865d6f00",
                "bucketId": "a4ba6a39d8b6b5fd561f0010",
                "bucketName": "zsdfrtsazsdfafr",
                "bucketType": "allPrivate",
                "bucketInfo": {},
                "lifecycleRules": [],
                "revision": 1
            }
        """
        bucket_id, bucket_name, bucket_type = get_fields(
            bucket_dict, 'bucket', 'bucketId', 'bucketName', 'bucketType'
        )
        return Bucket(
            bucket_id,
            bucket_name,
            bucket_type,
            bucket_info=bucket_dict.get('bucketInfo'),
            lifecycle_rules=bucket_dict.get('lifecycleRules'),
            revision=bucket_dict.get('revision'),
        )
