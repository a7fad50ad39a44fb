# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import datetime
import logging
from enum import Enum, unique
from typing import Any, Dict, List, Optional, Union

from dateutil.tz import tzutc
from overrides import overrides

from pollflow.core.diff import SameFn, Snapshot, field_equality
from pollflow.core.events import EventDescriptor
from pollflow.core.platform.constructs import SnapshotWatcher
from pollflow.core.platform.definitions.aws.common import AWSCommonParams, validate_bucket
from pollflow.core.platform.definitions.aws.s3.bucket_wrapper import create_bucket, delete_bucket, get_bucket, get_bucket_region, list_buckets
from pollflow.core.platform.definitions.aws.s3.object_wrapper import (
    copy_object,
    delete_object,
    generate_presigned_url,
    get_object,
    list_objects,
    put_object,
)
from pollflow.core.platform.definitions.common import ConnectorParamsDict
from pollflow.core.platform.drivers.aws_common import AWSConnectorMixin
from pollflow.utils.concurrency import run_blocking

module_logger = logging.getLogger(__name__)

DEFAULT_SIGNED_URL_EXPIRATION_IN_SECS = 60


@unique
class S3EventType(str, Enum):
    BUCKET_INITIALIZED = "BucketInitialized"
    BUCKET_CHANGED = "BucketChanged"
    OBJECT_ADDED = "ObjectAdded"
    OBJECT_MODIFIED = "ObjectModified"
    OBJECT_REMOVED = "ObjectRemoved"


def to_epoch_millis(timestamp: datetime.datetime) -> int:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=tzutc())
    return int(timestamp.timestamp() * 1000)


def create_object_record(key: Any, last_modified: Any, etag: Any, size: Any) -> Dict[str, Any]:
    """Snapshot record of an S3 object, raises ValueError if the listing returned an unexpected attribute."""
    if not isinstance(key, str) or not key:
        raise ValueError(f"S3: Invalid object key: {key!r}")
    if not isinstance(last_modified, datetime.datetime):
        raise ValueError(f"S3: Invalid object time stamp: {last_modified!r}")
    if not isinstance(etag, str) or not etag:
        raise ValueError(f"S3: Invalid object tag: {etag!r}")
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise ValueError(f"S3: Invalid object size: {size!r}")
    return {"key": key, "last_modified": to_epoch_millis(last_modified), "etag": etag, "size": size}


class AWSS3Connector(AWSConnectorMixin, SnapshotWatcher):
    """Watches the objects of a single bucket.

    Events (descriptor {"type": <S3EventType>}):
        BucketInitialized   {"objects": snapshot} on the very first poll
        BucketChanged       {"objects": snapshot} once per poll that detected any change
        ObjectAdded/ObjectModified/ObjectRemoved   one event per object record

    Object identity is the key; by default two records are the same object if etag, last_modified and size are all
    equal (etags of multi-part uploads are not content hashes, provide a 'same_fn' if that matters).
    """

    SERVICE = "s3"
    SNAPSHOT_EVENT_FIELD = "objects"

    INITIALIZED_EVENT = S3EventType.BUCKET_INITIALIZED.value
    CHANGED_EVENT = S3EventType.BUCKET_CHANGED.value
    ADDED_EVENT = S3EventType.OBJECT_ADDED.value
    MODIFIED_EVENT = S3EventType.OBJECT_MODIFIED.value
    REMOVED_EVENT = S3EventType.OBJECT_REMOVED.value

    def __init__(self, params: ConnectorParamsDict, same_fn: Optional[SameFn] = None) -> None:
        super().__init__(params, same_fn)
        self._bucket = validate_bucket(self._params.get(AWSCommonParams.BUCKET, None))
        self._regional_client = None

    @property
    def bucket(self) -> str:
        return self._bucket

    @overrides
    def default_same_fn(self) -> SameFn:
        return field_equality("etag", "last_modified", "size")

    @overrides
    def snapshot_key(self) -> str:
        return self._bucket

    @overrides
    def store_descriptor(self) -> Optional[Any]:
        return {**self._account.identity, "bucket": self._bucket}

    @overrides
    def validate_event(self, descriptor: EventDescriptor) -> EventDescriptor:
        event_type = descriptor.get("type", None)
        if event_type not in [t.value for t in S3EventType]:
            raise ValueError(f"Invalid event type: {event_type!r}")
        return {"type": S3EventType(event_type).value}

    @property
    def _s3(self):
        return self._account.resource("s3")

    def _get_objects_in_bucket(self) -> Snapshot:
        objects: Snapshot = dict()
        for summary in list_objects(get_bucket(self._s3, self._bucket)):
            objects[summary.key] = create_object_record(summary.key, summary.last_modified, summary.e_tag, summary.size)
        return objects

    @overrides
    async def list_remote_state(self) -> Snapshot:
        return await run_blocking(self._get_objects_in_bucket)

    # Actions
    async def get_bucket(self) -> str:
        return self._bucket

    async def list_buckets(self) -> List[Dict[str, Any]]:
        return await run_blocking(list_buckets, self._s3)

    async def list_bucket_names(self) -> List[str]:
        return [bucket["Name"] for bucket in await self.list_buckets()]

    async def create_bucket(self, bucket: str, region: Optional[str] = None) -> None:
        validate_bucket(bucket)
        await run_blocking(create_bucket, self._s3, bucket, region)

    async def delete_bucket(self, bucket: str) -> None:
        validate_bucket(bucket)
        await run_blocking(delete_bucket, get_bucket(self._s3, bucket))

    async def list_objects(self, bucket: Optional[str] = None) -> List[Dict[str, Any]]:
        """Every object (all of the pages) of the bucket, as {'Key', 'LastModified', 'ETag', 'Size'} dicts."""
        bucket = validate_bucket(bucket) if bucket else self._bucket
        summaries = await run_blocking(list_objects, get_bucket(self._s3, bucket))
        return [{"Key": s.key, "LastModified": s.last_modified, "ETag": s.e_tag, "Size": s.size} for s in summaries]

    async def list_object_keys(self, bucket: Optional[str] = None) -> List[str]:
        return [obj["Key"] for obj in await self.list_objects(bucket)]

    async def copy_object(self, source_bucket: str, source_key: str, target_bucket: str, target_key: str) -> Dict[str, Any]:
        source = get_bucket(self._s3, validate_bucket(source_bucket))
        target = get_bucket(self._s3, validate_bucket(target_bucket))
        return await run_blocking(copy_object, source, source_key, target, target_key)

    async def delete_object(self, key: str, bucket: Optional[str] = None) -> None:
        await run_blocking(delete_object, get_bucket(self._s3, bucket if bucket else self._bucket), key)

    async def get_object(self, key: str, bucket: Optional[str] = None) -> Dict[str, Any]:
        return await run_blocking(get_object, get_bucket(self._s3, bucket if bucket else self._bucket), key)

    async def put_object(self, key: str, data: Union[str, bytes], bucket: Optional[str] = None) -> Dict[str, Any]:
        return await run_blocking(put_object, get_bucket(self._s3, bucket if bucket else self._bucket), key, data)

    async def _get_regional_client(self):
        """Client in the bucket's own region, signed URLs have to be generated against it."""
        if self._regional_client is None:
            region = await run_blocking(get_bucket_region, self._s3, self._bucket)
            self._regional_client = self._account.client("s3", region_name=region)
        return self._regional_client

    async def get_signed_url(self, operation: str, key: str, expires: int = DEFAULT_SIGNED_URL_EXPIRATION_IN_SECS) -> str:
        s3_client = await self._get_regional_client()
        return await run_blocking(generate_presigned_url, s3_client, operation, self._bucket, key, expires)

    async def get_signed_object_get_url(self, key: str, expires: int = DEFAULT_SIGNED_URL_EXPIRATION_IN_SECS) -> str:
        return await self.get_signed_url("get_object", key, expires)

    async def get_signed_object_put_url(self, key: str, expires: int = DEFAULT_SIGNED_URL_EXPIRATION_IN_SECS) -> str:
        return await self.get_signed_url("put_object", key, expires)

    async def get_s3_url(self, key: str, bucket: Optional[str] = None) -> str:
        bucket = validate_bucket(bucket) if bucket else self._bucket
        return f"s3://{bucket}/{key}"

    async def get_web_url(self, key: str, bucket: Optional[str] = None) -> str:
        bucket = validate_bucket(bucket) if bucket else self._bucket
        region = await run_blocking(get_bucket_region, self._s3, bucket)
        return f"http://{bucket}.s3-website-{region}.amazonaws.com/{key}"
