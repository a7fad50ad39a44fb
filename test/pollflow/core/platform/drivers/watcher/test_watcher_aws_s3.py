# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import asyncio
import datetime

import boto3
import pytest
from dateutil.tz import tzutc

from pollflow.core.platform.definitions.aws.common import AWSCommonParams
from pollflow.core.platform.drivers.watcher.aws_s3 import AWSS3Connector, S3EventType, create_object_record, to_epoch_millis
from pollflow.core.platform.platform import Platform
from pollflow.mixins.aws.test import AWSTestBase


class TestAWSS3Connector(AWSTestBase):
    bucket = "pollflow-test-bucket"

    def _create_connector(self):
        boto3.resource("s3", region_name=self.region).create_bucket(Bucket=self.bucket)
        platform = Platform()
        return platform.connect(AWSS3Connector(self.connector_params({AWSCommonParams.BUCKET: self.bucket})))

    @staticmethod
    def _subscribe_all(connector):
        received = []
        for event_type in S3EventType:
            connector.on({"type": event_type.value}, lambda event, t=event_type.value: received.append((t, event)))
        return received

    def test_s3_watcher_events(self, aws_credentials):
        self.patch_aws_start()

        async def _run():
            s3 = self._create_connector()
            received = self._subscribe_all(s3)
            await s3.put_object("a.txt", "first")
            await s3.put_object("b.txt", b"second")
            await s3.on_poll()
            initialized = list(received)
            received.clear()

            await s3.put_object("a.txt", "first, modified")
            await s3.put_object("c.txt", "third")
            await s3.delete_object("b.txt")
            await s3.on_poll()
            changed = list(received)
            received.clear()

            await s3.on_poll()
            return initialized, changed, list(received)

        initialized, changed, unchanged = asyncio.run(_run())

        assert len(initialized) == 1
        event_type, event = initialized[0]
        assert event_type == S3EventType.BUCKET_INITIALIZED.value
        assert sorted(event["objects"].keys()) == ["a.txt", "b.txt"]
        assert event["objects"]["b.txt"]["size"] == len(b"second")

        assert [event_type for event_type, _ in changed] == ["BucketChanged", "ObjectAdded", "ObjectModified", "ObjectRemoved"]
        assert sorted(changed[0][1]["objects"].keys()) == ["a.txt", "c.txt"]
        assert changed[1][1]["key"] == "c.txt"
        assert changed[2][1]["key"] == "a.txt"
        assert changed[3][1]["key"] == "b.txt"
        assert unchanged == []

        self.patch_aws_stop()

    def test_s3_event_validation(self, aws_credentials):
        self.patch_aws_start()

        s3 = self._create_connector()
        with pytest.raises(ValueError):
            s3.on({"type": "ObjectCreated"}, lambda e: None)
        with pytest.raises(ValueError):
            AWSS3Connector(self.connector_params({AWSCommonParams.BUCKET: "Invalid_Bucket"}))
        with pytest.raises(ValueError):
            AWSS3Connector(self.connector_params())
        with pytest.raises(ValueError):
            AWSS3Connector(self.connector_params({AWSCommonParams.BUCKET: self.bucket, AWSCommonParams.REGION: "moon-1"}))

        self.patch_aws_stop()

    def test_s3_snapshots_scoped_by_bucket(self, aws_credentials):
        self.patch_aws_start()

        s3_1 = AWSS3Connector(self.connector_params({AWSCommonParams.BUCKET: "bucket-one"}))
        s3_2 = AWSS3Connector(self.connector_params({AWSCommonParams.BUCKET: "bucket-two"}))
        platform = Platform()
        platform.connect(s3_1)
        platform.connect(s3_2)
        assert s3_1.store.prefix != s3_2.store.prefix
        assert s3_1.snapshot_key() == "bucket-one"

        self.patch_aws_stop()

    def test_s3_actions(self, aws_credentials):
        self.patch_aws_start()

        async def _run():
            s3 = self._create_connector()
            await s3.create_bucket("pollflow-target-bucket")
            assert "pollflow-target-bucket" in await s3.list_bucket_names()

            await s3.put_object("folder/data.json", b'{"a": 1}')
            assert await s3.list_object_keys() == ["folder/data.json"]
            objects = await s3.list_objects()
            assert objects[0]["Size"] == 8

            result = await s3.copy_object(self.bucket, "folder/data.json", "pollflow-target-bucket", "copy.json")
            assert result["ETag"]
            assert (await s3.get_object("copy.json", bucket="pollflow-target-bucket"))["Body"] == b'{"a": 1}'

            await s3.delete_object("copy.json", bucket="pollflow-target-bucket")
            await s3.delete_bucket("pollflow-target-bucket")
            assert "pollflow-target-bucket" not in await s3.list_bucket_names()

            assert await s3.get_s3_url("folder/data.json") == f"s3://{self.bucket}/folder/data.json"
            assert await s3.get_web_url("index.html") == f"http://{self.bucket}.s3-website-us-east-1.amazonaws.com/index.html"
            signed_get = await s3.get_signed_object_get_url("folder/data.json")
            signed_put = await s3.get_signed_object_put_url("folder/new.json", expires=120)
            assert self.bucket in signed_get and "folder/data.json" in signed_get
            assert "folder/new.json" in signed_put
            with pytest.raises(ValueError):
                await s3.get_signed_url("deleteObject", "folder/data.json")

        asyncio.run(_run())

        self.patch_aws_stop()


class TestS3ObjectRecord:
    def test_create_object_record(self):
        timestamp = datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=tzutc())
        record = create_object_record("key", timestamp, '"etag"', 10)
        assert record == {"key": "key", "last_modified": to_epoch_millis(timestamp), "etag": '"etag"', "size": 10}
        # naive time stamps are treated as UTC
        assert to_epoch_millis(timestamp.replace(tzinfo=None)) == to_epoch_millis(timestamp)

    def test_invalid_attributes(self):
        timestamp = datetime.datetime(2024, 1, 2, tzinfo=tzutc())
        for args in [
            ("", timestamp, "tag", 1),
            ("key", "2024-01-02", "tag", 1),
            ("key", timestamp, "", 1),
            ("key", timestamp, "tag", -1),
            ("key", timestamp, "tag", True),
        ]:
            with pytest.raises(ValueError):
                create_object_record(*args)
