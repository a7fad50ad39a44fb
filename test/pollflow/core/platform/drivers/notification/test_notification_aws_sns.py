# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import asyncio

import boto3
import pytest

from pollflow.core.platform.drivers.notification.aws_sns import AWSSNSConnector
from pollflow.core.platform.platform import Platform
from pollflow.mixins.aws.test import AWSTestBase


class TestAWSSNSConnector(AWSTestBase):
    def test_sns_publish(self, aws_credentials):
        self.patch_aws_start()

        topic_arn = boto3.client("sns", region_name=self.region).create_topic(Name="pollflow-topic")["TopicArn"]
        sns = Platform().connect(AWSSNSConnector(self.connector_params()))
        response = asyncio.run(sns.publish(TopicArn=topic_arn, Message="job complete"))
        assert response["MessageId"]

        # no events on a notification connector
        with pytest.raises(ValueError):
            sns.on({"type": "Published"}, lambda e: None)

        self.patch_aws_stop()

    def test_sns_sdk_access(self, aws_credentials):
        self.patch_aws_start()

        sns = AWSSNSConnector(self.connector_params())
        assert sns.sdk() is sns.sdk()
        assert sns.sdk().meta.service_model.service_name == "sns"
        assert sns.sdk("sqs").meta.service_model.service_name == "sqs"
        assert sns.region == self.region

        self.patch_aws_stop()
