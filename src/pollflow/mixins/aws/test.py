# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import os
from typing import Any, Callable, Dict, Optional
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

import pollflow.core.platform.drivers.compute.aws_lambda as lambda_driver
from pollflow.core.platform.definitions.aws.common import AWSCommonParams
from pollflow.core.platform.drivers.storage.aws_ddb import DynamoDBPersistentStore, create_store_table


class AWSTestBase:
    testing_keyname = "testing"
    region = "us-east-1"
    # default moto acc id
    account_id = "123456789012"

    @pytest.fixture(scope="class")
    def aws_credentials(self):
        os.environ["AWS_ACCESS_KEY_ID"] = self.testing_keyname
        os.environ["AWS_SECRET_ACCESS_KEY"] = self.testing_keyname
        os.environ["AWS_SECURITY_TOKEN"] = self.testing_keyname
        os.environ["AWS_SESSION_TOKEN"] = self.testing_keyname
        os.environ["AWS_DEFAULT_REGION"] = self.region

    @pytest.fixture(scope="class")
    def ddb_resource(self, aws_credentials):
        with mock_aws():
            yield boto3.resource(service_name="dynamodb", region_name=self.region)

    @pytest.fixture(scope="class")
    def s3_resource(self, aws_credentials):
        with mock_aws():
            yield boto3.resource(service_name="s3", region_name=self.region)

    @pytest.fixture(scope="class")
    def sqs_client(self, aws_credentials):
        with mock_aws():
            yield boto3.client(service_name="sqs", region_name=self.region)

    _real_lambda_create_lambda_function = lambda_driver.create_lambda_function
    _real_lambda_invoke_lambda_function = lambda_driver.invoke_lambda_function
    _real_lambda_delete_lambda_function = lambda_driver.delete_lambda_function

    def patch_aws_start(self, invoke_lambda_function_mock: Optional[Callable[..., Any]] = None) -> None:
        self._aws_mock = mock_aws()
        self._aws_mock.start()
        self._patch_lambda_start(invoke_lambda_function_mock)

    def patch_aws_stop(self) -> None:
        self._patch_lambda_stop()
        self._aws_mock.stop()

    def _patch_lambda_start(self, invoke_lambda_function_mock=None):
        # moto runs lambda functions in docker, keep function management and invocations in process
        def create_lambda_function(lambda_client, function_name, iam_role_arn, zip_file, **kwargs):
            return {
                "FunctionName": function_name,
                "FunctionArn": f"arn:aws:lambda:{self.region}:{self.account_id}:function:{function_name}",
                "Role": iam_role_arn,
            }

        lambda_driver.create_lambda_function = MagicMock(side_effect=create_lambda_function)
        lambda_driver.invoke_lambda_function = (
            MagicMock(side_effect=invoke_lambda_function_mock) if invoke_lambda_function_mock else MagicMock()
        )
        lambda_driver.delete_lambda_function = MagicMock()

    def _patch_lambda_stop(self):
        lambda_driver.create_lambda_function = AWSTestBase._real_lambda_create_lambda_function
        lambda_driver.invoke_lambda_function = AWSTestBase._real_lambda_invoke_lambda_function
        lambda_driver.delete_lambda_function = AWSTestBase._real_lambda_delete_lambda_function

    def connector_params(self, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params = {AWSCommonParams.REGION: self.region, AWSCommonParams.ROLE_PROPAGATION_WAIT_IN_SECS: 0}
        if extra:
            params.update(extra)
        return params

    def create_ddb_store(self, table_name: str = "pollflow-store") -> DynamoDBPersistentStore:
        table = create_store_table(boto3.resource("dynamodb", region_name=self.region), table_name)
        return DynamoDBPersistentStore(table)


def lambda_response(payload: bytes, status_code: int = 200, function_error: Optional[str] = None) -> Dict[str, Any]:
    """Mimics the response of a synchronous lambda invocation (payload is an already read body)."""
    response = {"StatusCode": status_code, "Payload": payload}
    if function_error:
        response["FunctionError"] = function_error
    return response


def create_mock_session(clients: Dict[str, Any], region: Optional[str] = None) -> MagicMock:
    """boto3.Session stand-in that hands out the given (mock) clients per service name.

    For the services moto cannot emulate (e.g Elastic Transcoder, MediaConvert).
    """
    session = MagicMock()
    session.region_name = region
    session.client.side_effect = lambda service, **kwargs: clients[service]
    return session
