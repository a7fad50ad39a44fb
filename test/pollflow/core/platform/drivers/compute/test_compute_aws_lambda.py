# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import asyncio
import json

import boto3
import pytest

import pollflow.core.platform.drivers.compute.aws_lambda as lambda_driver
from pollflow.core.dispatcher import QUEUE_COMPLETE_EVENT, ResolutionStatus
from pollflow.core.platform.definitions.aws.aws_lambda.client_wrapper import LambdaInvocationError
from pollflow.core.platform.drivers.compute.aws_lambda import DEFAULT_ROLE_NAME, AWSLambdaConnector
from pollflow.core.platform.platform import Platform
from pollflow.mixins.aws.test import AWSTestBase, lambda_response


def _echo_lambda(lambda_client, function_name, payload, is_async=False):
    if payload == "fail":
        return lambda_response(json.dumps({"statusCode": 500, "errorMessage": "failed"}).encode())
    if payload == "crash":
        return lambda_response(b"{}", status_code=502)
    return lambda_response(json.dumps({"statusCode": 200, "body": json.dumps({"echo": payload})}).encode())


class TestAWSLambdaConnector(AWSTestBase):
    def test_lambda_create_from_code(self, aws_credentials):
        self.patch_aws_start()

        async def _run():
            connector = Platform().connect(AWSLambdaConnector(self.connector_params()))
            response = await connector.create_from_code("pollflow-echo", "def handler(event, context):\n    return event\n")
            return response

        response = asyncio.run(_run())
        assert response["FunctionName"] == "pollflow-echo"
        assert response["Role"].endswith(f"role/{DEFAULT_ROLE_NAME}")

        create_call = lambda_driver.create_lambda_function.call_args
        assert create_call.args[1] == "pollflow-echo"
        assert isinstance(create_call.args[3], bytes)
        assert create_call.kwargs["handler_name"] == "index.handler"

        iam = boto3.client("iam", region_name=self.region)
        assert iam.get_role(RoleName=DEFAULT_ROLE_NAME)["Role"]["RoleName"] == DEFAULT_ROLE_NAME
        policy_names = iam.list_role_policies(RoleName=DEFAULT_ROLE_NAME)["PolicyNames"]
        assert len(policy_names) == 1
        document = iam.get_role_policy(RoleName=DEFAULT_ROLE_NAME, PolicyName=policy_names[0])["PolicyDocument"]
        assert document["Statement"][0]["Action"] == ["logs:CreateLogGroup", "logs:CreateLogStream", "logs:PutLogEvents"]

        self.patch_aws_stop()

    def test_lambda_create_from_file_and_buffer(self, aws_credentials, tmp_path):
        self.patch_aws_start()

        source = tmp_path / "handler.py"
        source.write_text("def handler(event, context):\n    return 1\n")

        async def _run():
            connector = Platform().connect(AWSLambdaConnector(self.connector_params()))
            await connector.create_from_file("from-file", str(source), memory_size=512)
            await connector.create_from_buffer("from-buffer", b"PK-zip-bytes", role_name="custom-role")
            with pytest.raises(ValueError):
                await connector.create_from_code("invalid_name", "code")

        asyncio.run(_run())
        calls = lambda_driver.create_lambda_function.call_args_list
        assert calls[0].kwargs["memory_size"] == 512
        assert calls[1].args[3] == b"PK-zip-bytes"
        assert calls[1].args[2].endswith("role/custom-role")

        self.patch_aws_stop()

    def test_lambda_invoke(self, aws_credentials):
        self.patch_aws_start(invoke_lambda_function_mock=_echo_lambda)

        async def _run():
            connector = Platform().connect(AWSLambdaConnector(self.connector_params()))
            assert await connector.invoke("pollflow-echo", {"a": 1}) == {"echo": {"a": 1}}
            with pytest.raises(LambdaInvocationError) as error:
                await connector.invoke("pollflow-echo", "fail")
            assert error.value.code == 500
            with pytest.raises(ValueError):
                await connector.invoke("bad name", {})

        asyncio.run(_run())

        self.patch_aws_stop()

    def test_lambda_enqueue(self, aws_credentials):
        self.patch_aws_start(invoke_lambda_function_mock=_echo_lambda)

        async def _run():
            platform = Platform()
            connector = platform.connect(AWSLambdaConnector(self.connector_params()))
            events = []
            connector.on({"type": QUEUE_COMPLETE_EVENT}, events.append)
            with pytest.raises(ValueError):
                connector.on({"type": "FunctionInvoked"}, events.append)

            queue_id = await connector.enqueue("pollflow-echo", ["p1", "fail", "p3", "crash"], 2)
            await connector.dispatcher.wait_idle()
            await platform.stop()
            return queue_id, events

        queue_id, events = asyncio.run(_run())
        assert len(events) == 1
        event = events[0]
        assert event["queue_id"] == queue_id
        assert event["target"] == "pollflow-echo"
        assert event["payloads"] == ["p1", "fail", "p3", "crash"]
        statuses = [resolution.status for resolution in event["resolutions"]]
        assert statuses == [ResolutionStatus.SUCCESS, ResolutionStatus.FAILURE, ResolutionStatus.SUCCESS, ResolutionStatus.FAILURE]
        assert event["resolutions"][0].data == {"echo": "p1"}
        assert event["resolutions"][1].detail == "Error 500 invoking lambda function: pollflow-echo"
        assert event["resolutions"][3].detail == "Error 502 invoking lambda function: pollflow-echo"
        assert lambda_driver.invoke_lambda_function.call_count == 4

        self.patch_aws_stop()

    def test_lambda_enqueue_after_platform_restart(self, aws_credentials):
        self.patch_aws_start(invoke_lambda_function_mock=_echo_lambda)

        async def _run():
            platform = Platform()
            connector = platform.connect(AWSLambdaConnector(self.connector_params()))
            events = []
            connector.on({"type": QUEUE_COMPLETE_EVENT}, events.append)

            await platform.start()
            await platform.stop()
            with pytest.raises(RuntimeError):
                await connector.enqueue("pollflow-echo", ["p1"], 1)

            await platform.start()
            queue_id = await connector.enqueue("pollflow-echo", ["p1", "p2"], 2)
            await connector.dispatcher.wait_idle()
            await platform.stop()
            return queue_id, events, await connector.dispatcher.get_queue(queue_id)

        queue_id, events, queue = asyncio.run(_run())
        assert len(events) == 1
        assert events[0]["queue_id"] == queue_id
        assert [resolution.data for resolution in events[0]["resolutions"]] == [{"echo": "p1"}, {"echo": "p2"}]
        assert queue is None

        self.patch_aws_stop()

    def test_lambda_enqueue_validation(self, aws_credentials):
        self.patch_aws_start(invoke_lambda_function_mock=_echo_lambda)

        async def _run():
            connector = Platform().connect(AWSLambdaConnector(self.connector_params()))
            with pytest.raises(ValueError):
                await connector.enqueue("bad_name", [1])
            with pytest.raises(ValueError):
                await connector.enqueue("pollflow-echo", [1], 0)
            with pytest.raises(ValueError):
                await connector.enqueue("pollflow-echo", [1], 101)

        asyncio.run(_run())
        assert lambda_driver.invoke_lambda_function.call_count == 0

        self.patch_aws_stop()

    def test_lambda_requires_attach_and_region(self, aws_credentials, monkeypatch):
        self.patch_aws_start()

        connector = AWSLambdaConnector(self.connector_params())
        with pytest.raises(RuntimeError):
            connector.dispatcher

        monkeypatch.delenv("AWS_DEFAULT_REGION", raising=False)
        monkeypatch.delenv("AWS_REGION", raising=False)
        monkeypatch.setenv("AWS_CONFIG_FILE", "/nonexistent/pollflow/config")
        with pytest.raises(ValueError):
            AWSLambdaConnector({})

        self.patch_aws_stop()
