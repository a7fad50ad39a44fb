# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import io
import json
import zipfile

import pytest
from mock import MagicMock

from pollflow.core.platform.definitions.aws.aws_lambda.client_wrapper import (
    LambdaInvocationError,
    create_lambda_deployment_package,
    invoke_lambda_function,
    parse_lambda_response,
    validate_lambda_function_name,
)
from pollflow.mixins.aws.test import lambda_response


class TestLambdaResponse:
    def test_transport_failure(self):
        with pytest.raises(LambdaInvocationError) as error:
            parse_lambda_response(lambda_response(b"{}", status_code=500), "fn")
        assert error.value.code == 500
        assert str(error.value) == "Error 500 invoking lambda function: fn"

    def test_null_payload(self):
        with pytest.raises(LambdaInvocationError) as error:
            parse_lambda_response(lambda_response(b"null"), "fn")
        assert error.value.code == "unknown"

    def test_raw_payload_without_status(self):
        assert parse_lambda_response(lambda_response(b'{"result": 42}')) == {"result": 42}
        assert parse_lambda_response(lambda_response(b'"plain"')) == "plain"
        # non numeric status is not a status
        assert parse_lambda_response(lambda_response(b'{"statusCode": "200"}')) == {"statusCode": "200"}

    def test_inner_failure(self):
        with pytest.raises(LambdaInvocationError) as error:
            parse_lambda_response(lambda_response(b'{"statusCode": 404, "body": "missing"}'), "fn")
        assert error.value.code == 404
        with pytest.raises(LambdaInvocationError):
            parse_lambda_response(lambda_response(b'{"statusCode": 300}'), "fn")

    def test_inner_success_body(self):
        body = json.dumps({"items": [1, 2]})
        assert parse_lambda_response(lambda_response(json.dumps({"statusCode": 200, "body": body}).encode())) == {"items": [1, 2]}
        assert parse_lambda_response(lambda_response(b'{"statusCode": 201, "body": "not json"}')) == "not json"
        assert parse_lambda_response(lambda_response(b'{"statusCode": 299}')) is None

    def test_streaming_payload(self):
        response = {"StatusCode": 200, "Payload": io.BytesIO(b'{"statusCode": 200, "body": "[1]"}')}
        assert parse_lambda_response(response) == [1]


class TestLambdaClientWrapper:
    def test_validate_lambda_function_name(self):
        assert validate_lambda_function_name("my-function-1") == "my-function-1"
        for invalid in ["", "my_function", "a" * 65, "fn:alias", None]:
            with pytest.raises(ValueError):
                validate_lambda_function_name(invalid)

    def test_deployment_package(self):
        package = create_lambda_deployment_package("def handler(event, context):\n    return event\n")
        with zipfile.ZipFile(io.BytesIO(package)) as archive:
            assert archive.namelist() == ["index.py"]
            assert archive.read("index.py").decode().startswith("def handler")
        with pytest.raises(ValueError):
            create_lambda_deployment_package("")

    def test_invoke(self):
        client = MagicMock()
        client.invoke.return_value = lambda_response(b"{}")
        invoke_lambda_function(client, "fn", {"a": 1})
        client.invoke.assert_called_once_with(FunctionName="fn", Payload=b'{"a": 1}', InvocationType="RequestResponse")
        invoke_lambda_function(client, "fn", {"a": 1}, is_async=True)
        assert client.invoke.call_args.kwargs["InvocationType"] == "Event"
