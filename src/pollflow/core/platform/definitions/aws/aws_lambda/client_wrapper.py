# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import io
import json
import logging
import re
import zipfile
from numbers import Number
from typing import Any, Dict, List, Optional, Union

from botocore.exceptions import ClientError

from pollflow.core.platform.definitions.aws.common import get_code_for_exception

logger = logging.getLogger(__name__)

FUNCTION_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\-]{1,64}$")

DEFAULT_HANDLER_FILE_NAME = "index.py"
DEFAULT_HANDLER_NAME = "index.handler"
DEFAULT_RUNTIME = "python3.12"
DEFAULT_MEMORY_SIZE = 256
DEFAULT_TIMEOUT = 3


class LambdaInvocationError(Exception):
    """A Lambda invocation that did not produce a usable result.

    'code' is the transport status, the function's own 'statusCode' (or error message / function error) or 'unknown'
    if the function returned a null payload.
    """

    def __init__(self, code: Union[int, str], function_name: Optional[str] = None) -> None:
        self.code = code
        self.function_name = function_name
        suffix = f": {function_name}" if function_name else ""
        super().__init__(f"Error {code} invoking lambda function{suffix}")


def validate_lambda_function_name(function_name: str) -> str:
    if not isinstance(function_name, str):
        raise ValueError(f"Lambda function name not a string: {function_name!r}")
    if not FUNCTION_NAME_PATTERN.match(function_name):
        raise ValueError(f"Invalid lambda function name: {function_name!r}")
    return function_name


def create_lambda_deployment_package(code: str, file_name: str = DEFAULT_HANDLER_FILE_NAME) -> bytes:
    """
    Creates a Lambda deployment package in ZIP format in an in-memory buffer, with the code as its only file. This
    buffer can be passed directly to AWS Lambda when creating the function.
    :param code: Source code of the handler module.
    :param file_name: Name of the file within the archive.
    :return: The deployment package.
    """
    if not isinstance(code, str) or not code:
        raise ValueError(f"Invalid code for lambda function: {code!r}")
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zipped:
        zipped.writestr(file_name, code)
    buffer.seek(0)
    return buffer.read()


def create_lambda_function(
    lambda_client,
    function_name,
    iam_role_arn,
    zip_file: bytes,
    handler_name=DEFAULT_HANDLER_NAME,
    runtime=DEFAULT_RUNTIME,
    memory_size=DEFAULT_MEMORY_SIZE,
    timeout=DEFAULT_TIMEOUT,
    env: Optional[Dict[str, str]] = None,
    tags: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Deploys the AWS Lambda function.
    :param lambda_client: The Boto3 AWS Lambda client object.
    :param function_name: The name of the AWS Lambda function.
    :param iam_role_arn: The IAM role to use for the function.
    :param zip_file: The deployment package (ZIP archive bytes).
    :param handler_name: The fully qualified name of the handler function. This
                         must include the file name and the function name.
    :return: The description of the newly created function.
    """
    args = {
        "FunctionName": function_name,
        "Timeout": timeout,
        "MemorySize": memory_size,
        "Runtime": runtime,
        "Role": iam_role_arn,
        "Handler": handler_name,
        "Code": {"ZipFile": zip_file},
        "Environment": {"Variables": dict(env)} if env else {},
        "Tags": dict(tags) if tags else {},
        "Publish": True,
    }
    try:
        response = lambda_client.create_function(**args)

        # support wide-range of boto versions by checking the existence
        if "function_active" in lambda_client.waiter_names:
            lambda_client.get_waiter("function_active").wait(FunctionName=function_name)
        logger.info("Created function '%s' with ARN: '%s'.", function_name, response["FunctionArn"])
    except ClientError:
        logger.exception("Couldn't create function %s.", function_name)
        raise
    else:
        return response


def delete_lambda_function(lambda_client, function_name):
    """
    Deletes an AWS Lambda function.
    :param lambda_client: The Boto3 AWS Lambda client object.
    :param function_name: The name of the function to delete.
    """
    try:
        lambda_client.delete_function(FunctionName=function_name)
        logger.info("Deleted function %s.", function_name)
    except ClientError:
        logger.exception("Couldn't delete function %s.", function_name)
        raise


def invoke_lambda_function(lambda_client, function_name, function_params, is_async=False):
    """
    Invokes an AWS Lambda function.
    :param lambda_client: The Boto3 AWS Lambda client object.
    :param function_name: The name of the function to invoke.
    :param function_params: The parameters of the function. They are serialized to JSON before being sent to AWS
                            Lambda.
    :return: The response from the function invocation.
    """
    try:
        response = lambda_client.invoke(
            FunctionName=function_name,
            Payload=json.dumps(function_params).encode(),
            InvocationType="Event" if is_async else "RequestResponse",
        )
        logger.info("Invoked function %s.", function_name)
    except ClientError:
        logger.exception("Couldn't invoke function %s.", function_name)
        raise
    return response


def _read_payload(payload: Any) -> Any:
    if payload is None:
        return None
    if hasattr(payload, "read"):
        payload = payload.read()
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    return json.loads(payload) if payload else None


def parse_lambda_response(response: Dict[str, Any], function_name: Optional[str] = None) -> Any:
    """Interpret the response of a synchronous invocation.

    - transport status other than 200 -> error with that status
    - null payload -> error 'unknown'
    - payload without a numeric 'statusCode' is returned as is
    - 'statusCode' outside of [200, 300) -> error with the status (or 'errorMessage', or the transport 'FunctionError')
    - otherwise 'body' decoded as JSON if possible, raw otherwise

    :raises LambdaInvocationError
    """
    status = response.get("StatusCode", None)
    if status != 200:
        raise LambdaInvocationError(status, function_name)

    payload = _read_payload(response.get("Payload", None))
    if payload is None:
        raise LambdaInvocationError("unknown", function_name)

    status_code = payload.get("statusCode", None) if isinstance(payload, dict) else None
    if isinstance(status_code, bool) or not isinstance(status_code, Number):
        return payload

    if not (200 <= status_code < 300):
        raise LambdaInvocationError(status_code or payload.get("errorMessage", None) or response.get("FunctionError", None), function_name)

    body = payload.get("body", None)
    try:
        return json.loads(body)
    except (TypeError, ValueError):
        return body


def get_lambda_function_details(lambda_client, function_name: str) -> Optional[Dict]:
    """
    Get details about an AWS Lambda function.
    :param lambda_client: The Boto3 AWS Lambda client object.
    :param function_name: The name of the function to query.
    :return: dictionary contains details about the lambda or None if no such lambda is found
    """
    try:
        return lambda_client.get_function(FunctionName=function_name)
    except ClientError as ex:
        if get_code_for_exception(ex) == "ResourceNotFoundException":
            return None
        logger.error("Couldn't check lambda '%s'! Error: %s", function_name, str(ex))
        raise


def list_functions(lambda_client) -> List[Dict[str, Any]]:
    functions = []
    try:
        for page in lambda_client.get_paginator("list_functions").paginate():
            functions.extend(page.get("Functions", []))
    except ClientError:
        logger.exception("Couldn't list functions.")
        raise
    return functions
