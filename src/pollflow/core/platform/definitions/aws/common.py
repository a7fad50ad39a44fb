# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import json
import logging
import re
import time
from enum import Enum, unique
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import boto3
import shortuuid
from botocore.exceptions import ClientError, WaiterError

from pollflow.core.entity import CoreData

module_logger = logging.getLogger(__name__)

AWS_MAX_ROLE_NAME_SIZE = 64
POLICY_VERSION = "2012-10-17"
DEFAULT_ROLE_PROPAGATION_WAIT_IN_SECS = 10


@unique
class AWSCommonParams(str, Enum):
    BOTO_SESSION = "AWS_BOTO_SESSION"
    ACCESS_PAIR = "AWS_ACCESS_PAIR"
    REGION = "AWS_REGION"
    BUCKET = "AWS_BUCKET"
    ROLE_NAME = "AWS_ROLE_NAME"
    CLIENT_OPTIONS = "AWS_CLIENT_OPTIONS"
    ROLE_PROPAGATION_WAIT_IN_SECS = "AWS_ROLE_PROPAGATION_WAIT_IN_SECS"


class AWSAccessPair(CoreData):
    def __init__(self, aws_access_key_id: str, aws_secret_access_key: str) -> None:
        self.aws_access_key_id = aws_access_key_id
        self.aws_secret_access_key = aws_secret_access_key

    def __repr__(self) -> str:
        # keep the secret out of the logs
        return f"AWSAccessPair(aws_access_key_id={self.aws_access_key_id!r})"

    __str__ = __repr__


def get_code_for_exception(error):
    if isinstance(error, ClientError) and "Code" in error.response["Error"]:
        return error.response["Error"]["Code"]
    elif isinstance(error, WaiterError) and "Error" in error.last_response:
        return error.last_response["Error"]["Code"]
    elif hasattr(error, "error_code"):
        return error.error_code

    return error.__class__.__name__


# common AWS service errors
AWS_COMMON_RETRYABLE_ERRORS = [
    "TooManyRequestsException",
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "Unavailable",
    "InternalFailure",
    "InternalError",
    "InternalServerError",
    "LimitExceededException",
    "ServiceUnavailable",
    "ServiceUnavailableException",
    # botocore common retryable errors
    "ConnectTimeoutError",
    "ReadTimeoutError",
]


MAX_SLEEP_INTERVAL_PARAM = "_max_sleep_time_in_secs"
MAX_SLEEP_INTERVAL_DEFAULT = 64 + 1


def exponential_retry(func, service_retryable_errors, *func_args, **func_kwargs):
    """
    Retries the specified function with a simple exponential backoff algorithm.
    :param func: The function to retry.
    :param service_retryable_errors: AWS service specific retryable error codes. These are added to an internal list
                                    of AWS common retryable errors to get a final list of retryable errors. Anything else
                                    is raised without a retry.
    :param func_args: The positional arguments to pass to the function.
    :param func_kwargs: The keyword arguments to pass to the function.
    :return: The return value of the retried function.
    """
    retryables = list(AWS_COMMON_RETRYABLE_ERRORS)
    retryables.extend(service_retryable_errors)
    sleepy_time = 1
    if MAX_SLEEP_INTERVAL_PARAM in func_kwargs:
        max_sleepy_time = func_kwargs.pop(MAX_SLEEP_INTERVAL_PARAM)
    else:
        max_sleepy_time = MAX_SLEEP_INTERVAL_DEFAULT
    while True:
        try:
            func_return = func(*func_args, **func_kwargs)
            module_logger.debug("Ran %s, got %s.", func.__name__ if hasattr(func, "__name__") else str(func), func_return)
            return func_return
        except Exception as error:
            error_code = get_code_for_exception(error)
            if error_code in retryables:
                module_logger.critical(f"Sleeping for {sleepy_time} secs before retrying. Retryable error_code={error_code!r}")
                time.sleep(sleepy_time)
                sleepy_time = sleepy_time * 2
                if sleepy_time < max_sleepy_time:
                    continue
            raise


def get_session(access_pair: Optional[AWSAccessPair] = None, region: Optional[str] = None) -> boto3.Session:
    """Wrapper around boto3.Session(), falls back to the default credentials chain if no pair is provided."""
    if not access_pair:
        module_logger.warning("Creating boto3.Session with system defaults.")
        return boto3.Session(region_name=region)

    module_logger.info("Creating boto3.Session with access key pair.")
    return boto3.Session(access_pair.aws_access_key_id, access_pair.aws_secret_access_key, None, region)


# Validators
ACCESS_KEY_ID_PATTERN = re.compile(r"^AK[A-Z0-9]{18}$")
SECRET_ACCESS_KEY_PATTERN = re.compile(r"^[A-Za-z0-9/+=]{40}$")
REGION_PATTERN = re.compile(
    r"^(af|ap|ca|cn|eu|me|sa|us|us-gov)-(central|east|north|northeast|northwest|south|southeast|southwest|west)-\d$"
)
BUCKET_PATTERN = re.compile(
    r"(?=^.{3,63}$)(?!^(\d+\.)+\d+$)(^(([a-z0-9]|[a-z0-9][a-z0-9\-]*[a-z0-9])\.)*([a-z0-9]|[a-z0-9][a-z0-9\-]*[a-z0-9])$)"
)
S3_URL_PATTERN = re.compile(r"^s3://([^/]+)/(([^/]+/)*)([^/]+)$")


def _validate(pattern: "re.Pattern", value: Any, name: str) -> str:
    if not isinstance(value, str) or not pattern.match(value):
        raise ValueError(f"Invalid {name}: {value!r}")
    return value


def validate_access_key_id(access_key_id: str) -> str:
    return _validate(ACCESS_KEY_ID_PATTERN, access_key_id, "access key id")


def validate_secret_access_key(secret_access_key: str) -> str:
    if not isinstance(secret_access_key, str) or not SECRET_ACCESS_KEY_PATTERN.match(secret_access_key):
        # never echo the secret
        raise ValueError("Invalid secret access key!")
    return secret_access_key


def validate_region(region: str) -> str:
    return _validate(REGION_PATTERN, region, "region")


def validate_bucket(bucket: str) -> str:
    return _validate(BUCKET_PATTERN, bucket, "bucket")


def parse_s3_url(url: str) -> Tuple[str, str]:
    """Returns (bucket, key) of 's3://<bucket>/<key>'"""
    match = S3_URL_PATTERN.match(url) if isinstance(url, str) else None
    if not match:
        raise ValueError(f"Invalid S3 URL: {url!r}")
    bucket = match.group(1)
    try:
        validate_bucket(bucket)
    except ValueError:
        raise ValueError(f"Invalid bucket in S3 URL: {url!r}")
    return bucket, url[len(f"s3://{bucket}/") :]


def validate_s3_url(url: str) -> str:
    parse_s3_url(url)
    return url


# IAM
def create_policy_document(statements: Union[Dict[str, Any], Sequence[Dict[str, Any]]]) -> Dict[str, Any]:
    """Statements are in the form of {'effect': .., 'action': [..], 'resource': ..}"""
    statements = [statements] if isinstance(statements, dict) else list(statements)
    return {
        "Version": POLICY_VERSION,
        "Statement": [
            {"Effect": statement.get("effect", "Allow"), "Action": statement["action"], "Resource": statement["resource"]}
            for statement in statements
        ],
    }


def _get_trust_policy(allowed_services: Sequence[str]) -> str:
    """Example allowed_service: 'lambda.amazonaws.com'"""
    return json.dumps(
        {
            "Version": POLICY_VERSION,
            "Statement": [
                {"Effect": "Allow", "Principal": {"Service": service}, "Action": "sts:AssumeRole"} for service in allowed_services
            ],
        }
    )


def normalize_policy_arn(managed_policy_name: str) -> str:
    return managed_policy_name if managed_policy_name.startswith("arn:") else f"arn:aws:iam::aws:policy/{managed_policy_name}"


def get_role(role_name: str, base_session: boto3.Session) -> Optional[Dict[str, Any]]:
    iam = base_session.client("iam")
    try:
        return exponential_retry(iam.get_role, ["Throttling"], RoleName=role_name)["Role"]
    except ClientError as err:
        if get_code_for_exception(err) in ["NoSuchEntity", "NoSuchEntityException"]:
            return None
        raise


def create_service_role(
    role_name: str, base_session: boto3.Session, allowed_services: Sequence[str], propagation_wait_in_secs: float = 0
) -> Dict[str, Any]:
    """
    Creates a role that lets a list of specified services assume the role.

    :return: The newly created role.
    """
    if not role_name or len(role_name) > AWS_MAX_ROLE_NAME_SIZE:
        raise ValueError(f"Invalid role name: {role_name!r}")
    iam = base_session.client("iam")
    try:
        role = exponential_retry(
            iam.create_role,
            ["ServiceFailureException"],
            RoleName=role_name,
            AssumeRolePolicyDocument=_get_trust_policy(allowed_services),
        )["Role"]
        if "role_exists" in iam.waiter_names:
            iam.get_waiter("role_exists").wait(RoleName=role_name)
        module_logger.info(f"Created role {role_name} for services {allowed_services}")
    except ClientError as ex:
        module_logger.exception("Couldn't create role %s. Exception: %s", role_name, str(ex))
        raise

    if propagation_wait_in_secs:
        # it takes a while for a service role to become assumable
        time.sleep(propagation_wait_in_secs)
    return role


def attach_aws_managed_policy(role_name: str, managed_policy_name: str, base_session: boto3.Session) -> None:
    """
    managed_policy_name: can be a full AWS managed policy arn or just the policy name
    """
    iam = base_session.client("iam")
    policy_arn = normalize_policy_arn(managed_policy_name)
    try:
        exponential_retry(iam.attach_role_policy, ["ServiceFailureException"], RoleName=role_name, PolicyArn=policy_arn)
        module_logger.info(f"Attached AWS managed policy {managed_policy_name!r} to the role {role_name!r}")
    except ClientError as ex:
        module_logger.exception("Could not attach AWS managed policy to role %s. Exception: %s", role_name, str(ex))
        raise


def put_inlined_policy(role_name: str, policy_name: str, policy_document: Dict[str, Any], base_session: boto3.Session) -> None:
    iam = base_session.client("iam")
    try:
        exponential_retry(
            iam.put_role_policy,
            ["ServiceFailureException"],
            PolicyDocument=json.dumps(policy_document),
            PolicyName=policy_name,
            RoleName=role_name,
        )
        module_logger.info(f"Put inlined policy {policy_name!r} to the role {role_name!r}")
    except ClientError as ex:
        module_logger.exception("Could not put inlined policy %s to role %s. Exception: %s", policy_name, role_name, str(ex))
        raise


def generate_inlined_policy_name(role_name: str) -> str:
    return f"policy_{role_name}_{shortuuid.ShortUUID().random(length=8)}"


def get_or_create_service_role(
    role_name: str,
    service: str,
    base_session: boto3.Session,
    policies: Optional[Union[str, Dict[str, Any], List[Union[str, Dict[str, Any]]]]] = None,
    propagation_wait_in_secs: float = DEFAULT_ROLE_PROPAGATION_WAIT_IN_SECS,
) -> Dict[str, Any]:
    """Returns the role if it exists already, otherwise creates it for 'service' with 'policies'.

    Policies given as strings are treated as managed policies (name or ARN) and attached, dicts are treated as policy
    documents and put as inlined policies.
    """
    role = get_role(role_name, base_session)
    if role:
        return role

    module_logger.info(f"Creating IAM role for service {service}: {role_name}")
    role = create_service_role(role_name, base_session, [service], propagation_wait_in_secs=0)
    policies = [] if policies is None else policies if isinstance(policies, list) else [policies]
    for policy in policies:
        if isinstance(policy, str):
            attach_aws_managed_policy(role_name, policy, base_session)
        else:
            put_inlined_policy(role_name, generate_inlined_policy_name(role_name), policy, base_session)

    if propagation_wait_in_secs:
        time.sleep(propagation_wait_in_secs)
    return role
