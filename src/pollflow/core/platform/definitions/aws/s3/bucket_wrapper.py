# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from pollflow.core.platform.definitions.aws.common import exponential_retry

logger = logging.getLogger(__name__)

# S3 reports buckets of the default region with an empty location constraint
DEFAULT_BUCKET_REGION = "us-east-1"

# returned while a bucket with the same name is still being deleted
BUCKET_RETRYABLE_ERRORS = ["OperationAborted"]


def create_bucket(s3, name: str, region: Optional[str] = None):
    """Create the bucket and block until S3 reports it.

    A location constraint is only sent for regions other than the default one.

    :param s3: S3 resource
    :return: the Bucket resource
    """
    create_kwargs: Dict[str, Any] = {"Bucket": name}
    if region and region != DEFAULT_BUCKET_REGION:
        create_kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
    try:
        bucket = exponential_retry(s3.create_bucket, BUCKET_RETRYABLE_ERRORS, **create_kwargs)
        bucket.wait_until_exists()
    except ClientError as error:
        logger.exception("Couldn't create bucket %s (region=%s).", name, region)
        if error.response["Error"]["Code"] == "IllegalLocationConstraintException":
            logger.error(
                "Location constraint %s does not match the region of the session (%s)!", region, s3.meta.client.meta.region_name
            )
        raise
    logger.info("Created bucket %s in region %s.", name, region or s3.meta.client.meta.region_name)
    return bucket


def list_buckets(s3) -> List[Dict[str, Any]]:
    """Bucket summaries ({'Name', 'CreationDate'}) of the account."""
    try:
        response = exponential_retry(s3.meta.client.list_buckets, [])
    except ClientError:
        logger.exception("Couldn't list buckets.")
        raise
    return response.get("Buckets", [])


def get_bucket(s3, name: str):
    return s3.Bucket(name)


def get_bucket_region(s3, name: str) -> str:
    try:
        response = exponential_retry(s3.meta.client.get_bucket_location, [], Bucket=name)
    except ClientError:
        logger.exception("Couldn't get the location of bucket %s.", name)
        raise
    return response.get("LocationConstraint", None) or DEFAULT_BUCKET_REGION


def delete_bucket(bucket) -> None:
    """Delete an (empty) bucket and block until it is gone."""
    try:
        exponential_retry(bucket.delete, BUCKET_RETRYABLE_ERRORS)
        bucket.wait_until_not_exists()
    except ClientError:
        logger.exception("Couldn't delete bucket %s.", bucket.name)
        raise
    logger.info("Deleted bucket %s.", bucket.name)
