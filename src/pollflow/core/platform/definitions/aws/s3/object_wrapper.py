# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import Any, Dict, List, Union

from botocore.exceptions import ClientError

from pollflow.core.platform.definitions.aws.common import exponential_retry
from pollflow.utils.digest import calculate_bytes_sha256

logger = logging.getLogger(__name__)


"""
Refer
https://github.com/awsdocs/aws-doc-sdk-examples/blob/master/python/example_code/s3/s3_basics/object_wrapper.py
"""

SIGNED_URL_OPERATIONS = {"getObject": "get_object", "putObject": "put_object", "get_object": "get_object", "put_object": "put_object"}


def put_object(bucket, object_key: str, put_data: Union[str, bytes]) -> Dict[str, Any]:
    """
    Upload data to a bucket and identify it with the specified object key.
    If the object is bytes, its SHA256 digest will be associated as object's metadata.
    :param bucket: The S3 bucket to receive the data. as boto3 resource.
    :param object_key: The key of the object in the bucket.
    :param put_data: The data to upload, str or bytes.
    :return the response of the put operation.
    """
    try:
        obj = bucket.Object(object_key)
        if isinstance(put_data, bytes):
            sha256_digest = calculate_bytes_sha256(put_data)
            response = obj.put(Body=put_data, Metadata={"sha256": sha256_digest})
        else:
            response = obj.put(Body=put_data)
        obj.wait_until_exists()
        logger.info("Put object '%s' to bucket '%s'.", object_key, bucket.name)
        return response
    except ClientError:
        logger.exception("Couldn't put object '%s' to bucket '%s'.", object_key, bucket.name)
        raise


def get_object(bucket, object_key) -> Dict[str, Any]:
    """
    Gets an object from a bucket.
    :param bucket: The bucket that contains the object.
    :param object_key: The key of the object to retrieve.
    :return: The response of the get operation where 'Body' is already read into bytes.
    """
    try:
        response = bucket.Object(object_key).get()
        response["Body"] = exponential_retry(response["Body"].read, ["ReadTimeoutError", "IncompleteReadError"])
        logger.info("Got object '%s' from bucket '%s'.", object_key, bucket.name)
    except ClientError:
        logger.exception("Couldn't get object '%s' from bucket '%s'.", object_key, bucket.name)
        raise
    else:
        return response


def list_objects(bucket, prefix=None, limit=None) -> List[Any]:
    """
    Lists the objects in a bucket (all of the pages), optionally filtered by a prefix.
    :param bucket: The bucket to query.
    :param prefix: When specified, only objects that start with this prefix are listed.
    :param limit: Limit the number of objects to be retrieved. If not specified, returns all of the objects.
    :return: The list of object summaries.
    """
    try:
        if prefix is None:
            objects = bucket.objects.all()
        else:
            objects = bucket.objects.filter(Prefix=prefix)

        if limit is not None:
            objects = objects.limit(limit)
        objects = list(objects)
        logger.info(f"Listed {len(objects)} objects from bucket {bucket.name!r}")
    except ClientError:
        logger.exception("Couldn't list objects for bucket '%s'.", bucket.name)
        raise
    else:
        return objects


def copy_object(source_bucket, source_object_key, dest_bucket, dest_object_key):
    """
    Copies an object from one bucket to another.
    :param source_bucket: The bucket that contains the source object.
    :param source_object_key: The key of the source object.
    :param dest_bucket: The bucket that receives the copied object.
    :param dest_object_key: The key of the copied object.
    :return: The result of the copy ('CopyObjectResult').
    """
    try:
        obj = dest_bucket.Object(dest_object_key)
        response = obj.copy_from(CopySource={"Bucket": source_bucket.name, "Key": source_object_key})
        obj.wait_until_exists()
        logger.info("Copied object from %s/%s to %s/%s.", source_bucket.name, source_object_key, dest_bucket.name, dest_object_key)
    except ClientError:
        logger.exception(
            "Couldn't copy object from %s/%s to %s/%s.", source_bucket.name, source_object_key, dest_bucket.name, dest_object_key
        )
        raise
    else:
        return response.get("CopyObjectResult", None)


def delete_object(bucket, object_key):
    """
    Removes an object from a bucket.
    :param bucket: The bucket that contains the object.
    :param object_key: The key of the object to delete.
    """
    try:
        obj = bucket.Object(object_key)
        obj.delete()
        obj.wait_until_not_exists()
        logger.info("Deleted object '%s' from bucket '%s'.", object_key, bucket.name)
        return True
    except ClientError:
        logger.exception("Couldn't delete object '%s' from bucket '%s'.", object_key, bucket.name)
        raise


def generate_presigned_url(s3_client, operation: str, bucket: str, object_key: str, expires_in_secs: int = 60) -> str:
    """
    :param operation: 'getObject'/'get_object' or 'putObject'/'put_object'
    """
    client_method = SIGNED_URL_OPERATIONS.get(operation, None)
    if client_method is None:
        raise ValueError(f"Unsupported operation for a signed URL: {operation!r}")
    try:
        return s3_client.generate_presigned_url(
            ClientMethod=client_method, Params={"Bucket": bucket, "Key": object_key}, ExpiresIn=expires_in_secs
        )
    except ClientError:
        logger.exception("Couldn't generate a signed URL for %s on %s/%s.", operation, bucket, object_key)
        raise
