# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import Any, Dict, List

from botocore.exceptions import ClientError

from pollflow.core.platform.definitions.aws.common import exponential_retry

logger = logging.getLogger(__name__)

MEDIACONVERT_API_VERSION = "2017-08-29"
DEFAULT_LIST_JOBS_MAX = 20


def describe_endpoint(mc_client) -> str:
    """URL of the account specific MediaConvert endpoint."""
    try:
        response = exponential_retry(mc_client.describe_endpoints, ["TooManyRequestsException"], MaxResults=0)
    except ClientError:
        logger.exception("Couldn't describe MediaConvert endpoints.")
        raise
    endpoints = response.get("Endpoints", None)
    if not endpoints:
        raise ValueError("MediaConvert did not return any endpoints!")
    return endpoints[0]["Url"]


def list_jobs(mc_client, max_results: int = DEFAULT_LIST_JOBS_MAX) -> List[Dict[str, Any]]:
    """Most recent jobs (single page of at most 'max_results')."""
    try:
        response = exponential_retry(mc_client.list_jobs, [], MaxResults=max_results)
    except ClientError:
        logger.exception("Couldn't list MediaConvert jobs.")
        raise
    return response.get("Jobs", None) or []


def get_job(mc_client, job_id: str) -> Dict[str, Any]:
    try:
        return exponential_retry(mc_client.get_job, [], Id=job_id)["Job"]
    except ClientError:
        logger.exception("Couldn't get MediaConvert job %s.", job_id)
        raise


def create_job(mc_client, **params) -> Dict[str, Any]:
    try:
        job = mc_client.create_job(**params)["Job"]
        logger.info("Created MediaConvert job %s.", job.get("Id", None))
    except ClientError:
        logger.exception("Couldn't create MediaConvert job.")
        raise
    return job


def cancel_job(mc_client, job_id: str) -> None:
    try:
        mc_client.cancel_job(Id=job_id)
        logger.info("Cancelled MediaConvert job %s.", job_id)
    except ClientError:
        logger.exception("Couldn't cancel MediaConvert job %s.", job_id)
        raise
