# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
import re
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import ClientError

from pollflow.core.platform.definitions.aws.common import exponential_retry

logger = logging.getLogger(__name__)

PIPELINE_ID_PATTERN = re.compile(r"^\d{13}-[a-z]{6}$")


def validate_pipeline_id(pipeline_id: str) -> str:
    if not isinstance(pipeline_id, str) or not PIPELINE_ID_PATTERN.match(pipeline_id):
        raise ValueError(f"Invalid pipeline ID: {pipeline_id!r}")
    return pipeline_id


def _list_all(api: Callable, result_field: str, **kwargs) -> List[Dict[str, Any]]:
    items = []
    page_token = None
    while True:
        args = dict(kwargs)
        if page_token:
            args["PageToken"] = page_token
        response = exponential_retry(api, [], **args)
        items.extend(response.get(result_field, None) or [])
        page_token = response.get("NextPageToken", None)
        if not page_token:
            return items


def list_jobs_by_pipeline(et_client, pipeline_id: str) -> List[Dict[str, Any]]:
    try:
        return _list_all(et_client.list_jobs_by_pipeline, "Jobs", PipelineId=pipeline_id)
    except ClientError:
        logger.exception("Couldn't list jobs of pipeline %s.", pipeline_id)
        raise


def list_pipelines(et_client) -> List[Dict[str, Any]]:
    try:
        return _list_all(et_client.list_pipelines, "Pipelines")
    except ClientError:
        logger.exception("Couldn't list pipelines.")
        raise


def list_presets(et_client) -> List[Dict[str, Any]]:
    try:
        return _list_all(et_client.list_presets, "Presets")
    except ClientError:
        logger.exception("Couldn't list presets.")
        raise


def create_job(et_client, **params) -> Dict[str, Any]:
    try:
        job = et_client.create_job(**params)["Job"]
        logger.info("Created job %s on pipeline %s.", job.get("Id", None), params.get("PipelineId", None))
    except ClientError:
        logger.exception("Couldn't create job on pipeline %s.", params.get("PipelineId", None))
        raise
    return job


def read_job(et_client, job_id: str) -> Dict[str, Any]:
    try:
        return exponential_retry(et_client.read_job, [], Id=job_id)["Job"]
    except ClientError:
        logger.exception("Couldn't read job %s.", job_id)
        raise


def cancel_job(et_client, job_id: str) -> None:
    try:
        et_client.cancel_job(Id=job_id)
        logger.info("Cancelled job %s.", job_id)
    except ClientError:
        logger.exception("Couldn't cancel job %s.", job_id)
        raise


def search(items: List[Dict[str, Any]], field: str, token: str) -> Optional[Dict[str, Any]]:
    """First match of 'token' on 'field' by (in order of precedence): exact match, case-insensitive match, prefix,
    substring."""
    if not isinstance(token, str) or not token:
        raise ValueError(f"Token must be a non-empty string: {token!r}")
    lower = token.lower()
    values = [(item, item.get(field, None) or "") for item in items]
    for matches in (
        lambda value: value == token,
        lambda value: value.lower() == lower,
        lambda value: value.startswith(token),
        lambda value: token in value,
    ):
        for item, value in values:
            if matches(value):
                return item
    return None
