# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import Any, Dict, List, Optional

from overrides import overrides

from pollflow.core.diff import SameFn, Snapshot, SnapshotDiff, field_equality
from pollflow.core.events import EventDescriptor
from pollflow.core.platform.constructs import SnapshotWatcher, event_type_filter
from pollflow.core.platform.definitions.aws.common import AWSCommonParams
from pollflow.core.platform.definitions.aws.mediaconvert.client_wrapper import (
    DEFAULT_LIST_JOBS_MAX,
    MEDIACONVERT_API_VERSION,
    cancel_job,
    create_job,
    describe_endpoint,
    get_job,
    list_jobs,
)
from pollflow.core.platform.definitions.common import ConnectorParamsDict
from pollflow.core.platform.drivers.aws_common import AWSConnectorMixin
from pollflow.utils.concurrency import run_blocking

logger = logging.getLogger(__name__)

JOB_STATUS_CHANGED_EVENT = "JobStatusChanged"
DEFAULT_ROLE_NAME = "pollflow_AWSMediaConvertConnector"
SERVICE_PRINCIPAL = "mediaconvert.amazonaws.com"
ROLE_POLICIES = [
    "arn:aws:iam::aws:policy/AmazonS3FullAccess",
    "arn:aws:iam::aws:policy/AmazonAPIGatewayInvokeFullAccess",
]
UNKNOWN_JOB_STATUS = "UNKNOWN"
NEW_JOB_STATUS = "NEW"


def jobs_by_id(jobs: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {job["Id"]: job for job in jobs}


class AWSMediaConvertConnector(AWSConnectorMixin, SnapshotWatcher):
    """Watches the status of the most recent MediaConvert jobs of the account.

    Descriptor: {"type": "JobStatusChanged"}
    Event: {"job_id": .., "current": <job>, "old": <previous job or {"Id": .., "Status": "UNKNOWN"}>}

    The first poll only records the jobs. Jobs created through this connector are reported right away (from "NEW").
    """

    SERVICE = "mediaconvert"
    REGION_REQUIRED = True
    SNAPSHOT_KEY = "jobs"

    def __init__(self, params: ConnectorParamsDict, same_fn: Optional[SameFn] = None) -> None:
        super().__init__(params, same_fn)
        self._role_name = self._params.get(AWSCommonParams.ROLE_NAME, None) or DEFAULT_ROLE_NAME
        self._role_arn: Optional[str] = None
        self._endpoint_url: Optional[str] = None

    @overrides
    def default_same_fn(self) -> SameFn:
        return field_equality("Status")

    @overrides
    def validate_event(self, descriptor: EventDescriptor) -> EventDescriptor:
        event_type = descriptor.get("type", None)
        if event_type != JOB_STATUS_CHANGED_EVENT:
            raise ValueError(f"Invalid event type: {event_type!r}")
        return {"type": JOB_STATUS_CHANGED_EVENT}

    async def _get_client(self):
        if self._endpoint_url is None:
            client = self._account.client(self.SERVICE, api_version=MEDIACONVERT_API_VERSION)
            self._endpoint_url = await run_blocking(describe_endpoint, client)
            logger.info(f"Using MediaConvert endpoint {self._endpoint_url!r}")
        return self._account.client(self.SERVICE, api_version=MEDIACONVERT_API_VERSION, endpoint_url=self._endpoint_url)

    async def get_role_arn(self) -> str:
        if self._role_arn is None:
            role = await self._identity.get_or_create_service_role(self._role_name, SERVICE_PRINCIPAL, ROLE_POLICIES)
            role_arn = role.get("Arn", None) if role else None
            if not isinstance(role_arn, str):
                raise ValueError(f"Error creating IAM role: {self._role_name!r}")
            self._role_arn = role_arn
        return self._role_arn

    @overrides
    async def list_remote_state(self) -> Snapshot:
        return await self.list_jobs_by_id()

    @overrides
    async def on_initialized(self, snapshot: Snapshot) -> None:
        # first poll only records the jobs
        pass

    @overrides
    async def on_changed(self, old: Snapshot, new: Snapshot, diff: SnapshotDiff) -> None:
        batches = []
        for job_id, job in new.items():
            old_job = old.get(job_id, None)
            if old_job is None or not self._same_fn(old_job, job):
                batches.append((event_type_filter(JOB_STATUS_CHANGED_EVENT), self._create_event(job, old_job, UNKNOWN_JOB_STATUS)))
        await self._fire_all(batches)

    @staticmethod
    def _create_event(job: Dict[str, Any], old: Optional[Dict[str, Any]], default_status: str) -> Dict[str, Any]:
        return {"job_id": job["Id"], "old": old if old else {"Id": job["Id"], "Status": default_status}, "current": job}

    # Actions
    async def cancel_job(self, job: Dict[str, Any]) -> None:
        await run_blocking(cancel_job, await self._get_client(), job["Id"])

    async def cancel_job_by_id(self, job_id: str) -> None:
        await self.cancel_job({"Id": job_id})

    async def create_job(self, **params) -> Dict[str, Any]:
        job = await run_blocking(create_job, await self._get_client(), **params)

        def _add_job(jobs: Dict[str, Any]) -> Dict[str, Any]:
            jobs[job["Id"]] = job
            return jobs

        await self.store.update(self.snapshot_key(), _add_job, {})
        await self._registry.fire(event_type_filter(JOB_STATUS_CHANGED_EVENT), self._create_event(job, None, NEW_JOB_STATUS))
        return job

    async def create_simple_job(
        self, input: Dict[str, Any], output_group: Dict[str, Any], settings: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return await self.create_job(
            Role=await self.get_role_arn(),
            Settings={"Inputs": [input], "OutputGroups": [output_group], **(settings if settings else {})},
        )

    async def create_single_job(
        self, src: str, dst: str, output: Dict[str, Any], settings: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return await self.create_simple_job(
            {"FileInput": src},
            {
                "OutputGroupSettings": {"Type": "FILE_GROUP_SETTINGS", "FileGroupSettings": {"Destination": dst}},
                "Outputs": [output],
            },
            settings,
        )

    async def get_job_status(self, job: Dict[str, Any]) -> Dict[str, Any]:
        return await run_blocking(get_job, await self._get_client(), job["Id"])

    async def get_job_status_by_id(self, job_id: str) -> Dict[str, Any]:
        return await self.get_job_status({"Id": job_id})

    async def list_jobs(self, max_results: int = DEFAULT_LIST_JOBS_MAX) -> List[Dict[str, Any]]:
        return await run_blocking(list_jobs, await self._get_client(), max_results)

    async def list_jobs_by_id(self, max_results: int = DEFAULT_LIST_JOBS_MAX) -> Dict[str, Any]:
        return jobs_by_id(await self.list_jobs(max_results))
