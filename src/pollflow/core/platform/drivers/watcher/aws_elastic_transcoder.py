# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from overrides import overrides

from pollflow.core.diff import SameFn, Snapshot, SnapshotDiff, diff_snapshots, field_equality
from pollflow.core.events import EventDescriptor, EventFilter
from pollflow.core.platform.constructs import SnapshotWatcher
from pollflow.core.platform.definitions.aws.elastic_transcoder.client_wrapper import (
    cancel_job,
    create_job,
    list_jobs_by_pipeline,
    list_pipelines,
    list_presets,
    read_job,
    search,
    validate_pipeline_id,
)
from pollflow.core.platform.definitions.common import ConnectorParamsDict
from pollflow.core.platform.drivers.aws_common import AWSConnectorMixin
from pollflow.utils.concurrency import run_blocking

logger = logging.getLogger(__name__)

NEW_JOB_STATUS = "New"
ACTIVE_JOB_STATUSES = ["Submitted", "Progressing"]


def create_job_event(job: Dict[str, Any], old: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {"job_id": job["Id"], "current": job, "old": old if old else {"Id": job["Id"], "Status": NEW_JOB_STATUS}}


def pipeline_filter(pipeline_id: str) -> EventFilter:
    return lambda subscription: subscription.descriptor.get("pipeline_id", None) == pipeline_id


class AWSElasticTranscoderConnector(AWSConnectorMixin, SnapshotWatcher):
    """Watches the job status of the pipelines that have at least one subscription.

    Descriptor: {"pipeline_id": "<13 digits>-<6 lowercase letters>"}
    Event: {"job_id": .., "current": <job>, "old": <previous job or {"Id": .., "Status": "New"}>}

    The snapshot is {pipeline_id: {job_id: job}}. A pipeline seen for the first time only reports its active
    (Submitted/Progressing) jobs, afterwards every job whose Status changed is reported (new jobs included).
    """

    SERVICE = "elastictranscoder"
    REGION_REQUIRED = True
    SNAPSHOT_KEY = "pipelines"

    def __init__(self, params: ConnectorParamsDict, same_fn: Optional[SameFn] = None) -> None:
        super().__init__(params, same_fn)

    @overrides
    def default_same_fn(self) -> SameFn:
        return field_equality("Status")

    @overrides
    def validate_event(self, descriptor: EventDescriptor) -> EventDescriptor:
        return {"pipeline_id": validate_pipeline_id(descriptor.get("pipeline_id", None))}

    @property
    def _et(self):
        return self._account.client(self.SERVICE)

    def watched_pipelines(self) -> List[str]:
        return self._registry.map_events(lambda descriptor: descriptor["pipeline_id"])

    async def _get_jobs(self, pipeline_id: str) -> Tuple[str, Dict[str, Any]]:
        jobs = await run_blocking(list_jobs_by_pipeline, self._et, pipeline_id)
        return pipeline_id, {job["Id"]: job for job in jobs}

    @overrides
    async def list_remote_state(self) -> Snapshot:
        pipelines = await asyncio.gather(*[self._get_jobs(pipeline_id) for pipeline_id in self.watched_pipelines()])
        return dict(pipelines)

    def _get_updates(self, old_jobs: Optional[Dict[str, Any]], new_jobs: Dict[str, Any]) -> List[Dict[str, Any]]:
        if old_jobs is None:
            return [create_job_event(job, None) for job in new_jobs.values() if job.get("Status", None) in ACTIVE_JOB_STATUSES]

        diff = diff_snapshots(old_jobs, new_jobs, self._same_fn)
        changed = {job["Id"] for job in diff.additions + diff.modifications}
        return [create_job_event(job, old_jobs.get(job_id, None)) for job_id, job in new_jobs.items() if job_id in changed]

    async def _fire_updates(self, old: Optional[Snapshot], new: Snapshot) -> None:
        old = old if old else {}
        batches = []
        for pipeline_id, new_jobs in new.items():
            updates = self._get_updates(old.get(pipeline_id, None), new_jobs)
            if updates:
                logger.info(f"{len(updates)} job update(s) on pipeline {pipeline_id!r}")
                batches.append((pipeline_filter(pipeline_id), updates))
        await self._fire_all(batches)

    @overrides
    async def on_initialized(self, snapshot: Snapshot) -> None:
        await self._fire_updates(None, snapshot)

    @overrides
    async def on_changed(self, old: Snapshot, new: Snapshot, diff: SnapshotDiff) -> None:
        # job level diff per pipeline, a pipeline level diff cannot tell which jobs changed
        await self._fire_updates(old, new)

    # Actions
    async def cancel_job(self, job_id: str) -> None:
        await run_blocking(cancel_job, self._et, job_id)

    async def create_job(self, **params) -> Dict[str, Any]:
        return await run_blocking(create_job, self._et, **params)

    async def read_job(self, job_id: str) -> Dict[str, Any]:
        return await run_blocking(read_job, self._et, job_id)

    async def list_pipelines(self) -> List[Dict[str, Any]]:
        return await run_blocking(list_pipelines, self._et)

    async def list_presets(self) -> List[Dict[str, Any]]:
        return await run_blocking(list_presets, self._et)

    async def find_pipeline_by_name(self, token: str) -> Dict[str, Any]:
        pipeline = search(await self.list_pipelines(), "Name", token)
        if not pipeline:
            raise ValueError(f"Pipeline not found for: {token!r}")
        return pipeline

    async def find_preset_by_description(self, token: str) -> Dict[str, Any]:
        preset = search(await self.list_presets(), "Description", token)
        if not preset:
            raise ValueError(f"Preset not found for: {token!r}")
        return preset
