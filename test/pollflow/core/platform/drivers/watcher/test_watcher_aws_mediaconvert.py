# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import asyncio
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from pollflow.core.platform.definitions.aws.common import AWSCommonParams
from pollflow.core.platform.definitions.aws.mediaconvert.client_wrapper import MEDIACONVERT_API_VERSION, describe_endpoint
from pollflow.core.platform.drivers.watcher.aws_mediaconvert import (
    DEFAULT_ROLE_NAME,
    JOB_STATUS_CHANGED_EVENT,
    AWSMediaConvertConnector,
)
from pollflow.core.platform.platform import Platform
from pollflow.mixins.aws.test import create_mock_session

ENDPOINT_URL = "https://abcd1234.mediaconvert.us-east-1.amazonaws.com"
ROLE_ARN = f"arn:aws:iam::123456789012:role/{DEFAULT_ROLE_NAME}"


def _job(id, status):
    return {"Id": id, "Status": status}


class TestAWSMediaConvertConnector:
    def _create_connector(self, jobs):
        mc = MagicMock()
        mc.describe_endpoints.return_value = {"Endpoints": [{"Url": ENDPOINT_URL}]}
        mc.list_jobs.side_effect = lambda **kwargs: {"Jobs": list(jobs)}
        iam = MagicMock()
        iam.get_role.return_value = {"Role": {"RoleName": DEFAULT_ROLE_NAME, "Arn": ROLE_ARN}}
        session = create_mock_session({"mediaconvert": mc, "iam": iam})
        connector = Platform().connect(
            AWSMediaConvertConnector(
                {
                    AWSCommonParams.BOTO_SESSION: session,
                    AWSCommonParams.REGION: "us-east-1",
                    AWSCommonParams.ROLE_PROPAGATION_WAIT_IN_SECS: 0,
                }
            )
        )
        return connector, mc, session

    def test_status_changes(self):
        jobs = [_job("j1", "SUBMITTED"), _job("j2", "PROGRESSING")]

        async def _run():
            connector, _, _ = self._create_connector(jobs)
            received = []
            connector.on({"type": JOB_STATUS_CHANGED_EVENT}, received.append)
            await connector.on_poll()
            initial = list(received)

            jobs[:] = [_job("j1", "COMPLETE"), _job("j2", "PROGRESSING"), _job("j3", "SUBMITTED")]
            await connector.on_poll()
            return initial, received

        initial, received = asyncio.run(_run())
        # first poll only records the jobs
        assert initial == []
        assert received == [
            {"job_id": "j1", "old": _job("j1", "SUBMITTED"), "current": _job("j1", "COMPLETE")},
            {"job_id": "j3", "old": {"Id": "j3", "Status": "UNKNOWN"}, "current": _job("j3", "SUBMITTED")},
        ]

    def test_create_job_reports_from_new(self):
        jobs = []

        async def _run():
            connector, mc, session = self._create_connector(jobs)
            mc.create_job.return_value = {"Job": _job("j7", "SUBMITTED")}
            received = []
            connector.on({"type": JOB_STATUS_CHANGED_EVENT}, received.append)

            await connector.on_poll()
            job = await connector.create_single_job("s3://in-bucket/in.mp4", "s3://out-bucket/out/", {"NameModifier": "_hd"})
            created = list(received)
            received.clear()

            # the poll that sees the job with the same status does not report it again
            jobs.append(_job("j7", "SUBMITTED"))
            await connector.on_poll()
            return job, created, received, mc, session

        job, created, after_poll, mc, session = asyncio.run(_run())
        assert job == _job("j7", "SUBMITTED")
        assert created == [{"job_id": "j7", "old": {"Id": "j7", "Status": "NEW"}, "current": _job("j7", "SUBMITTED")}]
        assert after_poll == []

        create_kwargs = mc.create_job.call_args.kwargs
        assert create_kwargs["Role"] == ROLE_ARN
        assert create_kwargs["Settings"]["Inputs"] == [{"FileInput": "s3://in-bucket/in.mp4"}]
        output_group = create_kwargs["Settings"]["OutputGroups"][0]
        assert output_group["OutputGroupSettings"]["FileGroupSettings"]["Destination"] == "s3://out-bucket/out/"
        assert output_group["Outputs"] == [{"NameModifier": "_hd"}]

        # the job client talks to the account endpoint
        session.client.assert_any_call("mediaconvert", api_version=MEDIACONVERT_API_VERSION, endpoint_url=ENDPOINT_URL, region_name="us-east-1")
        assert mc.describe_endpoints.call_count == 1

    def test_role_is_created_when_missing(self):
        async def _run():
            connector, _, session = self._create_connector([])
            iam = session.client("iam")
            iam.get_role.side_effect = ClientError({"Error": {"Code": "NoSuchEntity", "Message": "missing"}}, "GetRole")
            iam.create_role.return_value = {"Role": {"RoleName": DEFAULT_ROLE_NAME, "Arn": ROLE_ARN}}
            iam.waiter_names = []
            arn = await connector.get_role_arn()
            # cached
            await connector.get_role_arn()
            return arn, iam

        arn, iam = asyncio.run(_run())
        assert arn == ROLE_ARN
        assert iam.create_role.call_count == 1
        assert [call.kwargs["PolicyArn"] for call in iam.attach_role_policy.call_args_list] == [
            "arn:aws:iam::aws:policy/AmazonS3FullAccess",
            "arn:aws:iam::aws:policy/AmazonAPIGatewayInvokeFullAccess",
        ]

    def test_job_actions(self):
        connector, mc, _ = self._create_connector([_job("j1", "PROGRESSING")])
        mc.get_job.return_value = {"Job": _job("j1", "COMPLETE")}

        async def _run():
            assert await connector.list_jobs_by_id() == {"j1": _job("j1", "PROGRESSING")}
            assert (await connector.get_job_status_by_id("j1"))["Status"] == "COMPLETE"
            await connector.cancel_job_by_id("j1")

        asyncio.run(_run())
        mc.list_jobs.assert_called_with(MaxResults=20)
        mc.cancel_job.assert_called_once_with(Id="j1")

    def test_event_validation(self):
        connector, _, _ = self._create_connector([])
        with pytest.raises(ValueError):
            connector.on({"type": "JobCreated"}, lambda e: None)

    def test_describe_endpoint_without_endpoints(self):
        mc = MagicMock()
        mc.describe_endpoints.return_value = {"Endpoints": []}
        with pytest.raises(ValueError):
            describe_endpoint(mc)
