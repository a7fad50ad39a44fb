# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""Public entry point of pollflow.

    from pollflow.api import *

    init_basic_logging()
    platform = Platform(store=DynamoDBPersistentStore(create_store_table(ddb, "pollflow-store")))
    s3 = platform.connect(AWSS3Connector({AWSCommonParams.BUCKET: "my-bucket", AWSCommonParams.REGION: "us-east-1"}))
    s3.on({"type": S3EventType.OBJECT_ADDED}, handler)
    asyncio.run(run_forever(platform))
"""
import asyncio
from typing import Optional

from ._logging_config import init_basic_logging
from .core.diff import SnapshotDiff, diff_snapshots, field_equality
from .core.dispatcher import QUEUE_COMPLETE_EVENT, Resolution, ResolutionStatus
from .core.events import EventDeliveryError
from .core.persistence import InMemoryStore, PersistentStore, StoreUpdateConflictError
from .core.platform.definitions.aws.aws_lambda.client_wrapper import LambdaInvocationError
from .core.platform.definitions.aws.common import AWSAccessPair, AWSCommonParams
from .core.platform.definitions.common import ConnectorParams
from .core.platform.drivers.aws_common import AWSConnector
from .core.platform.drivers.compute.aws_lambda import AWSLambdaConnector
from .core.platform.drivers.notification.aws_sns import AWSSNSConnector
from .core.platform.drivers.storage.aws_ddb import DynamoDBPersistentStore, create_store_table
from .core.platform.drivers.watcher.aws_elastic_transcoder import AWSElasticTranscoderConnector
from .core.platform.drivers.watcher.aws_mediaconvert import AWSMediaConvertConnector
from .core.platform.drivers.watcher.aws_s3 import AWSS3Connector, S3EventType
from .core.platform.drivers.watcher.aws_sqs import AWSSQSConnector
from .core.platform.platform import Platform


async def run_forever(platform: Platform, stop_event: Optional[asyncio.Event] = None) -> None:
    """Starts the platform and keeps it running until 'stop_event' is set (or the task is cancelled)."""
    await platform.start()
    try:
        await (stop_event.wait() if stop_event else asyncio.Event().wait())
    finally:
        await platform.stop()
