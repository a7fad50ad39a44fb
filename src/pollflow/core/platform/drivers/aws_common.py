# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import boto3

from pollflow.core.platform.constructs import BaseConnector
from pollflow.core.platform.definitions.aws.common import (
    DEFAULT_ROLE_PROPAGATION_WAIT_IN_SECS,
    AWSAccessPair,
    AWSCommonParams,
    create_policy_document,
    get_or_create_service_role,
    get_session,
    validate_access_key_id,
    validate_region,
    validate_secret_access_key,
)
from pollflow.core.platform.definitions.common import ConnectorParamsDict
from pollflow.utils.concurrency import run_blocking
from pollflow.utils.digest import calculate_object_digest

logger = logging.getLogger(__name__)

PolicySpec = Union[str, Dict[str, Any]]


def _as_access_pair(value: Any) -> Optional[AWSAccessPair]:
    if value is None or isinstance(value, AWSAccessPair):
        return value
    if isinstance(value, dict):
        return AWSAccessPair(value["aws_access_key_id"], value["aws_secret_access_key"])
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return AWSAccessPair(value[0], value[1])
    raise ValueError(f"Invalid AWS access pair type: {type(value)!r}")


class AWSAccount:
    """Validated credentials + region, the boto3 session built from them and a cache of the clients/resources created
    from that session (keyed by service and options)."""

    def __init__(
        self,
        access_pair: Optional[AWSAccessPair] = None,
        region: Optional[str] = None,
        session: Optional[boto3.Session] = None,
        client_options: Optional[Dict[str, Any]] = None,
    ) -> None:
        if access_pair:
            validate_access_key_id(access_pair.aws_access_key_id)
            validate_secret_access_key(access_pair.aws_secret_access_key)
        if region:
            validate_region(region)
        self._access_pair = access_pair
        self._session = session if session else get_session(access_pair, region)
        self._region = region if region else self._session.region_name
        self._client_options = dict(client_options) if client_options else dict()
        self._clients: Dict[Tuple[str, str, str], Any] = dict()

    @property
    def session(self) -> boto3.Session:
        return self._session

    @property
    def region(self) -> Optional[str]:
        return self._region

    @property
    def access_key_id(self) -> Optional[str]:
        return self._access_pair.aws_access_key_id if self._access_pair else None

    @property
    def identity(self) -> Dict[str, Any]:
        return {"access_key_id": self.access_key_id, "region": self._region}

    def _get(self, kind: str, service: str, options: Dict[str, Any]) -> Any:
        options = {**self._client_options, **options}
        key = (kind, service, calculate_object_digest(options))
        if key not in self._clients:
            if self._region and "region_name" not in options:
                options["region_name"] = self._region
            factory = self._session.client if kind == "client" else self._session.resource
            self._clients[key] = factory(service, **options)
        return self._clients[key]

    def client(self, service: str, **options) -> Any:
        return self._get("client", service, options)

    def resource(self, service: str, **options) -> Any:
        return self._get("resource", service, options)


class AWSIdentity:
    def __init__(self, account: AWSAccount, role_propagation_wait_in_secs: float = DEFAULT_ROLE_PROPAGATION_WAIT_IN_SECS) -> None:
        self._account = account
        self._role_propagation_wait_in_secs = role_propagation_wait_in_secs

    @staticmethod
    def create_policy(statements: Union[Dict[str, Any], Sequence[Dict[str, Any]]]) -> Dict[str, Any]:
        """Statements are in the form of {'effect': 'Allow', 'action': [...], 'resource': ...}"""
        return create_policy_document(statements)

    @staticmethod
    def create_simple_policy(resource: str, action: List[str], effect: str = "Allow") -> Dict[str, Any]:
        return create_policy_document({"effect": effect, "resource": resource, "action": action})

    async def get_or_create_service_role(
        self, role_name: str, service: str, policies: Optional[Union[PolicySpec, List[PolicySpec]]] = None
    ) -> Dict[str, Any]:
        return await run_blocking(
            get_or_create_service_role,
            role_name,
            service,
            self._account.session,
            policies,
            self._role_propagation_wait_in_secs,
        )


class AWSConnectorMixin:
    """Reads the AWS parameters of a connector (credentials, region, session, client options) into an AWSAccount."""

    SERVICE: Optional[str] = None
    REGION_REQUIRED: bool = False

    def __init__(self, params: Optional[ConnectorParamsDict] = None, *args, **kwargs) -> None:
        super().__init__(params, *args, **kwargs)
        region = self._params.get(AWSCommonParams.REGION, None)
        self._account = AWSAccount(
            _as_access_pair(self._params.get(AWSCommonParams.ACCESS_PAIR, None)),
            region,
            self._params.get(AWSCommonParams.BOTO_SESSION, None),
            self._params.get(AWSCommonParams.CLIENT_OPTIONS, None),
        )
        if self.REGION_REQUIRED and not self._account.region:
            raise ValueError(f"No region for {self.__class__.__name__}!")
        self._identity = AWSIdentity(
            self._account, self._params.get(AWSCommonParams.ROLE_PROPAGATION_WAIT_IN_SECS, DEFAULT_ROLE_PROPAGATION_WAIT_IN_SECS)
        )

    @property
    def account(self) -> AWSAccount:
        return self._account

    @property
    def identity(self) -> AWSIdentity:
        return self._identity

    @property
    def region(self) -> Optional[str]:
        return self._account.region

    def store_descriptor(self) -> Optional[Any]:
        return self._account.identity

    def event_identity(self) -> Optional[Any]:
        return self._account.identity

    def sdk(self, service: Optional[str] = None, **options) -> Any:
        """Low level boto3 client of the connector's service (or of any other 'service')."""
        service = service if service else self.SERVICE
        if not service:
            raise ValueError(f"{self.__class__.__name__} needs an explicit service name for sdk access!")
        return self._account.client(service, **options)


class AWSConnector(AWSConnectorMixin, BaseConnector):
    """Generic AWS connector, only provides sdk access to any of the services."""

    def __init__(self, params: Optional[ConnectorParamsDict] = None) -> None:
        super().__init__(params)
