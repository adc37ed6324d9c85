import asyncio
import datetime
import logging
from os import environ
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

import aiohttp
import msgspec
from yarl import URL

from .errors import ValidationError, parse_errors
from .models import ApiErrorResponse, RegisterInstancesResult
from .parser import parse_response, synthetic_error_document
from .signer import sign_request

logger = logging.getLogger("elbio")
logger.addHandler(logging.NullHandler())

DEFAULT_ENDPOINT: str = "http://elasticloadbalancing.amazonaws.com"

json_encoder = msgspec.json.Encoder()


def make_timestamp() -> str:
    dt_now = datetime.datetime.now(datetime.timezone.utc)
    return dt_now.strftime("%Y-%m-%dT%H:%M:%S.000Z")


class ElbAsyncClient:
    """
    Async client for the AWS Elastic Load Balancing Query API using aiohttp.

    Requests are signed with Signature Version 2 (HmacSHA1) against API
    version ``2009-05-15``. The request timestamp is captured once when the
    client is created and reused for every call made through it.

    :param access_key: AWS access key. Falls back to ``AWS_ACCESS_KEY_ID``.
    :type access_key: Optional[str]
    :param secret_key: AWS secret key. Falls back to ``AWS_SECRET_ACCESS_KEY``.
    :type secret_key: Optional[str]
    :param debug: Log the query to sign, request URL, raw and parsed response.
    :type debug: bool
    :param endpoint: Service endpoint (e.g., "http://localhost:4566").
    :type endpoint: str
    :param timestamp: Fixed request timestamp, defaults to construction time.
    :type timestamp: Optional[str]
    :param timeout: Total timeout in seconds for one request.
    :type timeout: float
    :param client_factory: Factory function to create an aiohttp ClientSession.
    :type client_factory: Callable[[], Awaitable[aiohttp.ClientSession]]
    :param user_agent: Custom user-agent string for tracking requests.
    :type user_agent: str
    """

    def __init__(
        self,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        debug: bool = False,
        endpoint: str = DEFAULT_ENDPOINT,
        timestamp: Optional[str] = None,
        timeout: float = 30.0,
        client_factory: Optional[Callable[[], Awaitable[aiohttp.ClientSession]]] = None,
        user_agent: str = "ElbAsyncClient/0.1.0",
    ):
        self.access_key = access_key
        self.secret_key = secret_key
        self.debug = debug
        self.endpoint = endpoint
        self.timestamp = timestamp or make_timestamp()
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.user_agent = user_agent

        self.client_factory = client_factory
        self.client: aiohttp.ClientSession

        self.client_factory_lock = asyncio.Lock()

        if self.access_key and self.secret_key:
            logger.debug("Using defined AWS access_key and secret_key")
        else:
            self.credential_search()

    def credential_search(self):
        if environ.get("AWS_ACCESS_KEY_ID") and environ.get("AWS_SECRET_ACCESS_KEY"):
            self.access_key = environ["AWS_ACCESS_KEY_ID"]
            self.secret_key = environ["AWS_SECRET_ACCESS_KEY"]
            logger.debug("Using env AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY")
            return

        raise ValidationError("Could not determine credentials")

    def _debug(self, message: str, *args: Any) -> None:
        if self.debug:
            logger.debug(message, *args)

    async def __aenter__(self) -> "ElbAsyncClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if hasattr(self, "client"):
            await self.client.close()
            del self.client

    async def _session(self) -> aiohttp.ClientSession:
        if not hasattr(self, "client"):
            async with self.client_factory_lock:
                if not hasattr(self, "client"):
                    logger.debug("Setting up client")
                    if self.client_factory:
                        logger.debug("User defined client_factory")
                        self.client = await self.client_factory()
                    else:
                        self.client = aiohttp.ClientSession()
        return self.client

    async def execute(self, action: str, params: Mapping[str, str]) -> Dict[str, Any]:
        """
        Sign and send one Query API request, returning the parsed response.

        Network failures and HTTP statuses of 500 and above are reported as a
        locally built error document, so the result always has the same shape.
        Callers check the returned structure for an ``Errors`` node.

        :param action: Query API action (e.g., "RegisterInstancesWithLoadBalancer").
        :type action: str
        :param params: Flattened operation parameters.
        :type params: Mapping[str, str]
        :return: Parsed XML response.
        :rtype: Dict[str, Any]
        :raises ValidationError: If ``action`` is empty or ``params`` uses a
            reserved parameter name.
        :raises ResponseParseError: If the response body is not XML.
        """
        signed = sign_request(
            action,
            params,
            access_key=self.access_key,  # type: ignore
            secret_key=self.secret_key,  # type: ignore
            timestamp=self.timestamp,
            endpoint=self.endpoint,
        )

        self._debug("QUERY TO SIGN:\n%s", signed.canonical_query.replace("&", "\n"))
        self._debug("GENERATED QUERY URL: %s", signed.url)

        client = await self._session()

        body: Union[bytes, str]
        try:
            response = await client.get(
                URL(signed.url, encoded=True),
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
            if response.status >= 500:
                logger.warning(f"{action} failed with HTTP {response.status}")
                response.release()
                body = synthetic_error_document(response.reason or str(response.status))
            else:
                body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"{action} request failed [{e!r}]")
            body = synthetic_error_document(str(e) or type(e).__name__)

        if self.debug:
            raw = body.decode("utf-8", "replace") if isinstance(body, bytes) else body
            logger.debug("RESPONSE BODY:\n%s", raw)

        parsed = parse_response(body)

        if self.debug:
            logger.debug(
                "PARSED RESPONSE:\n%s",
                msgspec.json.format(json_encoder.encode(parsed), indent=2).decode(),
            )

        return parsed

    def _log_errors(self, errors: ApiErrorResponse) -> None:
        for error in errors.errors:
            self._debug(
                "ERROR CODE: %s MESSAGE: %s FOR REQUEST: %s",
                error.code,
                error.message,
                errors.request_id,
            )

    async def register_instances_with_load_balancer(
        self,
        instance_ids: Union[str, Iterable[str]],
        load_balancer_name: str,
    ) -> Union[RegisterInstancesResult, ApiErrorResponse]:
        """
        Register one or more EC2 instances with a load balancer.

        :param instance_ids: A single instance id or an ordered iterable of them.
        :type instance_ids: Union[str, Iterable[str]]
        :param load_balancer_name: Name of the load balancer.
        :type load_balancer_name: str
        :return: The registered instances on success, or the errors reported
            by the service or the transport.
        :rtype: Union[RegisterInstancesResult, ApiErrorResponse]
        :raises ValidationError: If the name or the instance ids are missing.
        """
        if not isinstance(load_balancer_name, str) or not load_balancer_name:
            raise ValidationError("load_balancer_name is required")

        if isinstance(instance_ids, str):
            instance_ids = [instance_ids]
        instance_ids = list(instance_ids or [])
        if not instance_ids:
            raise ValidationError("At least one instance id is required")
        if any(not isinstance(i, str) or not i for i in instance_ids):
            raise ValidationError("Instance ids must be non-empty strings")

        params: Dict[str, str] = {"LoadBalancerName": load_balancer_name}
        for index, instance_id in enumerate(instance_ids, start=1):
            params[f"Instances.member.{index}.InstanceId"] = instance_id

        parsed = await self.execute("RegisterInstancesWithLoadBalancer", params)

        if parsed.get("Errors"):
            errors = parse_errors(parsed)
            self._log_errors(errors)
            return errors

        return _register_result(parsed)


def _register_result(parsed: Dict[str, Any]) -> RegisterInstancesResult:
    result = parsed.get("RegisterInstancesWithLoadBalancerResult")
    metadata = parsed.get("ResponseMetadata")
    if not isinstance(result, dict):
        result = {}
    if not isinstance(metadata, dict):
        metadata = {}

    instances_node = result.get("Instances")
    members: Any = []
    if isinstance(instances_node, dict):
        members = instances_node.get("member") or []
    if not isinstance(members, list):
        members = [members]

    instances: List[str] = [
        m["InstanceId"] for m in members if isinstance(m, dict) and m.get("InstanceId")
    ]

    return RegisterInstancesResult(
        request_id=metadata.get("RequestId"),
        instances=instances,
    )
