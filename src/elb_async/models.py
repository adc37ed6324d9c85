from typing import List, Optional

import msgspec


class ApiError(msgspec.Struct, frozen=True):
    code: str
    message: str


class ApiErrorResponse(msgspec.Struct):
    """
    Errors reported for one request.

    Produced both for errors returned by the service and for transport
    failures, in which case ``request_id`` is ``"N/A"`` and there is a single
    ``HTTP POST FAILURE`` error.
    """

    request_id: str
    errors: List[ApiError] = msgspec.field(default_factory=list)


class RegisterInstancesResult(msgspec.Struct):
    request_id: Optional[str] = None
    instances: List[str] = msgspec.field(default_factory=list)
