from .client import ElbAsyncClient
from .errors import ElbError, ResponseParseError, ValidationError, parse_errors
from .models import ApiError, ApiErrorResponse, RegisterInstancesResult
from .parser import parse_response
from .signer import SignedRequest, sign_request

__version__ = "0.1.0"
__all__ = [
    "ElbAsyncClient",
    "ElbError",
    "ResponseParseError",
    "ValidationError",
    "parse_errors",
    "ApiError",
    "ApiErrorResponse",
    "RegisterInstancesResult",
    "parse_response",
    "SignedRequest",
    "sign_request",
]
