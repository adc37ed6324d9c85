import base64
import hashlib
import hmac
from typing import Dict, Mapping
from urllib.parse import quote, urlsplit

import msgspec

from .errors import ValidationError

METHOD: str = "GET"
CANONICAL_URI: str = "/"
SIGNATURE_METHOD: str = "HmacSHA1"
SIGNATURE_VERSION: str = "2"
API_VERSION: str = "2009-05-15"

RESERVED_PARAMS = frozenset(
    [
        "AWSAccessKeyId",
        "SignatureMethod",
        "SignatureVersion",
        "Version",
        "Timestamp",
        "Action",
        "Signature",
    ]
)


class SignedRequest(msgspec.Struct, frozen=True):
    canonical_query: str
    string_to_sign: str
    signature: str
    query: str
    url: str


def percent_encode(value: str) -> str:
    # RFC 3986 unreserved characters only, space is %20
    return quote(value, safe="-_.~")


def canonical_query_string(params: Mapping[str, str]) -> str:
    sorted_keys = sorted(params.keys(), key=lambda k: k.encode("utf-8"))
    return "&".join(
        f"{percent_encode(k)}={percent_encode(params[k])}" for k in sorted_keys
    )


def build_string_to_sign(
    method: str, host: str, path: str, canonical_query: str
) -> str:
    return "\n".join([method, host.lower(), path, canonical_query])


def sign(secret_key: str, msg: str) -> str:
    digest = hmac.new(
        secret_key.encode("utf-8"), msg.encode("utf-8"), hashlib.sha1
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def sign_request(
    action: str,
    params: Mapping[str, str],
    access_key: str,
    secret_key: str,
    timestamp: str,
    endpoint: str,
) -> SignedRequest:
    # https://docs.aws.amazon.com/general/latest/gr/signature-version-2.html
    if not action:
        raise ValidationError("action must be a non-empty string")

    collisions = sorted(RESERVED_PARAMS.intersection(params))
    if collisions:
        raise ValidationError(
            f"Reserved parameter(s) cannot be overridden: {', '.join(collisions)}"
        )

    parts = urlsplit(endpoint)
    scheme = parts.scheme or "http"
    host = (parts.netloc or parts.path).lower()

    sign_params: Dict[str, str] = {k: str(v) for k, v in params.items()}
    sign_params.update(
        {
            "AWSAccessKeyId": access_key,
            "Action": action,
            "SignatureMethod": SIGNATURE_METHOD,
            "SignatureVersion": SIGNATURE_VERSION,
            "Timestamp": timestamp,
            "Version": API_VERSION,
        }
    )

    canonical_query = canonical_query_string(sign_params)
    string_to_sign = build_string_to_sign(
        METHOD, host, CANONICAL_URI, canonical_query
    )
    signature = sign(secret_key, string_to_sign)

    sign_params["Signature"] = signature
    query = canonical_query_string(sign_params)

    return SignedRequest(
        canonical_query=canonical_query,
        string_to_sign=string_to_sign,
        signature=signature,
        query=query,
        url=f"{scheme}://{host}{CANONICAL_URI}?{query}",
    )
