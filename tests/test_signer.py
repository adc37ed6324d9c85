import base64
import hashlib
import hmac
from urllib.parse import parse_qsl, unquote

import pytest

from elb_async import ValidationError
from elb_async.signer import (
    API_VERSION,
    build_string_to_sign,
    canonical_query_string,
    percent_encode,
    sign,
    sign_request,
)

TEST_ACCESS_KEY = "ACCESSKEY"
TEST_SECRET_KEY = "SECRETKEY"
TEST_TIMESTAMP = "2011-04-01T12:00:00.000Z"
TEST_ENDPOINT = "http://elasticloadbalancing.amazonaws.com"


def _sign_request(params, action="RegisterInstancesWithLoadBalancer"):
    return sign_request(
        action,
        params,
        access_key=TEST_ACCESS_KEY,
        secret_key=TEST_SECRET_KEY,
        timestamp=TEST_TIMESTAMP,
        endpoint=TEST_ENDPOINT,
    )


def test_percent_encode_reserved_characters():
    assert percent_encode("a b") == "a%20b"
    assert percent_encode("a+b*c~d") == "a%2Bb%2Ac~d"
    assert percent_encode("2011-04-01T12:00:00.000Z") == "2011-04-01T12%3A00%3A00.000Z"
    assert percent_encode("/=&") == "%2F%3D%26"
    assert percent_encode("é") == "%C3%A9"


def test_percent_encode_round_trip():
    printable = "".join(chr(c) for c in range(0x20, 0x7F))
    assert unquote(percent_encode(printable)) == printable


def test_canonical_query_is_byte_ordered():
    params = {"b": "2", "A": "1", "a": "3", "B": "4", "Instances.member.1.InstanceId": "i-1"}
    canonical = canonical_query_string(params)
    keys = [pair.split("=", 1)[0] for pair in canonical.split("&")]

    assert keys == ["A", "B", "Instances.member.1.InstanceId", "a", "b"]
    assert keys == sorted(keys, key=lambda k: k.encode("utf-8"))

    reparsed = dict(parse_qsl(canonical))
    assert canonical_query_string(reparsed) == canonical


def test_string_to_sign_layout():
    assert (
        build_string_to_sign("GET", "ElasticLoadBalancing.AmazonAWS.com", "/", "a=1")
        == "GET\nelasticloadbalancing.amazonaws.com\n/\na=1"
    )


def test_sign_is_hmac_sha1_of_message_with_secret_key():
    expected = base64.b64encode(
        hmac.new(b"secret", b"message", hashlib.sha1).digest()
    ).decode()

    assert sign("secret", "message") == expected
    assert sign("secret", "message") == sign("secret", "message")
    assert sign("message", "secret") != expected


def test_sign_request():
    signed = _sign_request({"LoadBalancerName": "lb1"})

    assert signed.canonical_query == (
        "AWSAccessKeyId=ACCESSKEY"
        "&Action=RegisterInstancesWithLoadBalancer"
        "&LoadBalancerName=lb1"
        "&SignatureMethod=HmacSHA1"
        "&SignatureVersion=2"
        "&Timestamp=2011-04-01T12%3A00%3A00.000Z"
        f"&Version={API_VERSION}"
    )
    assert signed.string_to_sign == (
        "GET\nelasticloadbalancing.amazonaws.com\n/\n" + signed.canonical_query
    )
    assert signed.signature == sign(TEST_SECRET_KEY, signed.string_to_sign)
    assert signed.url == (
        "http://elasticloadbalancing.amazonaws.com/?" + signed.query
    )
    assert f"Signature={percent_encode(signed.signature)}" in signed.query
    assert TEST_SECRET_KEY not in signed.url


def test_signed_fields_match_query_fields():
    signed = _sign_request({"LoadBalancerName": "my lb", "Instances.member.1.InstanceId": "i-1"})

    query_pairs = [p for p in signed.query.split("&") if not p.startswith("Signature=")]
    assert "&".join(query_pairs) == signed.canonical_query


def test_sign_request_order_independent():
    first = _sign_request({"LoadBalancerName": "lb1", "Instances.member.1.InstanceId": "i-1"})
    second = _sign_request({"Instances.member.1.InstanceId": "i-1", "LoadBalancerName": "lb1"})

    assert first.query == second.query
    assert first.url == second.url


def test_sign_request_uses_endpoint_host():
    signed = sign_request(
        "RegisterInstancesWithLoadBalancer",
        {},
        access_key=TEST_ACCESS_KEY,
        secret_key=TEST_SECRET_KEY,
        timestamp=TEST_TIMESTAMP,
        endpoint="http://LocalHost:4566",
    )

    assert signed.string_to_sign.startswith("GET\nlocalhost:4566\n/\n")
    assert signed.url.startswith("http://localhost:4566/?")


@pytest.mark.parametrize("key", ["Action", "Signature", "Timestamp", "AWSAccessKeyId"])
def test_sign_request_rejects_reserved_params(key: str):
    with pytest.raises(ValidationError, match=key):
        _sign_request({key: "x"})


def test_sign_request_rejects_empty_action():
    with pytest.raises(ValidationError, match="action"):
        _sign_request({}, action="")
