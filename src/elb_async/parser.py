import re
from typing import Any, Dict, List, Union
from xml.etree import ElementTree
from xml.sax.saxutils import escape

from .errors import ResponseParseError

# Repeatable elements that are always exposed as lists, even with one entry
FORCE_LIST = re.compile(r"item|Errors", re.IGNORECASE)

TRANSPORT_FAILURE_CODE: str = "HTTP POST FAILURE"

SYNTHETIC_ERROR_TEMPLATE = """<xml>
  <RequestID>N/A</RequestID>
  <Errors>
    <Error>
      <Code>{code}</Code>
      <Message>{message}</Message>
    </Error>
  </Errors>
</xml>
"""


def synthetic_error_document(message: str) -> str:
    return SYNTHETIC_ERROR_TEMPLATE.format(
        code=TRANSPORT_FAILURE_CODE, message=escape(message)
    )


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _element_to_value(element: ElementTree.Element) -> Any:
    children = list(element)
    attributes = {
        _local_name(k): v
        for k, v in element.attrib.items()
        if not k.startswith("xmlns")
    }
    text = (element.text or "").strip()

    if not children and not attributes:
        return text or None

    node: Dict[str, Any] = dict(attributes)
    if text:
        node["content"] = text

    grouped: Dict[str, List[Any]] = {}
    for child in children:
        grouped.setdefault(_local_name(child.tag), []).append(
            _element_to_value(child)
        )

    for name, values in grouped.items():
        if len(values) == 1 and not FORCE_LIST.fullmatch(name):
            node[name] = values[0]
        else:
            node[name] = values

    return node


def parse_response(body: Union[bytes, str]) -> Dict[str, Any]:
    """
    Parse an XML response body into nested dicts.

    The root element is dropped, so its children are the top-level keys.
    Leaf elements become strings (``None`` when empty), repeated elements
    become lists, and elements named ``item`` or ``Errors`` (any case) are
    always lists.

    :param body: Raw XML document.
    :type body: Union[bytes, str]
    :return: Parsed document.
    :rtype: Dict[str, Any]
    :raises ResponseParseError: If the body is not well-formed XML.
    """
    try:
        root = ElementTree.fromstring(body)
    except ElementTree.ParseError as err:
        raise ResponseParseError(f"Could not parse response: {err}") from err

    value = _element_to_value(root)
    if isinstance(value, dict):
        return value
    return {"content": value}
