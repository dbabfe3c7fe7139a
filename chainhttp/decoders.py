"""JSON and XML body decoding into caller-provided containers.

Decoded documents are merged into the destination the caller passes, so a
decoder call can sit in the middle of a chain:

- JSON objects update a dict, JSON arrays extend a list
- XML documents become a dict keyed by the root tag and update a dict

Limitation: XML attributes are kept under ``@name`` keys and mixed content
text is only kept when an element has no children.
"""

import json
from collections.abc import MutableMapping, MutableSequence
from typing import Any
from xml.etree.ElementTree import Element, ParseError

import defusedxml.ElementTree as DefusedET
from defusedxml import DefusedXmlException

from chainhttp.errors import DecodeError


JSONDestination = MutableMapping[str, Any] | MutableSequence[Any]


def decode_json_into(body: bytes, dest: JSONDestination) -> None:
    """Decode a JSON body and merge it into ``dest``.

    Args:
        body: Raw response body.
        dest: Dict receiving an object or list receiving an array.

    Raises:
        DecodeError: If the body is not valid JSON or does not match ``dest``.
    """
    if not body.strip():
        msg = "JSON decode failed: empty body"
        raise DecodeError(msg)
    try:
        value = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        msg = f"JSON decode failed: {e}"
        raise DecodeError(msg) from e

    _merge(value, dest, "JSON")


def decode_xml_into(body: bytes, dest: MutableMapping[str, Any]) -> None:
    """Decode an XML body and merge it into ``dest``.

    Args:
        body: Raw response body.
        dest: Dict receiving ``{root_tag: content}``.

    Raises:
        DecodeError: If the body is not well-formed or unsafe XML.
    """
    if not body.strip():
        msg = "XML decode failed: empty body"
        raise DecodeError(msg)
    try:
        root = DefusedET.fromstring(body)
    except (ParseError, DefusedXmlException) as e:
        msg = f"XML decode failed: {e}"
        raise DecodeError(msg) from e

    _merge(xml_to_dict(root), dest, "XML")


def _merge(value: Any, dest: JSONDestination, kind: str) -> None:
    if isinstance(dest, MutableMapping):
        if not isinstance(value, dict):
            msg = f"{kind} decode failed: cannot merge {type(value).__name__} into a mapping"
            raise DecodeError(msg)
        dest.update(value)
        return
    if isinstance(dest, MutableSequence):
        if not isinstance(value, list):
            msg = f"{kind} decode failed: cannot merge {type(value).__name__} into a sequence"
            raise DecodeError(msg)
        dest.extend(value)
        return
    msg = f"{kind} decode failed: unsupported destination {type(dest).__name__}"
    raise DecodeError(msg)


def xml_to_dict(root: Element) -> dict[str, Any]:
    """Convert a parsed XML element into a JSON-compatible dict.

    Namespace URIs are stripped from tag names so that
    ``{http://example.com/ns}Name`` becomes ``Name``.

    Returns:
        Dict with the root element tag as the single top-level key.
    """
    return {_strip_ns(root.tag): _element_to_value(root)}


def _strip_ns(tag: str) -> str:
    """Remove namespace URI prefix: ``{http://...}Name`` -> ``Name``."""
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _element_to_value(element: Element) -> Any:
    """Recursively convert an element.

    Leaf elements without attributes become their text (empty string when
    there is none). Repeated child tags collapse into lists.
    """
    children = list(element)
    attributes = {f"@{_strip_ns(k)}": v for k, v in element.attrib.items()}
    text = (element.text or "").strip()

    if not children:
        if not attributes:
            return text
        if text:
            attributes["#text"] = text
        return attributes

    result: dict[str, Any] = dict(attributes)
    for child in children:
        key = _strip_ns(child.tag)
        value = _element_to_value(child)
        if key in result:
            existing = result[key]
            if isinstance(existing, list):
                existing.append(value)
            else:
                result[key] = [existing, value]
        else:
            result[key] = value
    return result
