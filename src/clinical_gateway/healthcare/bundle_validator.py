"""Search result validation.

A FHIR search answers with a Bundle of type ``searchset``. Anything else is a
broken contract with the store and is raised, never papered over.
"""

import json
from typing import Any, Dict, List, Mapping, Union

from clinical_gateway.core.exceptions import MalformedSearchResultError
from clinical_gateway.utils.logging import get_logger

logger = get_logger(__name__)

MANDATORY_BUNDLE_KEYS = ("resourceType", "type", "total", "link")
MANDATORY_ENTRY_KEYS = ("fullUrl", "resource", "search")


def _fail(message: str) -> MalformedSearchResultError:
    logger.error("malformed_search_result", reason=message)
    return MalformedSearchResultError(
        f"server error: {message}", "MALFORMED_SEARCH_RESULT"
    )


def parse_bundle(raw: Union[bytes, str, Mapping[str, Any]]) -> Mapping[str, Any]:
    """Decode a search response into a key/value document."""
    if isinstance(raw, Mapping):
        return raw
    try:
        document = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise _fail(f"search response is not valid JSON: {e}") from e
    if not isinstance(document, dict):
        raise _fail(
            f"search response is a {type(document).__name__}, expected an object"
        )
    return document


def validate_search_bundle(
    raw: Union[bytes, str, Mapping[str, Any]],
) -> List[Dict[str, Any]]:
    """Validate a searchset Bundle and return its resources in store order.

    Args:
        raw: Response body as returned by the store, or an already decoded
            document

    Returns:
        The ``resource`` map of every entry. A Bundle without entries yields
        an empty list.

    Raises:
        MalformedSearchResultError: on any structural deviation
    """
    bundle = parse_bundle(raw)

    for key in MANDATORY_BUNDLE_KEYS:
        if key not in bundle:
            raise _fail(f"mandatory search result key {key} not found")

    resource_type = bundle["resourceType"]
    if not isinstance(resource_type, str):
        raise _fail("the resourceType is not a string")
    if resource_type != "Bundle":
        raise _fail("the resourceType value is not 'Bundle' as expected")

    result_type = bundle["type"]
    if not isinstance(result_type, str):
        raise _fail("the search result type value is not a string")
    if result_type != "searchset":
        raise _fail("the type value is not 'searchset' as expected")

    entries = bundle.get("entry")
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise _fail(f"entries is not a list of maps, it is: {type(entries).__name__}")

    resources: List[Dict[str, Any]] = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise _fail(
                f"expected each entry to be a map, got {type(entry).__name__} instead"
            )
        for key in MANDATORY_ENTRY_KEYS:
            if key not in entry:
                raise _fail(f"FHIR search entry does not have key '{key}'")
        resource = entry["resource"]
        if not isinstance(resource, dict):
            raise _fail(f"result entry {entry['fullUrl']} resource is not a map")
        resources.append(resource)

    return resources
