"""
Stateless transforms applied to metadata response bodies.
"""

import json
from typing import List

from .errors import ParseError


def trim(s: str) -> str:
    return s.strip()


def lines(s: str) -> List[str]:
    """Split on ``\\n``, trimming each line and dropping empty ones."""
    return [line.strip() for line in s.split("\n") if line.strip()]


def json_array(s: str) -> List[str]:
    """
    Decode a JSON array of strings, e.g. the ``instance/tags`` body.

    Raises:
        ParseError: If ``s`` is not a JSON array of strings.
    """
    try:
        value = json.loads(s)
    except ValueError as e:
        raise ParseError("json array", s) from e

    if not isinstance(value, list) or not all(isinstance(x, str) for x in value):
        raise ParseError("json array", s)
    return value


def parse_zone(s: str) -> str:
    """``projects/<id>/zones/<zone>`` -> ``<zone>``"""
    zone = s.split("/")[-1]
    if not zone:
        raise ParseError("zone", s)
    return zone


def parse_instance_name(s: str) -> str:
    """``<name>.c.<project>.internal`` -> ``<name>``"""
    name = s.split(".")[0]
    if not name:
        raise ParseError("instance name", s)
    return name
