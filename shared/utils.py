from __future__ import annotations
import re
from typing import Iterator, Optional
from xml.etree.ElementTree import Element

# ========================================
#           ATTRIBUTE EXTRACTION HELPERS
# ========================================
"""
This section contains helper functions the response parsers call to pull
scalar attributes out of decoded query payloads. Every lookup has a
default so a missing or malformed attribute never raises.
"""

# Channel resources look like "pve_12", "pvp_pro_3", "clan_1"
_CHANNEL_RE = re.compile(r'^[A-Za-z0-9_.-]+$')

def iter_with_attr(element: Element, name: str) -> Iterator[Element]:
    """
    yields the element and its descendants, in document order, that carry the attribute
    """
    for el in element.iter():
        if name in el.attrib:
            yield el

def find_attr(element: Optional[Element], name: str, default: Optional[str] = None) -> Optional[str]:
    """
    Returns the first value of attribute `name` found in document order
    (the element itself first, then its descendants), or `default`.
    """
    if element is None:
        return default
    for el in iter_with_attr(element, name):
        return el.get(name)
    return default

def find_attr_int(element: Optional[Element], name: str, default: int = 0) -> int:
    """
    Same as find_attr but parsed as an integer.

    - Missing attribute -> default
    - Empty or non-numeric value -> default
    """
    value = find_attr(element, name)
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default

def is_channel_name(s: Optional[str]) -> bool:
    """
    returns True if the string can be used as a channel resource in a JID.
    """
    return bool(s) and bool(_CHANNEL_RE.fullmatch(s))
