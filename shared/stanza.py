from __future__ import annotations
import base64
import binascii
import itertools
import zlib
from dataclasses import dataclass
from typing import Dict, Optional, Set
from xml.etree import ElementTree as ET

from shared.log import get_logger

logger = get_logger(__name__)

# k01 query namespace carried by every <query> element
QUERY_NS = "urn:cryonline:k01"

# iq types that terminate a request/response round trip
_RESPONSE_TYPES: Set[str] = {"result", "error"}
_IQ_TYPES: Set[str] = {"get", "set", "result", "error"}

_id_counter = itertools.count(1)


class StanzaParseError(Exception):
    """Raised when an inbound frame is not well-formed XML."""
    pass
class UnknownStanzaError(Exception):
    """Raised when an inbound frame is not an <iq> stanza."""
    pass


def k01_jid(domain: str) -> str:
    """Address of the matchmaking service."""
    return f"k01.{domain}"


def masterserver_jid(domain: str, channel: str) -> str:
    """Address of the masterserver hosting `channel`."""
    return f"masterserver@{domain}/{channel}"


def next_iq_id() -> str:
    return f"uid{next(_id_counter):08x}"


def _strip_namespaces(root: ET.Element) -> ET.Element:
    for el in root.iter():
        if isinstance(el.tag, str) and el.tag.startswith("{"):
            el.tag = el.tag.split("}", 1)[1]
    return root


@dataclass
class Stanza:
    """
    An XMPP <iq> stanza as exchanged with the game backend:

    <iq type='get|set|result|error' to='JID' from='JID' id='uid...'>
     <query xmlns='urn:cryonline:k01'> ... </query>
     <error code='8' custom_code='3'/>      (error responses only)
    </iq>

    Element tags are namespace-free after parsing.
    """
    type: str                            # get, set, result, error
    to: str
    id: str
    query: Optional[ET.Element] = None   # <query> wrapper
    from_: Optional[str] = None          # renamed to avoid keyword collision
    error: Optional[ET.Element] = None   # <error> child

    @property
    def is_error(self) -> bool:
        return self.type == "error"

    @property
    def is_response(self) -> bool:
        return self.type in _RESPONSE_TYPES

    @classmethod
    def from_xml(cls, xml_str: str) -> 'Stanza':
        """Parse a frame into a Stanza, validating structure"""
        try:
            root = ET.fromstring(xml_str)
        except ET.ParseError as e:
            raise StanzaParseError(f"Invalid XML: {e}")

        return cls.from_element(_strip_namespaces(root))

    @classmethod
    def from_element(cls, root: ET.Element) -> 'Stanza':
        if root.tag != "iq":
            raise UnknownStanzaError(f"Unsupported stanza <{root.tag}>")

        iq_type = root.get("type", "")
        if iq_type not in _IQ_TYPES:
            raise UnknownStanzaError(f"Invalid iq type: {iq_type!r}")

        return cls(
            type=iq_type,
            to=root.get("to", ""),
            id=root.get("id", ""),
            query=root.find("query"),
            from_=root.get("from"),
            error=root.find("error"),
        )

    def to_element(self) -> ET.Element:
        attrs: Dict[str, str] = {"type": self.type, "to": self.to, "id": self.id}
        if self.from_ is not None:
            attrs["from"] = self.from_
        root = ET.Element("iq", attrs)
        if self.query is not None:
            root.append(self.query)
        if self.error is not None:
            root.append(self.error)
        return root

    def to_xml(self) -> str:
        """Serialize for a websocket text frame"""
        return ET.tostring(self.to_element(), encoding="unicode")

    def query_child(self) -> Optional[ET.Element]:
        """First element inside <query>, as sent on the wire (still compressed)"""
        if self.query is None or len(self.query) == 0:
            return None
        return self.query[0]


def make_query(tag: str, children: Optional[list] = None, **attrs: object) -> ET.Element:
    """
    Build <query xmlns='urn:cryonline:k01'><tag .../></query>.

    None-valued attributes are dropped; everything else is stringified.
    """
    query = ET.Element("query", {"xmlns": QUERY_NS})
    inner = ET.SubElement(query, tag, {k: str(v) for k, v in attrs.items() if v is not None})
    for child in children or []:
        inner.append(child)
    return query


def create_iq(to: str, query: ET.Element, iq_type: str = "get",
              iq_id: Optional[str] = None, from_: Optional[str] = None) -> Stanza:
    """Helper to create a new request stanza with a fresh id (if not provided)"""
    return Stanza(
        type=iq_type,
        to=to,
        id=next_iq_id() if iq_id is None else iq_id,
        query=query,
        from_=from_,
    )


def decode_query_content(stanza: Stanza) -> Optional[ET.Element]:
    """
    Return the decoded payload element of a result stanza.

    Large answers arrive compressed:
      <data query_name='join_channel' compressedData='...' originalSize='13480'/>
    where compressedData is base64 of a zlib stream holding the real element.
    Returns None when the query is empty or the compressed blob is unreadable.
    """
    child = stanza.query_child()
    if child is None:
        return None
    if child.tag != "data" or "compressedData" not in child.attrib:
        return child

    try:
        raw = zlib.decompress(base64.b64decode(child.get("compressedData", "")))
        return _strip_namespaces(ET.fromstring(raw.decode("utf-8")))
    except (binascii.Error, zlib.error, UnicodeDecodeError, ET.ParseError) as e:
        logger.warning("Unreadable compressed %s payload in iq %s: %s",
                       child.get("query_name", "?"), stanza.id, e)
        return None


def compress_query_content(element: ET.Element, query_name: str) -> ET.Element:
    """Inverse of decode_query_content, used by test fixtures and replay tools"""
    raw = ET.tostring(element, encoding="unicode").encode("utf-8")
    return ET.Element("data", {
        "query_name": query_name,
        "compressedData": base64.b64encode(zlib.compress(raw)).decode("ascii"),
        "originalSize": str(len(raw)),
    })
