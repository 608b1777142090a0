from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from xml.etree import ElementTree as ET

from shared.stanza import Stanza
from shared.utils import find_attr_int

# (code, custom_code) -> reason; custom_code None matches any sub-code
_JOIN_ERRORS: Dict[Tuple[int, Optional[int]], str] = {
    (1006, None): "QoS limit reached",
    (503, None): "Invalid channel",
    (8, 0): "Invalid token or user id",
    (8, 1): "Profile does not exist",
    (8, 2): "Game version mismatch",
    (8, 3): "Banned",
    (8, 5): "Rank restricted",
}


def classify_join_error(code: int, custom_code: int) -> Optional[str]:
    """Human-readable reason for a join/switch error, or None if unknown."""
    reason = _JOIN_ERRORS.get((code, None))
    if reason is not None:
        return reason
    return _JOIN_ERRORS.get((code, custom_code))


def describe_join_error(code: int, custom_code: int) -> str:
    return classify_join_error(code, custom_code) or f"{code}:{custom_code}"


def error_codes(stanza: Stanza) -> Tuple[int, int]:
    """(code, custom_code) of an error stanza; missing values read as 0."""
    source = stanza.error if stanza.error is not None else stanza.to_element()
    return find_attr_int(source, "code"), find_attr_int(source, "custom_code")


@dataclass
class InventoryItem:
    name: Optional[str]
    equipped: int = 0
    slot: int = 0


@dataclass
class JoinChannelData:
    """
    The fields of a join_channel/switch_channel answer this client uses.

    Numeric fields keep 0 for "absent"; callers only apply positive values.
    """
    is_join_channel: bool = False
    experience: int = 0
    pvp_rating_points: int = 0
    banner_badge: int = 0
    banner_mark: int = 0
    banner_stripe: int = 0
    game_money: int = 0
    crown_money: int = 0
    cry_money: int = 0
    current_class: int = 0
    items: List[InventoryItem] = field(default_factory=list)
    unlocked_items: int = 0
    expired_item_ids: List[str] = field(default_factory=list)
    notifications: List[ET.Element] = field(default_factory=list)

    @classmethod
    def from_element(cls, data: ET.Element) -> "JoinChannelData":
        is_join_channel = data.tag == "join_channel" or data.find(".//join_channel") is not None

        return cls(
            is_join_channel=is_join_channel,
            experience=find_attr_int(data, "experience"),
            pvp_rating_points=find_attr_int(data, "pvp_rating_points"),
            banner_badge=find_attr_int(data, "banner_badge"),
            banner_mark=find_attr_int(data, "banner_mark"),
            banner_stripe=find_attr_int(data, "banner_stripe"),
            game_money=find_attr_int(data, "game_money"),
            crown_money=find_attr_int(data, "crown_money"),
            cry_money=find_attr_int(data, "cry_money"),
            current_class=find_attr_int(data, "current_class"),
            items=[
                InventoryItem(
                    name=item.get("name"),
                    equipped=find_attr_int(item, "equipped"),
                    slot=find_attr_int(item, "slot"),
                )
                for item in data.iter("item")
            ],
            unlocked_items=sum(1 for _ in data.iter("unlocked_item")),
            expired_item_ids=[
                el.get("id")
                for el in data.iter("expired_item")
                if el.get("id")
            ],
            notifications=list(data.iter("notif")),
        )
