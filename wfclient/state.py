from __future__ import annotations
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import Optional

# Server-side cap on the unlocked item counter
MAX_UNLOCKED_ITEMS = 111


class PlayerStatus(IntFlag):
    """Presence bits broadcast to k01; ordered so `status >= LOBBY` means joined."""
    OFFLINE = 0
    ONLINE = 1 << 0
    LEFT = 1 << 1
    AFK = 1 << 2
    LOBBY = 1 << 3
    ROOM = 1 << 4
    PLAYING = 1 << 5
    SHOP = 1 << 6
    INVENTORY = 1 << 7


class PlayerClass(IntEnum):
    RIFLEMAN = 0
    HEAVY = 1
    SNIPER = 2
    MEDIC = 3
    ENGINEER = 4


@dataclass
class Money:
    game: int = 0
    crown: int = 0
    cry: int = 0


@dataclass
class Banner:
    badge: int = 0
    mark: int = 0
    stripe: int = 0


@dataclass
class PvpStats:
    rating_points: int = 0


@dataclass
class ProfileStats:
    pvp: PvpStats = field(default_factory=PvpStats)
    items_unlocked: int = 0


@dataclass
class Profile:
    id: Optional[str] = None
    nickname: Optional[str] = None
    experience: int = 0
    money: Money = field(default_factory=Money)
    banner: Banner = field(default_factory=Banner)
    primary_weapon: Optional[str] = None
    stats: ProfileStats = field(default_factory=ProfileStats)


@dataclass
class Session:
    """
    Client session and profile state.

    One instance per connection; it is handed to every component that
    reads or mutates it rather than living at module level.
    """
    id: Optional[str] = None              # connection-level user id
    active_token: Optional[str] = None
    status: PlayerStatus = PlayerStatus.OFFLINE
    channel: Optional[str] = None
    channel_type: Optional[str] = None
    profile: Profile = field(default_factory=Profile)

    @property
    def has_joined(self) -> bool:
        return self.status >= PlayerStatus.LOBBY
