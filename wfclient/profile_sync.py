from __future__ import annotations

from typing import Optional

from shared.log import get_logger
from wfclient.config import ChannelDirectory
from wfclient.join_response import JoinChannelData
from wfclient.state import MAX_UNLOCKED_ITEMS, Profile, Session

logger = get_logger(__name__)


def _positive(value: int, current: int) -> int:
    """The backend omits unchanged fields, so 0 means "keep what we have"."""
    return value if value > 0 else current


def commit_channel(session: Session, channel: str, directory: ChannelDirectory) -> None:
    session.channel = channel

    info = directory.get(channel)
    session.channel_type = info.channel_type if info is not None else None

    logger.info("Joined channel %s (%s)", session.channel, session.channel_type,
                extra={"channel": channel})


def apply_join_data(session: Session, channel: str, directory: ChannelDirectory,
                    data: JoinChannelData) -> None:
    """
    Reconcile session/profile state with a join or switch answer.

    Only strictly positive numbers overwrite stored values. Money is read
    only from genuine join_channel answers.
    """
    profile = session.profile

    commit_channel(session, channel, directory)

    profile.experience = _positive(data.experience, profile.experience)
    profile.stats.pvp.rating_points = _positive(data.pvp_rating_points, profile.stats.pvp.rating_points)

    profile.banner.badge = _positive(data.banner_badge, profile.banner.badge)
    profile.banner.mark = _positive(data.banner_mark, profile.banner.mark)
    profile.banner.stripe = _positive(data.banner_stripe, profile.banner.stripe)

    if data.is_join_channel:
        profile.money.game = _positive(data.game_money, profile.money.game)
        profile.money.crown = _positive(data.crown_money, profile.money.crown)
        profile.money.cry = _positive(data.cry_money, profile.money.cry)

    unlocked = min(data.unlocked_items, MAX_UNLOCKED_ITEMS)
    profile.stats.items_unlocked = _positive(unlocked, profile.stats.items_unlocked)


def primary_slot(player_class: int) -> Optional[int]:
    """Slot bit of the primary weapon for a class; 5 slot bits per class."""
    if player_class < 0:
        return None
    return 1 << (5 * player_class)


def resolve_primary_weapon(profile: Profile, data: JoinChannelData) -> Optional[str]:
    """
    Store the equipped primary weapon of the current class.

    Scans items in payload order; the last matching item wins.
    Returns the weapon now stored on the profile.
    """
    slot = primary_slot(data.current_class)
    if slot is None:
        return profile.primary_weapon

    for item in data.items:
        if item.equipped and item.slot == slot:
            profile.primary_weapon = item.name

    return profile.primary_weapon
