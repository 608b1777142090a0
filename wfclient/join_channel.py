from __future__ import annotations

import asyncio
import functools
import inspect
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from shared.log import get_logger
from shared.stanza import Stanza, decode_query_content, k01_jid, make_query, masterserver_jid
from wfclient.config import ChannelDirectory, ClientConfig
from wfclient.join_response import JoinChannelData, classify_join_error, error_codes
from wfclient.profile_sync import apply_join_data, resolve_primary_weapon
from wfclient.queries import ChannelServices
from wfclient.state import PlayerStatus, Session

if TYPE_CHECKING:
    from wfclient.ws_client import ClientSession

logger = get_logger(__name__)

# Completion callback: receives the caller's opaque argument, may be async
JoinCallback = Callable[[Any], Union[None, Awaitable[None]]]


class JoinOutcome(str, Enum):
    JOINED = "joined"
    FAILED = "failed"
    ABANDONED = "abandoned"


class JoinRequest:
    """
    Per-call state of one join/switch round trip.

    Released exactly once when the answer (or abandonment) has been
    handled; `wait()` resolves at that point.
    """

    def __init__(self, channel: str, callback: Optional[JoinCallback] = None, args: Any = None) -> None:
        self.channel = channel
        self.callback = callback
        self.args = args
        self.outcome: Optional[JoinOutcome] = None
        self.error_reason: Optional[str] = None
        self._done: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def released(self) -> bool:
        return self._done.done()

    def release(self, outcome: JoinOutcome) -> None:
        if self._done.done():
            raise RuntimeError(f"Join request for {self.channel} released twice")
        self.outcome = outcome
        self.callback = None
        self.args = None
        self._done.set_result(outcome)

    async def wait(self) -> JoinOutcome:
        return await asyncio.shield(self._done)


class ChannelJoiner:
    """
    Joins or switches channels and reconciles the session with the answer.

    join_channel() only sends the request; the answer is handled later in
    a transport-owned task:

      error   -> log the classified reason, logout from the failed target
                 if we are sitting on another channel
      result  -> leave the game room, commit channel/profile state, resolve
                 the primary weapon, acknowledge expired items and
                 notifications, refresh shop/stats/achievements/missions,
                 broadcast presence, logout from the previous channel,
                 then run the caller's callback
      None    -> nothing but releasing the request
    """

    def __init__(
        self,
        session: Session,
        transport: "ClientSession",
        config: ClientConfig,
        directory: ChannelDirectory,
        services: Optional[ChannelServices] = None,
    ) -> None:
        self.session = session
        self.transport = transport
        self.config = config
        self.directory = directory
        self.services = services or ChannelServices(session, transport, config)

    async def join_channel(
        self,
        channel: Optional[str],
        callback: Optional[JoinCallback] = None,
        args: Any = None,
    ) -> Optional[JoinRequest]:
        if not channel:
            return None

        is_switch = self.session.has_joined
        request = JoinRequest(channel, callback, args)

        attrs = dict(
            version=self.config.game_version,
            token=self.session.active_token,
            region_id=self.config.region_id,
            profile_id=self.session.profile.id,
            user_id=self.session.id,
            resource=channel,
        )
        if is_switch:
            to = masterserver_jid(self.config.domain, channel)
            query = make_query("switch_channel", **attrs, build_type=self.config.build_type)
        else:
            to = k01_jid(self.config.domain)
            query = make_query("join_channel", **attrs, hw_id=self.config.hw_id,
                               build_type=self.config.build_type)

        iq_id = await self.transport.send_iq(to, query, functools.partial(self._on_response, request))
        logger.debug("%s channel %s", "Switching to" if is_switch else "Joining", channel,
                     extra={"channel": channel, "iq_id": iq_id})
        return request

    async def _on_response(self, request: JoinRequest, response: Optional[Stanza]) -> None:
        outcome = JoinOutcome.ABANDONED
        try:
            if response is None:
                logger.debug("Join request for %s abandoned", request.channel)
                return

            if response.is_error:
                outcome = JoinOutcome.FAILED
                logout_channel = self._handle_error(request, response)
            else:
                outcome = JoinOutcome.JOINED
                logout_channel = await self._handle_result(request, response)

            await self._logout(logout_channel)

            if outcome is JoinOutcome.JOINED:
                await self._complete(request)
        finally:
            request.release(outcome)

    def _handle_error(self, request: JoinRequest, response: Stanza) -> str:
        code, custom_code = error_codes(response)
        reason = classify_join_error(code, custom_code)

        if reason is not None:
            logger.error("Failed to join channel (%s)", reason, extra={"channel": request.channel})
            request.error_reason = reason
        else:
            logger.error("Failed to join channel (%i:%i)", code, custom_code,
                         extra={"channel": request.channel})
            request.error_reason = f"{code}:{custom_code}"

        return request.channel

    async def _handle_result(self, request: JoinRequest, response: Stanza) -> Optional[str]:
        logout_channel = self.session.channel

        await self.services.gameroom_leave(request.channel)

        content = decode_query_content(response)
        if content is None:
            logger.debug("Empty join answer for %s; nothing to update", request.channel)
            return logout_channel

        data = JoinChannelData.from_element(content)
        apply_join_data(self.session, request.channel, self.directory, data)
        resolve_primary_weapon(self.session.profile, data)

        await self._run_cascade(data)
        return logout_channel

    async def _run_cascade(self, data: JoinChannelData) -> None:
        services = self.services

        if data.expired_item_ids:
            logger.info("Confirm expiration of %d item(s)", len(data.expired_item_ids))
            await services.notify_expired_items(self.session.channel, data.expired_item_ids)

        for notif in data.notifications:
            await services.confirm_notification(notif)

        await services.shop_get_offers()
        await services.get_player_stats()
        await services.get_achievements(self.session.profile.id)
        await services.mission_list_update()
        await services.player_status(PlayerStatus.ONLINE | PlayerStatus.LOBBY)

    async def _logout(self, logout_channel: Optional[str]) -> None:
        current = self.session.channel
        if logout_channel is None or current is None or current == logout_channel:
            return
        await self.services.channel_logout(logout_channel)

    async def _complete(self, request: JoinRequest) -> None:
        if request.callback is None:
            return
        result = request.callback(request.args)
        if inspect.isawaitable(result):
            await result
