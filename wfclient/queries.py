from __future__ import annotations

from typing import TYPE_CHECKING, Iterable
from xml.etree import ElementTree as ET

from shared.log import get_logger, log_query
from shared.stanza import k01_jid, make_query, masterserver_jid
from wfclient.config import ClientConfig
from wfclient.state import PlayerStatus, Session

if TYPE_CHECKING:
    from wfclient.ws_client import ClientSession

logger = get_logger(__name__)


class ChannelServices:
    """
    Follow-up requests triggered by a channel join.

    Every method is fire-and-forget: it writes the request and returns
    without registering a response handler, so nothing here waits for
    the backend.
    """

    def __init__(self, session: Session, transport: "ClientSession", config: ClientConfig) -> None:
        self.session = session
        self.transport = transport
        self.config = config

    def _ms(self, channel: str | None = None) -> str:
        return masterserver_jid(self.config.domain, channel or self.session.channel or "")

    async def _send(self, to: str, query: ET.Element) -> None:
        iq_id = await self.transport.send_iq(to, query)
        log_query(logger, "debug", f"Sent request to {to}", query=query[0].tag, iq_id=iq_id)

    async def gameroom_leave(self, channel: str | None = None) -> None:
        """Leave the current game room; `channel` addresses it before the session has one."""
        await self._send(self._ms(self.session.channel or channel), make_query("gameroom_leave"))

    async def shop_get_offers(self) -> None:
        await self._send(self._ms(), make_query("shop_get_offers"))

    async def get_player_stats(self) -> None:
        await self._send(self._ms(), make_query("get_player_stats"))

    async def get_achievements(self, profile_id: str | None) -> None:
        achievement = ET.Element("achievement", {"profile_id": profile_id or ""})
        await self._send(k01_jid(self.config.domain), make_query("get_achievements", [achievement]))

    async def mission_list_update(self) -> None:
        await self._send(self._ms(), make_query("missions_get_list"))

    async def player_status(self, status: PlayerStatus) -> None:
        query = make_query(
            "player_status",
            prev_status=int(self.session.status),
            new_status=int(status),
            to=self.session.channel or "",
        )
        await self._send(k01_jid(self.config.domain), query)
        self.session.status = status

    async def confirm_notification(self, notif: ET.Element) -> None:
        confirmation = ET.Element("confirmation", {"result": "0", "status": str(int(self.session.status)), "location": ""})
        entry = ET.Element("notif", {"id": notif.get("id", ""), "type": notif.get("type", "")})
        entry.append(confirmation)
        await self._send(self._ms(), make_query("confirm_notification", [entry]))

    async def notify_expired_items(self, channel: str, item_ids: Iterable[str]) -> None:
        items = [ET.Element("item", {"item_id": item_id}) for item_id in item_ids]
        await self._send(self._ms(channel), make_query("notify_expired_items", items))

    async def channel_logout(self, channel: str) -> None:
        await self._send(self._ms(channel), make_query("channel_logout"))
