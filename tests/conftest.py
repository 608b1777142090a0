import os
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from xml.etree import ElementTree as ET

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("WFC_LOG_DIR", str(Path(tempfile.gettempdir()) / "wfclient-test-logs"))

from shared.stanza import Stanza, compress_query_content
from wfclient.config import ChannelDirectory, ChannelInfo, ClientConfig
from wfclient.join_channel import ChannelJoiner
from wfclient.queries import ChannelServices
from wfclient.state import Session


@dataclass
class SentIq:
    to: str
    query: ET.Element
    on_response: object
    id: str

    @property
    def tag(self) -> str:
        return self.query[0].tag

    @property
    def body(self) -> ET.Element:
        return self.query[0]


class FakeTransport:
    """Records outbound iqs; tests deliver answers by hand."""

    def __init__(self):
        self.sent: List[SentIq] = []

    async def send_iq(self, to, query, on_response=None, *, iq_type="get", timeout=None):
        iq_id = f"iq{len(self.sent)}"
        self.sent.append(SentIq(to, query, on_response, iq_id))
        return iq_id

    def tags(self) -> List[str]:
        return [s.tag for s in self.sent]

    def requests(self, tag: str) -> List[SentIq]:
        return [s for s in self.sent if s.tag == tag]

    async def respond(self, sent: SentIq, stanza: Optional[Stanza]) -> None:
        await sent.on_response(stanza)


def result_stanza(content: Optional[str] = None, compressed: bool = False) -> Stanza:
    query = ET.Element("query")
    if content is not None:
        element = ET.fromstring(content)
        if compressed:
            element = compress_query_content(element, element.tag)
        query.append(element)
    return Stanza(type="result", to="user@warface/GameClient", id="iq0",
                  query=query, from_="k01.warface")


def error_stanza(code: Optional[int] = None, custom_code: Optional[int] = None) -> Stanza:
    attrs = {"type": "cancel"}
    if code is not None:
        attrs["code"] = str(code)
    if custom_code is not None:
        attrs["custom_code"] = str(custom_code)
    return Stanza(type="error", to="user@warface/GameClient", id="iq0",
                  query=ET.Element("query"), from_="k01.warface",
                  error=ET.Element("error", attrs))


@pytest.fixture
def session():
    s = Session(id="user-42", active_token="tok-abc")
    s.profile.id = "9001"
    return s


@pytest.fixture
def config():
    return ClientConfig(game_version="1.2.3", region_id="eu", hw_id=777)


@pytest.fixture
def directory(tmp_path):
    d = ChannelDirectory(tmp_path / "channels.yaml")
    d.set(ChannelInfo(resource="pve_1", channel_type="pve"))
    d.set(ChannelInfo(resource="pvp_pro_3", channel_type="pvp_pro"))
    return d


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def joiner(session, transport, config, directory):
    services = ChannelServices(session, transport, config)
    return ChannelJoiner(session, transport, config, directory, services)
