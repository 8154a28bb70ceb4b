"""ICE 서버 설정 제공 / 조회 테스트."""
from aiohttp import web
from aiohttp.test_utils import TestServer
from aiortc import RTCConfiguration

from modules.config import DEFAULT_STUN_SERVERS, Settings
from modules.webrtc import IceConfig, IceConfigProvider, TurnServer, fetch_ice_config


def test_provider_without_turn():
    config = IceConfigProvider(Settings()).get_ice_config()

    assert config.stun_servers == DEFAULT_STUN_SERVERS
    assert config.turn_servers == []


def test_provider_with_turn():
    settings = Settings(
        TURN_SERVER_URL="turn:turn.example.com:3478",
        TURN_USERNAME="user",
        TURN_CREDENTIAL="secret",
    )

    config = IceConfigProvider(settings).get_ice_config()

    assert config.turn_servers == [TurnServer(["turn:turn.example.com:3478"], "user", "secret")]


def test_from_rtc_configuration_splits_stun_and_turn():
    payload = {"iceServers": [
        {"urls": "stun:stun.example.com:3478"},
        {"urls": ["turn:turn.example.com:3478"], "username": "u", "credential": "c"},
        {"urls": []},
    ]}

    config = IceConfig.from_rtc_configuration(payload)

    assert config.stun_servers == ["stun:stun.example.com:3478"]
    assert config.turn_servers == [TurnServer(["turn:turn.example.com:3478"], "u", "c")]
    assert config.to_rtc_configuration() == {"iceServers": [
        {"urls": ["stun:stun.example.com:3478"]},
        {"urls": ["turn:turn.example.com:3478"], "username": "u", "credential": "c"},
    ]}


def test_to_aiortc_includes_credentials():
    config = IceConfig(turn_servers=[TurnServer(["turn:t:3478"], "u", "c")])

    rtc = config.to_aiortc()

    assert isinstance(rtc, RTCConfiguration)
    assert rtc.iceServers[0].urls == DEFAULT_STUN_SERVERS
    assert rtc.iceServers[1].username == "u"
    assert rtc.iceServers[1].credential == "c"


async def test_fetch_falls_back_to_stun_when_unreachable():
    config = await fetch_ice_config("http://127.0.0.1:9", timeout=1.0)

    assert config == IceConfig()


async def test_fetch_reads_server_configuration():
    async def ice(request):
        return web.json_response({"iceServers": [
            {"urls": ["stun:stun.example.com:3478"]},
            {"urls": ["turn:turn.example.com:3478"], "username": "u", "credential": "c"},
        ]})

    app = web.Application()
    app.router.add_get("/ice", ice)

    async with TestServer(app) as server:
        config = await fetch_ice_config(str(server.make_url("/")))

    assert config.stun_servers == ["stun:stun.example.com:3478"]
    assert len(config.turn_servers) == 1


async def test_fetch_falls_back_on_malformed_payload():
    async def ice(request):
        return web.json_response({"servers": []})

    app = web.Application()
    app.router.add_get("/ice", ice)

    async with TestServer(app) as server:
        config = await fetch_ice_config(str(server.make_url("/")))

    assert config == IceConfig()
