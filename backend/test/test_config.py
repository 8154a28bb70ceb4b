"""설정 검증 테스트."""
import pytest
from pydantic import ValidationError

from modules.config import DEFAULT_STUN_SERVERS, Settings


def test_defaults():
    settings = Settings()

    assert settings.PORT == 8080
    assert settings.ROOM_CAPACITY == 2
    assert settings.has_turn_server is False


def test_log_level_is_normalised():
    assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"


def test_unknown_log_level_is_rejected():
    with pytest.raises(ValidationError):
        Settings(LOG_LEVEL="chatty")


@pytest.mark.parametrize("capacity", [1, 3])
def test_room_capacity_is_fixed_at_two(capacity):
    with pytest.raises(ValidationError):
        Settings(ROOM_CAPACITY=capacity)


def test_lock_shards_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(ROOM_LOCK_SHARDS=0)


def test_turn_requires_all_three_fields():
    partial = Settings(TURN_SERVER_URL="turn:t:3478", TURN_USERNAME="u")
    full = Settings(TURN_SERVER_URL="turn:t:3478", TURN_USERNAME="u", TURN_CREDENTIAL="c")

    assert partial.has_turn_server is False
    assert full.has_turn_server is True


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PORT", "9090")
    monkeypatch.setenv("STUN_SERVER_URLS", '["stun:stun.example.com:3478"]')

    settings = Settings()

    assert settings.PORT == 9090
    assert settings.STUN_SERVER_URLS == ["stun:stun.example.com:3478"]


@pytest.mark.parametrize("stun_urls", [[], ["", "  "]])
def test_empty_stun_list_falls_back_to_defaults(stun_urls):
    assert Settings(STUN_SERVER_URLS=stun_urls).STUN_SERVER_URLS == DEFAULT_STUN_SERVERS
