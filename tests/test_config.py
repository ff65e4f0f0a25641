import pytest

import live.config as config_module
from core.errors import ConfigurationError
from live.config import DEFAULT_MODEL, LiveConfig


def test_defaults():
    config = LiveConfig()
    assert config.model == DEFAULT_MODEL
    assert config.response_modality == "AUDIO"
    assert config.system_instruction == "You are a helpful AI assistant"
    assert config.max_image_dimension == 1920
    assert config.jpeg_quality == 75
    assert config.image_send_interval_ms == 5000
    assert config.activity_detection_silence_ms == 1500
    assert not config.google_search
    assert not config.respond_to_all_function_calls


def test_model_prefix():
    assert LiveConfig(model="gemini-live-x").model == "models/gemini-live-x"
    assert LiveConfig(model="models/gemini-live-x").model == "models/gemini-live-x"


def test_modality_normalised():
    assert LiveConfig(response_modality="text").response_modality == "TEXT"


@pytest.mark.parametrize("kwargs", [
    {"response_modality": "VIDEO"},
    {"voice": "Nobody"},
    {"jpeg_quality": 0},
    {"jpeg_quality": 101},
    {"max_image_dimension": 0},
    {"image_send_interval_ms": 0},
    {"activity_detection_silence_ms": -1},
])
def test_invalid_values(kwargs):
    with pytest.raises(ConfigurationError):
        LiveConfig(**kwargs)


def test_configuration_error_is_value_error():
    with pytest.raises(ValueError):
        LiveConfig(jpeg_quality=500)


def test_frozen():
    config = LiveConfig()
    with pytest.raises(AttributeError):
        config.model = "other"


def test_function_declarations_copied():
    decls = [{"name": "f"}]
    config = LiveConfig(function_declarations=decls)
    decls[0]["name"] = "changed"
    decls.append({"name": "g"})
    assert config.function_declarations == [{"name": "f"}]


@pytest.mark.parametrize("interval, poll", [
    (5000, 500),
    (1000, 100),
    (500, 100),
    (60000, 1000),
])
def test_poll_interval(interval, poll):
    assert LiveConfig(image_send_interval_ms=interval).poll_interval_ms == poll


def test_websocket_url():
    url = LiveConfig(api_key="secret").websocket_url()
    assert url.startswith("wss://generativelanguage.googleapis.com/ws/")
    assert "v1beta.GenerativeService.BidiGenerateContent" in url
    assert url.endswith("?key=secret")


def test_websocket_url_requires_key():
    with pytest.raises(ConfigurationError, match="GEMINI_API_KEY"):
        LiveConfig().websocket_url()


def test_replace():
    config = LiveConfig(api_key="k")
    changed = config.replace(jpeg_quality=50)
    assert changed.jpeg_quality == 50
    assert config.jpeg_quality == 75
    assert changed.api_key == "k"


def test_dict_round_trip_drops_key():
    config = LiveConfig(api_key="secret", voice="Kore", google_search=True)
    d = config.to_dict()
    assert "api_key" not in d
    restored = LiveConfig.from_dict(d, api_key="secret")
    assert restored == config


def test_from_dict_ignores_unknown():
    config = LiveConfig.from_dict({"jpeg_quality": 60, "video_mode": "screen"})
    assert config.jpeg_quality == 60


def test_from_env(monkeypatch):
    monkeypatch.setattr(config_module, "load_dotenv", lambda: None)
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    monkeypatch.setenv("GEMINI_LIVE_MODEL", "custom-model")
    config = LiveConfig.from_env(response_modality="TEXT")
    assert config.api_key == "env-key"
    assert config.model == "models/custom-model"
    assert config.response_modality == "TEXT"


def test_from_env_without_key(monkeypatch):
    monkeypatch.setattr(config_module, "load_dotenv", lambda: None)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_LIVE_MODEL", raising=False)
    config = LiveConfig.from_env()
    assert config.api_key is None
    assert config.model == DEFAULT_MODEL
