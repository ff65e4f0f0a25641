"""
Live session configuration.

LiveConfig is immutable once built. Use ``replace()`` to derive a
modified copy, ``from_env()`` to pick up the API key from the
environment (or a ``.env`` file).
"""

import dataclasses
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from core.errors import ConfigurationError

DEFAULT_MODEL = "models/gemini-2.5-flash-live-preview"
DEFAULT_SYSTEM_INSTRUCTION = "You are a helpful AI assistant"

# Gemini WebSocket endpoint
GEMINI_WEBSOCKET_HOST = "generativelanguage.googleapis.com"
DEFAULT_API_VERSION = "v1beta"

MODALITIES = ("TEXT", "AUDIO")

# Prebuilt voices accepted by speechConfig
VOICES = [
    "Aoede", "Leda", "Puck", "Charon", "Kore", "Fenrir",
    "Orion", "Perseus", "Zephyr"
]


@dataclass(frozen=True)
class LiveConfig:
    """Configuration for a live session"""
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    response_modality: str = "AUDIO"
    function_declarations: List[Dict[str, Any]] = field(default_factory=list)
    google_search: bool = False
    code_execution: bool = False
    url_context: bool = False
    voice: Optional[str] = None

    # Screen capture
    max_image_dimension: int = 1920
    jpeg_quality: int = 75
    image_send_interval_ms: int = 5000

    # Server-side activity detection (user speech segmentation)
    activity_detection_disabled: bool = False
    activity_detection_silence_ms: int = 1500
    prefix_padding_ms: int = 20

    # Tool calls: answer only the first call of a toolCall message unless set
    respond_to_all_function_calls: bool = False

    host: str = GEMINI_WEBSOCKET_HOST
    api_version: str = DEFAULT_API_VERSION

    def __post_init__(self):
        modality = self.response_modality.upper()
        if modality not in MODALITIES:
            raise ConfigurationError(
                f"Unknown response modality: {self.response_modality}. "
                f"Available: {', '.join(MODALITIES)}"
            )
        object.__setattr__(self, "response_modality", modality)

        if not self.model.startswith("models/"):
            object.__setattr__(self, "model", f"models/{self.model}")

        if self.voice is not None and self.voice not in VOICES:
            raise ConfigurationError(f"Unknown voice: {self.voice}. Available: {', '.join(VOICES)}")
        if not 1 <= self.jpeg_quality <= 100:
            raise ConfigurationError(f"jpeg_quality must be within 1..100, got {self.jpeg_quality}")
        if self.max_image_dimension <= 0:
            raise ConfigurationError("max_image_dimension must be positive")
        if self.image_send_interval_ms <= 0:
            raise ConfigurationError("image_send_interval_ms must be positive")
        if self.activity_detection_silence_ms < 0 or self.prefix_padding_ms < 0:
            raise ConfigurationError("activity detection durations must not be negative")

        # Freeze the declarations list against later mutation by the caller
        object.__setattr__(
            self, "function_declarations", [dict(d) for d in self.function_declarations]
        )

    @property
    def poll_interval_ms(self) -> int:
        """Capture loop tick: a tenth of the send interval, within 100ms..1s"""
        return min(1000, max(100, self.image_send_interval_ms // 10))

    def websocket_url(self) -> str:
        """Build the raw WebSocket URL for the Live API"""
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY not set")
        return (
            f"wss://{self.host}/ws/"
            f"google.ai.generativelanguage.{self.api_version}.GenerativeService.BidiGenerateContent"
            f"?key={self.api_key}"
        )

    def replace(self, **changes) -> 'LiveConfig':
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict:
        d = dataclasses.asdict(self)
        d.pop("api_key")
        return d

    @classmethod
    def from_dict(cls, d: dict, api_key: Optional[str] = None) -> 'LiveConfig':
        known = {f.name for f in dataclasses.fields(cls)}
        values = {k: v for k, v in d.items() if k in known}
        if api_key is not None:
            values["api_key"] = api_key
        return cls(**values)

    @classmethod
    def from_env(cls, **overrides) -> 'LiveConfig':
        """
        Build a config from the environment.

        Reads GEMINI_API_KEY and, if set, GEMINI_LIVE_MODEL. A .env file
        in the working directory is loaded first.
        """
        load_dotenv()
        values: Dict[str, Any] = {"api_key": os.getenv("GEMINI_API_KEY")}
        model = os.getenv("GEMINI_LIVE_MODEL")
        if model:
            values["model"] = model
        values.update(overrides)
        return cls(**values)
