import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

_BASE36 = string.digits + string.ascii_lowercase


def random_suffix(length: int) -> str:
    return "".join(random.choice(_BASE36) for _ in range(length))


def new_voice_id(prefix: str = "voice") -> str:
    """``<prefix>_<epoch ms>_<9 base36 chars>``; unique by collision odds only."""
    return f"{prefix}_{int(time.time() * 1000)}_{random_suffix(9)}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class VoiceModel:
    voice_id: str
    features: Dict[str, Any]
    audio_data: bytes = b""
    created: str = field(default_factory=_now_iso)
    quality: float | None = None
    simple: bool = False
    name: str | None = None
    provider: str = "local"

    def summary(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "voiceId": self.voice_id,
            "created": self.created,
            "features": self.features,
            "audioDataSize": len(self.audio_data),
            "provider": self.provider,
        }
        if self.quality is not None:
            out["quality"] = self.quality
        if self.simple:
            out["simple"] = True
        if self.name:
            out["name"] = self.name
        return out


class VoiceModelStore:
    """Process-lifetime map of local voice models. No eviction, no locking."""

    def __init__(self):
        self._models: Dict[str, VoiceModel] = {}

    def put(self, model: VoiceModel) -> VoiceModel:
        self._models[model.voice_id] = model
        return model

    def get(self, voice_id: str) -> VoiceModel | None:
        return self._models.get(voice_id)

    def clear(self) -> None:
        self._models.clear()

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, voice_id: object) -> bool:
        return voice_id in self._models
