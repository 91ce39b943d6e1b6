"""Placeholder voice characteristics.

Nothing here measures the signal. Values are seeded from the sample size and
jittered with ``random`` so the UI has plausible numbers to show, and the tone
synthesizer exists only as a last-resort audible fallback when every TTS
backend is unavailable.
"""
import io
import logging
import math
import random
import wave
from array import array
from typing import Any, Dict

logger = logging.getLogger("resona.analysis")

SAMPLE_RATE = 44100
MAX_TONE_SECONDS = 30.0

DEFAULT_CHARACTERISTICS: Dict[str, Dict[str, float]] = {
    "pitch": {"average": 150, "range": 50},
    "tone": {"brightness": 0.5, "warmth": 0.5, "roughness": 0.2},
    "rhythm": {"speed": 1.0, "pauses": 0.3},
    "formants": {"f1": 500, "f2": 1500, "f3": 2500},
    "spectral": {"centroid": 1000, "rolloff": 3000, "flux": 0.5},
}


def analyze_characteristics(audio: bytes, mime_type: str | None = None) -> Dict[str, Dict[str, float]]:
    try:
        seed = len(audio) % 1000
        r = random.random
        return {
            "pitch": {
                "average": 120 + (seed % 80) + r() * 40,
                "range": 30 + (seed % 40) + r() * 30,
            },
            "tone": {
                "brightness": 0.3 + (seed % 100) / 200 + r() * 0.3,
                "warmth": 0.4 + (seed % 100) / 250 + r() * 0.3,
                "roughness": (seed % 50) / 200 + r() * 0.2,
            },
            "rhythm": {
                "speed": 0.7 + (seed % 50) / 100 + r() * 0.4,
                "pauses": (seed % 30) / 100 + r() * 0.3,
            },
            "formants": {
                "f1": 400 + (seed % 200) + r() * 200,
                "f2": 1200 + (seed % 600) + r() * 400,
                "f3": 2200 + (seed % 800) + r() * 600,
            },
            "spectral": {
                "centroid": 800 + (seed % 800) + r() * 600,
                "rolloff": 2500 + (seed % 1000) + r() * 1000,
                "flux": (seed % 100) / 100,
            },
        }
    except Exception:
        logger.exception("voice analysis failed, using defaults")
        return {k: dict(v) for k, v in DEFAULT_CHARACTERISTICS.items()}


def estimate_duration(size: int, mime_type: str | None = None) -> float:
    mt = (mime_type or "").lower()
    if "mp3" in mt:
        rate = 16000
    elif "wav" in mt:
        rate = 88200
    else:
        rate = 32000
    return max(1.0, size / rate)


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _group(analysis: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = analysis.get(key) if isinstance(analysis, dict) else None
    return value if isinstance(value, dict) else {}


def calculate_quality(analysis: Dict[str, Any]) -> float:
    score = 0.5
    pitch_range = _number(_group(analysis, "pitch").get("range"))
    if pitch_range and pitch_range < 100:
        score += 0.2
    roughness = _number(_group(analysis, "tone").get("roughness"))
    if roughness and roughness < 0.3:
        score += 0.2
    centroid = _number(_group(analysis, "spectral").get("centroid"))
    if centroid and 800 < centroid < 2000:
        score += 0.1
    return min(1.0, max(0.1, round(score, 6)))


def model_features(analysis: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "pitch": _number(_group(analysis, "pitch").get("average")) or 150,
        "tone": _number(_group(analysis, "tone").get("brightness")) or 0.5,
        "speed": _number(_group(analysis, "rhythm").get("speed")) or 1.0,
        "formants": _group(analysis, "formants") or {"f1": 500, "f2": 1500, "f3": 2500},
        "spectral": _group(analysis, "spectral") or {"centroid": 1000, "rolloff": 3000},
    }


def simple_features() -> Dict[str, float]:
    return {
        "pitch": 150 + random.random() * 100,
        "tone": 0.5 + random.random() * 0.3,
        "speed": 0.8 + random.random() * 0.4,
        "quality": 0.7 + random.random() * 0.2,
    }


def mock_profile_features() -> Dict[str, float]:
    return {
        "pitch": random.random() * 100 + 100,
        "tone": random.random() * 50 + 25,
        "speed": random.random() * 0.5 + 0.75,
    }


def pcm16_to_wav(samples: array, sample_rate: int = SAMPLE_RATE) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(samples.tobytes())
    return buf.getvalue()


def synthesize_tone(text: str, pitch: float | None = None, speed: float = 1.0) -> bytes:
    """Render a modulated sine as WAV, sized to roughly match ``text``.

    With a ``pitch`` the tone follows the voice model; without one it sweeps
    around 200 Hz.
    """
    per_char = 0.08 if pitch is not None else 0.1
    duration = min(MAX_TONE_SECONDS, max(2.0, len(text or "") * per_char))
    n = int(SAMPLE_RATE * duration)
    samples = array("h", bytes(2 * n))
    two_pi = 2 * math.pi
    if pitch is not None:
        speed = speed or 1.0
        for i in range(n):
            t = (i / SAMPLE_RATE) * speed
            freq = pitch + math.sin(t * 3) * 20
            amp = math.sin(t * 0.5) * 0.3 + 0.7
            samples[i] = int(math.sin(two_pi * freq * t) * amp * 16384)
    else:
        for i in range(n):
            t = i / SAMPLE_RATE
            freq = 200 + math.sin(t * 2) * 50
            samples[i] = int(math.sin(two_pi * freq * t) * 16384)
    return pcm16_to_wav(samples)


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def browser_voice_settings(voice_profile: Dict[str, Any] | None) -> Dict[str, float]:
    features = _group(voice_profile or {}, "features")
    fundamental = _number(_group(features, "pitch").get("fundamental")) or 150
    speech_ratio = _number(_group(features, "temporal").get("speechRatio")) or 1.0
    return {
        "pitch": _clamp(fundamental / 150, 0.1, 2),
        "rate": _clamp(speech_ratio * 1.2, 0.3, 1.8),
        "volume": 0.9,
    }
