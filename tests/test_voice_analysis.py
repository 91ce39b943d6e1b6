import io
import wave

import pytest

import voice_analysis
from voice_analysis import (
    analyze_characteristics,
    browser_voice_settings,
    calculate_quality,
    estimate_duration,
    model_features,
    simple_features,
    synthesize_tone,
)


def test_characteristics_stay_in_placeholder_ranges():
    for size in (0, 999, 12345):
        c = analyze_characteristics(b"\x00" * size, "audio/webm")
        assert 120 <= c["pitch"]["average"] <= 240
        assert 30 <= c["pitch"]["range"] <= 100
        assert 400 <= c["formants"]["f1"] <= 800
        assert 800 <= c["spectral"]["centroid"] <= 2200
        assert c["spectral"]["flux"] == (size % 1000 % 100) / 100


@pytest.mark.parametrize(
    "size,mime,expected",
    [
        (32000, "audio/mp3", 2.0),
        (88200 * 3, "audio/wav", 3.0),
        (64000, "audio/webm", 2.0),
        (10, "audio/webm", 1.0),
        (64000, None, 2.0),
    ],
)
def test_estimate_duration(size, mime, expected):
    assert estimate_duration(size, mime) == pytest.approx(expected)


def test_quality_scoring():
    good = {"pitch": {"range": 40}, "tone": {"roughness": 0.1}, "spectral": {"centroid": 1200}}
    assert calculate_quality(good) == pytest.approx(1.0)
    assert calculate_quality({}) == pytest.approx(0.5)
    rough = {"pitch": {"range": 40}, "tone": {"roughness": 0.6}, "spectral": {"centroid": 2500}}
    assert calculate_quality(rough) == pytest.approx(0.7)


def test_model_features_defaults():
    features = model_features({})
    assert features["pitch"] == 150
    assert features["tone"] == 0.5
    assert features["speed"] == 1.0
    assert features["formants"] == {"f1": 500, "f2": 1500, "f3": 2500}


def test_model_features_from_analysis():
    features = model_features({"pitch": {"average": 210.5}, "rhythm": {"speed": 1.3}, "formants": {"f1": 1}})
    assert features["pitch"] == 210.5
    assert features["speed"] == 1.3
    assert features["formants"] == {"f1": 1}


def test_simple_features_ranges():
    f = simple_features()
    assert 150 <= f["pitch"] <= 250
    assert 0.7 <= f["quality"] <= 0.9


def _wav_params(data):
    with wave.open(io.BytesIO(data), "rb") as wf:
        return wf.getnchannels(), wf.getsampwidth(), wf.getframerate(), wf.getnframes()


def test_tone_is_mono_pcm16_wav_of_minimum_length():
    channels, width, rate, frames = _wav_params(synthesize_tone("hi"))
    assert (channels, width, rate) == (1, 2, 44100)
    assert frames == 44100 * 2


def test_tone_with_pitch_scales_with_text():
    _, _, _, frames = _wav_params(synthesize_tone("x" * 50, pitch=180, speed=1.1))
    assert frames == int(44100 * 4.0)


def test_tone_duration_is_capped(monkeypatch):
    monkeypatch.setattr(voice_analysis, "MAX_TONE_SECONDS", 3.0)
    _, _, _, frames = _wav_params(synthesize_tone("x" * 100))
    assert frames == 44100 * 3


def test_browser_settings_defaults_and_clamping():
    assert browser_voice_settings(None) == {"pitch": 1.0, "rate": pytest.approx(1.2), "volume": 0.9}
    loud = browser_voice_settings({"features": {"pitch": {"fundamental": 600}, "temporal": {"speechRatio": 0.1}}})
    assert loud["pitch"] == 2
    assert loud["rate"] == 0.3
