from fastapi.testclient import TestClient

import main
from voice_models import VoiceModel

ELEVEN_KEY = "sk_" + "e" * 28


def _store_voice(voice_id="voice_1", **features):
    return main._voice_models.put(VoiceModel(voice_id=voice_id, features=features or {"pitch": 170, "speed": 1.1}))


def test_synthesize_speech_requires_text(vendor):
    client = TestClient(main.app)
    assert client.post("/api/synthesize-speech", json={}).status_code == 400


def test_synthesize_speech_without_key_defers_to_browser(vendor):
    client = TestClient(main.app)
    profile = {"features": {"pitch": {"fundamental": 225}, "temporal": {"speechRatio": 1.0}}}
    resp = client.post("/api/synthesize-speech", json={"text": "hello", "voiceProfile": profile})
    assert resp.status_code == 200
    body = resp.json()
    assert body["useBrowserSynthesis"] is True
    assert body["text"] == "hello"
    assert body["voiceSettings"]["pitch"] == 1.5
    assert body["voiceSettings"]["volume"] == 0.9
    assert vendor.requests == []


def test_synthesize_speech_streams_elevenlabs_audio(vendor, monkeypatch):
    monkeypatch.setenv("ELEVENLABS_API_KEY", ELEVEN_KEY)
    vendor.on("POST", "/text-to-speech/", content=b"mp3-bytes")
    client = TestClient(main.app)
    resp = client.post("/api/synthesize-speech", json={"text": "hello"})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "audio/mpeg"
    assert resp.headers["cache-control"] == "no-cache"
    assert resp.content == b"mp3-bytes"
    sent = vendor.calls("POST", "/text-to-speech/")[0]
    assert sent["url"].endswith(f"/text-to-speech/{main._default_voice}")
    assert sent["json"]["voice_settings"]["stability"] == 0.5


def test_synthesize_speech_falls_back_when_elevenlabs_fails(vendor, monkeypatch):
    monkeypatch.setenv("ELEVENLABS_API_KEY", ELEVEN_KEY)
    vendor.on("POST", "/text-to-speech/", status_code=500)
    client = TestClient(main.app)
    body = client.post("/api/synthesize-speech", json={"text": "hello"}).json()
    assert body["useBrowserSynthesis"] is True


def test_cloned_voice_synthesis_validates_input(vendor):
    client = TestClient(main.app)
    assert client.post("/api/synthesize-cloned-voice", json={"text": "hi"}).status_code == 400
    resp = client.post("/api/synthesize-cloned-voice", json={"text": "hi", "voiceId": "voice_missing"})
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Voice model not found"


def test_cloned_voice_synthesis_falls_back_to_tone(vendor):
    _store_voice()
    client = TestClient(main.app)
    resp = client.post("/api/synthesize-cloned-voice", json={"text": "hello", "voiceId": "voice_1"})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "audio/wav"
    assert resp.content[:4] == b"RIFF"
    assert vendor.calls("POST", "/synthesize")


def test_cloned_voice_synthesis_prefers_local_tts(vendor):
    _store_voice()
    vendor.on("POST", "/synthesize", content=b"tortoise-audio")
    client = TestClient(main.app)
    resp = client.post("/api/synthesize-cloned-voice", json={"text": "hello", "voiceId": "voice_1"})
    assert resp.content == b"tortoise-audio"
    assert resp.headers["content-type"] == "audio/mpeg"
    assert vendor.calls("POST", "/synthesize")[0]["json"] == {"text": "hello", "voice_id": "voice_1"}


def test_cloned_voice_synthesis_tries_coqui_first(vendor, monkeypatch):
    monkeypatch.setenv("COQUI_API_KEY", "coqui-key")
    _store_voice()
    vendor.on("POST", "/tts", content=b"coqui-audio")
    client = TestClient(main.app)
    resp = client.post("/api/synthesize-cloned-voice", json={"text": "hello", "voiceId": "voice_1"})
    assert resp.content == b"coqui-audio"
    sent = vendor.calls("POST", "/tts")[0]
    assert sent["headers"]["Authorization"] == "Bearer coqui-key"
    assert "voice_settings" in sent["json"]
    assert vendor.calls("POST", "/synthesize") == []


def test_voice_synthesis_by_path_id(vendor):
    client = TestClient(main.app)
    assert client.post("/api/voice-synthesis/any-voice", json={}).status_code == 400
    resp = client.post("/api/voice-synthesis/any-voice", json={"text": "hello"})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "audio/wav"
    assert resp.content[:4] == b"RIFF"
    assert vendor.calls("POST", "/synthesize")[0]["json"]["voice_id"] == "any-voice"
