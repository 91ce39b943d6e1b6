import os
import time
import json
import base64
import math
import random
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Tuple

import httpx

from fastapi import FastAPI, HTTPException, Body, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, Response

from api_keys import (
    ApiKeyError,
    MissingApiKeyError,
    key_report,
    mask_key,
    resolve_key,
    validate_api_keys,
)
from prompts import (
    FALLBACK_TRANSCRIPTION,
    PERSONALITY_SYSTEM,
    REPLY_SYSTEM,
    VAPI_ASSISTANT_PROMPT,
    chat_system_prompt,
    parse_analysis,
    personality_prompt,
)
from voice_analysis import (
    analyze_characteristics,
    browser_voice_settings,
    calculate_quality,
    estimate_duration,
    mock_profile_features,
    model_features,
    simple_features,
    synthesize_tone,
)
from voice_models import VoiceModel, VoiceModelStore, new_voice_id, random_suffix

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("resona")

app = FastAPI(title="resona")
_started = time.time()
_groq_base = os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1")
_elevenlabs_base = os.getenv("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io/v1")
_anthropic_base = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com/v1")
_anthropic_version = "2023-06-01"
_coqui_base = os.getenv("COQUI_BASE_URL", "https://api.coqui.ai/v1")
_local_tts_base = os.getenv("LOCAL_TTS_BASE_URL", "http://localhost:8000")
_groq_stt_model = os.getenv("GROQ_STT_MODEL", "whisper-large-v3-turbo")
_groq_chat_model = os.getenv("GROQ_CHAT_MODEL", "llama-3.3-70b-versatile")
_groq_reply_model = os.getenv("GROQ_REPLY_MODEL", "llama-3.1-8b-instant")
_anthropic_model = os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-20241022")
_elevenlabs_tts_model = os.getenv("ELEVENLABS_TTS_MODEL", "eleven_multilingual_v2")
_default_voice = os.getenv("ELEVENLABS_DEFAULT_VOICE", "21m00Tcm4TlvDq8ikWAM")
_cleanup_enabled = os.getenv("ELEVENLABS_CLEANUP_ENABLED", "true").lower() in {"1", "true", "yes", "on"}
_cleanup_delay = float(os.getenv("ELEVENLABS_CLEANUP_DELAY", "2.0"))
_vendor_timeout = float(os.getenv("VENDOR_TIMEOUT", "30"))
_max_record_seconds = int(os.getenv("RESONA_MAX_RECORD_SECONDS", "30"))
_voice_models = VoiceModelStore()

# Bella, Rachel, Domi, Adam
_DEFAULT_VOICE_IDS = [
    "EXAVITQu4vr4xnSDxMaL",
    "21m00Tcm4TlvDq8ikWAM",
    "AZnzlk1XvdvUeBnXmlld",
    "pNInz6obpgDQGcFmaJgB",
]
_TEMP_VOICE_PREFIXES = ("UniqueVoice_", "TempVoice_")


class _VendorError(Exception):
    def __init__(self, vendor: str, status_code: int, detail: str = ""):
        super().__init__(f"{vendor} API error: {status_code}")
        self.vendor = vendor
        self.status_code = status_code
        self.detail = detail


def _ok(resp) -> bool:
    return 200 <= resp.status_code < 300


def _body_text(resp) -> str:
    try:
        return str(getattr(resp, "text", "") or "")[:500]
    except Exception:
        return ""


def _read_upload(audio: UploadFile | None) -> Tuple[bytes, str, str]:
    if audio is None:
        raise HTTPException(status_code=400, detail="No audio file provided")
    data = audio.file.read()
    filename = audio.filename or "audio.webm"
    content_type = audio.content_type or "application/octet-stream"
    logger.info("Received audio file name=%s type=%s size=%d", filename, content_type, len(data))
    return data, filename, content_type


def _groq_chat(key: str, model: str, system: str | None, prompt: str, max_tokens: int) -> str:
    messages: List[Dict[str, str]] = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})
    payload = {"model": model, "messages": messages, "max_tokens": max_tokens}
    with httpx.Client(timeout=_vendor_timeout) as client:
        resp = client.post(
            f"{_groq_base}/chat/completions",
            json=payload,
            headers={"Authorization": f"Bearer {key}", "Content-Type": "application/json"},
        )
    if not _ok(resp):
        raise _VendorError("Groq", resp.status_code, _body_text(resp))
    body = resp.json() or {}
    choices = body.get("choices") or [{}]
    return ((choices[0] or {}).get("message") or {}).get("content") or ""


def _anthropic_message(key: str, prompt: str, system: str | None = None, max_tokens: int = 1024) -> str:
    payload: Dict[str, Any] = {
        "model": _anthropic_model,
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": prompt}],
    }
    if system:
        payload["system"] = system
    with httpx.Client(timeout=_vendor_timeout) as client:
        resp = client.post(
            f"{_anthropic_base}/messages",
            json=payload,
            headers={
                "x-api-key": key,
                "anthropic-version": _anthropic_version,
                "Content-Type": "application/json",
            },
        )
    if not _ok(resp):
        raise _VendorError("Claude", resp.status_code, _body_text(resp))
    body = resp.json() or {}
    for block in body.get("content") or []:
        if isinstance(block, dict) and block.get("type", "text") == "text":
            return block.get("text") or ""
    return ""


def _elevenlabs_tts(key: str, voice_id: str, text: str, stability: float) -> bytes:
    payload = {
        "text": text,
        "model_id": _elevenlabs_tts_model,
        "voice_settings": {
            "stability": stability,
            "similarity_boost": 0.8,
            "style": 0.5,
            "use_speaker_boost": True,
        },
    }
    with httpx.Client(timeout=_vendor_timeout) as client:
        resp = client.post(
            f"{_elevenlabs_base}/text-to-speech/{voice_id}",
            json=payload,
            headers={"Accept": "audio/mpeg", "Content-Type": "application/json", "xi-api-key": key},
        )
    if not _ok(resp):
        raise _VendorError("ElevenLabs", resp.status_code, _body_text(resp))
    return resp.content


def _tts_data_url(text: str, voice_id: str) -> str | None:
    """Speak ``text`` in ``voice_id`` and inline it for the browser; None on any failure."""
    try:
        key = resolve_key("ELEVENLABS_API_KEY", "sk_")
    except ApiKeyError as exc:
        logger.warning("ElevenLabs key unavailable, skipping audio generation: %s", exc)
        return None
    try:
        logger.info("Calling ElevenLabs TTS with voice %s", voice_id)
        audio = _elevenlabs_tts(key, voice_id, text, stability=0.7)
    except _VendorError as exc:
        logger.warning("ElevenLabs TTS error: %s %s", exc.status_code, exc.detail)
        return None
    except Exception:
        logger.exception("ElevenLabs audio generation failed")
        return None
    if not audio:
        return None
    return "data:audio/mpeg;base64," + base64.b64encode(audio).decode("ascii")


@app.exception_handler(RequestValidationError)
def _invalid_body(request: Request, exc: RequestValidationError):
    logger.info("Rejected request body for %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"detail": "Invalid request body"})


@app.on_event("startup")
def _startup_check_keys():
    try:
        validate_api_keys()
    except MissingApiKeyError as exc:
        logger.warning("%s; affected routes will use fallbacks", exc)


@app.get("/health")
def health():
    return {"status": "ok", "service": "resona", "uptime": time.time() - _started}


@app.get("/readyz")
@app.get("/ready")
def ready():
    return {
        "ready": True,
        "checks": {
            "voice_models": len(_voice_models),
            "keys": key_report()["keysPresent"],
        },
    }


@app.post("/api/transcribe")
def transcribe(audio: UploadFile | None = File(None)):
    """Speech-to-text through Groq Whisper, with a canned transcript when Groq is unreachable."""
    data, filename, content_type = _read_upload(audio)
    try:
        key = resolve_key("GROQ_API_KEY", "gsk_")
    except MissingApiKeyError:
        logger.error("GROQ_API_KEY environment variable is not set")
        raise HTTPException(status_code=500, detail="API configuration error")
    except ApiKeyError:
        raise HTTPException(status_code=500, detail="API key decode error")
    try:
        with httpx.Client(timeout=_vendor_timeout) as client:
            resp = client.post(
                f"{_groq_base}/audio/transcriptions",
                headers={"Authorization": f"Bearer {key}"},
                data={"model": _groq_stt_model, "response_format": "json"},
                files={"file": (filename, data, content_type)},
            )
        if resp.status_code == 401:
            raise HTTPException(status_code=401, detail="Invalid Groq API key")
        if not _ok(resp):
            raise _VendorError("Groq", resp.status_code, _body_text(resp))
        result = resp.json() or {}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Transcription failed, using fallback transcription")
        return {"transcription": FALLBACK_TRANSCRIPTION, "language": "en", "duration": 10, "fallback": True}
    text = result.get("text") or "No transcription available"
    logger.info("Transcription successful: %s", text[:100])
    return {"transcription": text, "language": result.get("language") or "unknown", "duration": None}


@app.post("/api/test-transcribe")
def test_transcribe(audio: UploadFile | None = File(None)):
    data, filename, content_type = _read_upload(audio)
    has_key = bool(os.getenv("GROQ_API_KEY"))
    try:
        key = resolve_key("GROQ_API_KEY", "gsk_")
        key_valid = len(key) > 10 and key.startswith("gsk_")
    except ApiKeyError:
        key_valid = False
    return {
        "fileReceived": True,
        "fileName": filename,
        "fileType": content_type,
        "fileSize": len(data),
        "hasApiKey": has_key,
        "apiKeyValid": key_valid,
        "message": "Test endpoint working - file received successfully",
    }


@app.post("/api/analyze-personality")
def analyze_personality(body: Dict[str, Any] = Body(...)):
    transcription = body.get("transcription")
    if not isinstance(transcription, str) or not transcription.strip():
        raise HTTPException(status_code=400, detail="No transcription provided")
    try:
        key = resolve_key("ANTHROPIC_API_KEY", "sk-ant-")
    except MissingApiKeyError:
        logger.error("ANTHROPIC_API_KEY environment variable is not set")
        raise HTTPException(status_code=500, detail="Claude API key not configured")
    except ApiKeyError:
        raise HTTPException(status_code=500, detail="API key decode error")
    logger.info("Analyzing personality with Claude")
    try:
        text = _anthropic_message(key, personality_prompt(transcription), system=PERSONALITY_SYSTEM)
    except _VendorError as exc:
        logger.error("Personality analysis failed: %s %s", exc.status_code, exc.detail)
        if exc.status_code == 401:
            raise HTTPException(status_code=401, detail="Invalid Claude API key")
        raise HTTPException(status_code=500, detail="Failed to analyze personality")
    except Exception:
        logger.exception("Personality analysis failed")
        raise HTTPException(status_code=500, detail="Failed to analyze personality")
    return parse_analysis(text)


@app.post("/api/analyze-voice")
def analyze_voice(audio: UploadFile | None = File(None)):
    data, _, content_type = _read_upload(audio)
    analysis = analyze_characteristics(data, content_type)
    return {
        "success": True,
        "analysis": analysis,
        "audioSize": len(data),
        "duration": estimate_duration(len(data), content_type),
    }


def _coerce_audio(audio_data: Any) -> bytes:
    if not isinstance(audio_data, list):
        return b""
    return bytes(
        int(v) & 0xFF
        for v in audio_data
        if isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
    )


@app.post("/api/create-voice-model")
def create_voice_model(body: Dict[str, Any] = Body(...)):
    audio_data = body.get("audioData")
    analysis = body.get("analysis")
    if audio_data is None or not isinstance(analysis, dict):
        raise HTTPException(status_code=400, detail="Missing audio data or analysis")
    logger.info("Creating voice model with analysis keys %s", sorted(analysis.keys()))
    model = _voice_models.put(
        VoiceModel(
            voice_id=new_voice_id(),
            features=model_features(analysis),
            audio_data=_coerce_audio(audio_data),
            quality=calculate_quality(analysis),
        )
    )
    logger.info("Voice model created: %s", model.voice_id)
    return {"success": True, "voiceId": model.voice_id, "features": model.features, "quality": model.quality}


@app.post("/api/simple-voice-clone")
def simple_voice_clone(audio: UploadFile | None = File(None)):
    data, filename, _ = _read_upload(audio)
    model = _voice_models.put(
        VoiceModel(
            voice_id=f"simple_voice_{int(time.time() * 1000)}",
            features=simple_features(),
            audio_data=data,
            simple=True,
            name=filename,
        )
    )
    logger.info("Simple voice clone created: %s", model.voice_id)
    return {
        "success": True,
        "voiceId": model.voice_id,
        "features": model.features,
        "message": "Voice clone created successfully",
    }


def _fallback_voice(voice_name: str, message: str | None = None, pick_random: bool = False) -> Dict[str, Any]:
    voice_id = random.choice(_DEFAULT_VOICE_IDS) if pick_random else _DEFAULT_VOICE_IDS[0]
    logger.warning("Using fallback voice %s", voice_id)
    out: Dict[str, Any] = {"success": True, "voiceId": voice_id, "voiceName": voice_name, "isFallback": True}
    if message:
        out["message"] = message
    return out


def _cleanup_temp_voices(client, key: str) -> int:
    """Delete earlier session clones so the account stays under its voice quota."""
    headers = {"xi-api-key": key}
    try:
        resp = client.get(f"{_elevenlabs_base}/voices", headers=headers)
        if not _ok(resp):
            logger.warning("Listing ElevenLabs voices failed: %s", resp.status_code)
            return 0
        voices = (resp.json() or {}).get("voices") or []
        stale = [
            v for v in voices
            if isinstance(v, dict)
            and (str(v.get("name") or "").startswith(_TEMP_VOICE_PREFIXES) or v.get("category") == "cloned")
        ]
        if not stale:
            return 0

        def _delete(voice: Dict[str, Any]):
            name = voice.get("name")
            try:
                r = client.delete(f"{_elevenlabs_base}/voices/{voice.get('voice_id')}", headers=headers)
                logger.info("Deleted voice %s: %s", name, r.status_code)
                return r.status_code
            except Exception as exc:
                logger.warning("Failed to delete voice %s: %s", name, exc)
                return None

        with ThreadPoolExecutor(max_workers=min(8, len(stale))) as pool:
            list(pool.map(_delete, stale))
        if _cleanup_delay > 0:
            time.sleep(_cleanup_delay)
        return len(stale)
    except Exception as exc:
        logger.warning("Voice cleanup failed, continuing with cloning: %s", exc)
        return 0


@app.post("/api/clone-voice")
def clone_voice(audio: UploadFile | None = File(None)):
    """Clone the uploaded sample on ElevenLabs; any failure degrades to a stock voice."""
    data, filename, content_type = _read_upload(audio)
    try:
        key = resolve_key("ELEVENLABS_API_KEY", "sk_")
    except ApiKeyError as exc:
        logger.error("ElevenLabs key unavailable: %s", exc)
        return _fallback_voice("Default Voice (API Unavailable)")
    logger.info("Starting voice cloning process")
    try:
        with httpx.Client(timeout=_vendor_timeout) as client:
            if _cleanup_enabled:
                _cleanup_temp_voices(client, key)
            voice_name = f"UniqueVoice_{int(time.time() * 1000)}_{random_suffix(6)}"
            logger.info("Creating voice clone with name %s", voice_name)
            resp = client.post(
                f"{_elevenlabs_base}/voices/add",
                headers={"xi-api-key": key},
                data={"name": voice_name, "description": "Temporary voice clone for chat session"},
                files={"files": (filename, data, content_type)},
            )
            logger.info("ElevenLabs clone response: %s", resp.status_code)
            if not _ok(resp):
                raise _VendorError("ElevenLabs", resp.status_code, _body_text(resp))
            result = resp.json() or {}
        voice_id = result.get("voice_id")
        if not voice_id:
            raise ValueError("clone response carried no voice_id")
    except Exception:
        logger.exception("Voice cloning failed")
        return _fallback_voice(
            "Default Voice (Cloning Unavailable)",
            message="Voice cloning is temporarily unavailable. Using a default voice instead.",
            pick_random=True,
        )
    logger.info("Voice cloned successfully: %s", voice_id)
    return {"success": True, "voiceId": voice_id, "voiceName": voice_name, "isFallback": False}


def _clone_with_coqui(data: bytes) -> str | None:
    coqui_key = os.getenv("COQUI_API_KEY")
    if not coqui_key:
        return None
    try:
        with httpx.Client(timeout=_vendor_timeout) as client:
            resp = client.post(
                f"{_coqui_base}/voices/clone",
                content=data,
                headers={"Content-Type": "application/octet-stream", "Authorization": f"Bearer {coqui_key}"},
            )
        if _ok(resp):
            return (resp.json() or {}).get("voice_id")
    except Exception as exc:
        logger.info("Coqui clone unavailable: %s", exc)
    return None


def _clone_with_tortoise(data: bytes) -> str | None:
    try:
        with httpx.Client(timeout=_vendor_timeout) as client:
            resp = client.post(
                f"{_local_tts_base}/clone-voice",
                content=data,
                headers={"Content-Type": "application/octet-stream"},
            )
        if _ok(resp):
            return (resp.json() or {}).get("voice_id")
    except Exception as exc:
        logger.info("Tortoise clone unavailable: %s", exc)
    return None


@app.post("/api/clone-voice-alternative")
def clone_voice_alternative(audio: UploadFile | None = File(None)):
    data, filename, _ = _read_upload(audio)
    for provider, clone in (("coqui", _clone_with_coqui), ("tortoise", _clone_with_tortoise)):
        voice_id = clone(data)
        if voice_id:
            _voice_models.put(
                VoiceModel(
                    voice_id=voice_id,
                    features=mock_profile_features(),
                    audio_data=data,
                    name=filename,
                    provider=provider,
                )
            )
            return {"voiceId": voice_id, "provider": provider, "status": "success"}
    model = _voice_models.put(
        VoiceModel(voice_id=new_voice_id(), features=mock_profile_features(), audio_data=data, name=filename)
    )
    logger.info("Created local voice profile %s", model.voice_id)
    profile = {
        "id": model.voice_id,
        "name": filename,
        "created": model.created,
        "audioSize": len(data),
        "features": model.features,
    }
    return {"voiceId": model.voice_id, "provider": "local", "status": "success", "profile": profile}


@app.post("/api/chat")
def chat(body: Dict[str, Any] = Body(...)):
    """One conversational turn: Groq writes the reply, ElevenLabs optionally speaks it."""
    messages = body.get("messages")
    personality = body.get("personality")
    if not messages or not personality or not isinstance(messages, list):
        raise HTTPException(status_code=400, detail="Missing required parameters")
    messages = [m for m in messages if isinstance(m, dict)]
    if not messages:
        raise HTTPException(status_code=400, detail="Missing required parameters")
    voice_id = body.get("voiceId") if isinstance(body.get("voiceId"), str) else None
    emotion = body.get("emotion") if isinstance(body.get("emotion"), str) else None
    logger.info("Chat request voice=%s emotion=%s", voice_id, emotion)
    try:
        key = resolve_key("GROQ_API_KEY", "gsk_")
    except ApiKeyError as exc:
        logger.error("Groq key unavailable: %s", exc)
        raise HTTPException(status_code=500, detail="Groq API key not configured")
    try:
        reply = _groq_chat(
            key,
            _groq_chat_model,
            chat_system_prompt(str(personality), emotion, messages),
            str(messages[-1].get("content") or ""),
            max_tokens=150,
        )
    except _VendorError as exc:
        logger.error("Chat completion failed: %s %s", exc.status_code, exc.detail)
        if exc.status_code == 401:
            raise HTTPException(status_code=401, detail="Invalid Groq API key")
        raise HTTPException(status_code=500, detail="Failed to generate response")
    except Exception:
        logger.exception("Chat completion failed")
        raise HTTPException(status_code=500, detail="Failed to generate response")

    is_mock = bool(voice_id) and voice_id.startswith("mock-voice-")
    audio_url = None
    if body.get("audioEnabled") and voice_id and not is_mock:
        audio_url = _tts_data_url(reply, voice_id)
    return {"message": reply, "audioUrl": audio_url, "voiceId": None if is_mock else voice_id}


@app.post("/api/chat-response")
def chat_response(body: Dict[str, Any] = Body(...)):
    message = body.get("message")
    if not isinstance(message, str) or not message:
        raise HTTPException(status_code=400, detail="Message is required")
    try:
        key = resolve_key("GROQ_API_KEY", "gsk_")
    except MissingApiKeyError:
        raise HTTPException(status_code=500, detail="Groq API key not configured")
    except ApiKeyError:
        raise HTTPException(status_code=500, detail="API key decode error")
    try:
        reply = _groq_chat(key, _groq_reply_model, REPLY_SYSTEM, message, max_tokens=150)
    except _VendorError as exc:
        if exc.status_code == 401:
            raise HTTPException(status_code=401, detail="Invalid Groq API key")
        raise HTTPException(status_code=500, detail="Failed to generate response")
    except Exception:
        logger.exception("Chat response failed")
        raise HTTPException(status_code=500, detail="Failed to generate response")
    return {"response": reply}


@app.post("/api/synthesize-speech")
def synthesize_speech(body: Dict[str, Any] = Body(...)):
    text = body.get("text")
    if not isinstance(text, str) or not text:
        raise HTTPException(status_code=400, detail="No text provided")
    voice_profile = body.get("voiceProfile") if isinstance(body.get("voiceProfile"), dict) else None
    if os.getenv("ELEVENLABS_API_KEY"):
        try:
            key = resolve_key("ELEVENLABS_API_KEY", "sk_")
            audio = _elevenlabs_tts(key, _default_voice, text, stability=0.5)
            if audio:
                return Response(content=audio, media_type="audio/mpeg", headers={"Cache-Control": "no-cache"})
        except Exception as exc:
            logger.warning("ElevenLabs synthesis failed, using browser synthesis: %s", exc)
    return {"useBrowserSynthesis": True, "text": text, "voiceSettings": browser_voice_settings(voice_profile)}


def _synthesize_with_coqui(text: str, voice_id: str, with_settings: bool) -> bytes | None:
    coqui_key = os.getenv("COQUI_API_KEY")
    if not coqui_key:
        return None
    payload: Dict[str, Any] = {
        "text": text,
        "voice_id": voice_id,
        "model": "tts_models/multilingual/multi-dataset/xtts_v2",
    }
    if with_settings:
        payload["voice_settings"] = {"stability": 0.7, "similarity_boost": 0.8, "style": 0.5}
    try:
        with httpx.Client(timeout=_vendor_timeout) as client:
            resp = client.post(
                f"{_coqui_base}/tts",
                json=payload,
                headers={"Content-Type": "application/json", "Authorization": f"Bearer {coqui_key}"},
            )
        if _ok(resp) and resp.content:
            return resp.content
    except Exception as exc:
        logger.info("Coqui synthesis unavailable: %s", exc)
    return None


def _synthesize_with_local_tts(text: str, voice_id: str) -> bytes | None:
    try:
        with httpx.Client(timeout=_vendor_timeout) as client:
            resp = client.post(f"{_local_tts_base}/synthesize", json={"text": text, "voice_id": voice_id})
        if _ok(resp) and resp.content:
            return resp.content
    except Exception as exc:
        logger.info("Local TTS unavailable: %s", exc)
    return None


def _synthesize(text: str, voice_id: str, model: VoiceModel | None) -> Tuple[bytes, str]:
    audio = _synthesize_with_coqui(text, voice_id, with_settings=model is not None)
    if not audio:
        audio = _synthesize_with_local_tts(text, voice_id)
    if audio:
        return audio, "audio/mpeg"
    logger.info("All TTS backends unavailable for %s, rendering fallback tone", voice_id)
    if model is None:
        return synthesize_tone(text), "audio/wav"
    pitch = model.features.get("pitch")
    speed = model.features.get("speed")
    pitch = float(pitch) if isinstance(pitch, (int, float)) and pitch > 0 else 150.0
    speed = float(speed) if isinstance(speed, (int, float)) and speed > 0 else 1.0
    return synthesize_tone(text, pitch=pitch, speed=speed), "audio/wav"


@app.post("/api/synthesize-cloned-voice")
def synthesize_cloned_voice(body: Dict[str, Any] = Body(...)):
    text = body.get("text")
    voice_id = body.get("voiceId")
    if not isinstance(text, str) or not text or not isinstance(voice_id, str) or not voice_id:
        raise HTTPException(status_code=400, detail="Missing text or voiceId")
    model = _voice_models.get(voice_id)
    if model is None:
        logger.error("Voice model not found: %s", voice_id)
        raise HTTPException(status_code=404, detail="Voice model not found")
    logger.info("Synthesizing with cloned voice %s: %s", voice_id, text[:100])
    audio, media_type = _synthesize(text, voice_id, model)
    return Response(content=audio, media_type=media_type, headers={"Cache-Control": "no-cache"})


@app.post("/api/voice-synthesis/{voice_id}")
def voice_synthesis(voice_id: str, body: Dict[str, Any] = Body(...)):
    text = body.get("text")
    if not isinstance(text, str) or not text:
        raise HTTPException(status_code=400, detail="No text provided")
    logger.info("Synthesizing speech for voice %s: %s", voice_id, text[:100])
    audio, media_type = _synthesize(text, voice_id, None)
    return Response(content=audio, media_type=media_type)


@app.post("/api/test-voice-synthesis")
def test_voice_synthesis(body: Dict[str, Any] = Body(...)):
    voice_id = body.get("voiceId")
    text = body.get("text")
    if not isinstance(voice_id, str) or not voice_id or not isinstance(text, str) or not text:
        raise HTTPException(status_code=400, detail="Missing voiceId or text")
    model = _voice_models.get(voice_id)
    if model is None:
        raise HTTPException(status_code=404, detail="Voice model not found")
    return {
        "success": True,
        "voiceId": voice_id,
        "textLength": len(text),
        "estimatedDuration": len(text) * 0.1,
        "quality": model.quality,
        "features": model.features,
        "model": model.summary(),
    }


def _diagnostic_key(env_name: str, prefix: str) -> str:
    """Resolve for diagnostics: undecodable values are tried raw rather than rejected."""
    try:
        return resolve_key(env_name, prefix)
    except MissingApiKeyError:
        raise
    except ApiKeyError:
        return (os.getenv(env_name) or "").strip()


@app.get("/api/test-claude")
def test_claude():
    try:
        key = _diagnostic_key("ANTHROPIC_API_KEY", "sk-ant-")
    except MissingApiKeyError:
        return {"success": False, "error": "ANTHROPIC_API_KEY environment variable is not set"}
    logger.info("Testing Claude API connection with key %s", mask_key(key))
    try:
        text = _anthropic_message(key, "Say hello! This is a test.", max_tokens=50)
    except _VendorError as exc:
        return {
            "success": False,
            "error": f"Claude API error: {exc.status_code}",
            "details": exc.detail,
            "keyUsed": mask_key(key),
        }
    except Exception as exc:
        logger.exception("Claude test failed")
        return {"success": False, "error": "Test failed", "details": str(exc)}
    return {
        "success": True,
        "message": "Claude API is working!",
        "testResponse": text,
        "model": _anthropic_model,
        "keyUsed": mask_key(key),
    }


@app.get("/api/test-groq")
def test_groq():
    try:
        key = _diagnostic_key("GROQ_API_KEY", "gsk_")
    except MissingApiKeyError:
        return {"success": False, "error": "GROQ_API_KEY environment variable is not set"}
    logger.info("Testing Groq API connection with key %s", mask_key(key))
    try:
        text = _groq_chat(key, _groq_chat_model, None, "Say hello! This is a test.", max_tokens=50)
    except _VendorError as exc:
        return {
            "success": False,
            "error": f"Groq API error: {exc.status_code}",
            "details": exc.detail,
            "keyUsed": mask_key(key),
        }
    except Exception as exc:
        logger.exception("Groq test failed")
        return {"success": False, "error": "Test failed", "details": str(exc)}
    return {
        "success": True,
        "message": "Groq API is working!",
        "testResponse": text,
        "model": _groq_chat_model,
        "keyUsed": mask_key(key),
    }


def _elevenlabs_voice_check() -> Dict[str, Any] | None:
    try:
        key = resolve_key("ELEVENLABS_API_KEY", "sk_")
    except MissingApiKeyError:
        return None
    except ApiKeyError as exc:
        return {"status": "error", "message": str(exc)}
    try:
        with httpx.Client(timeout=_vendor_timeout) as client:
            resp = client.get(f"{_elevenlabs_base}/voices", headers={"xi-api-key": key})
        if not _ok(resp):
            return {"status": "error", "message": f"HTTP {resp.status_code}"}
        voices = (resp.json() or {}).get("voices") or []
        return {"status": "success", "voiceCount": len(voices)}
    except Exception as exc:
        return {"status": "error", "message": str(exc)}


@app.post("/api/test-integration")
def test_integration():
    timestamp = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    try:
        key = resolve_key("GROQ_API_KEY", "gsk_")
    except ApiKeyError:
        raise HTTPException(status_code=400, detail="GROQ_API_KEY not found")
    try:
        text = _groq_chat(key, _groq_chat_model, None, "Say hello and confirm you're working!", max_tokens=50)
    except Exception as exc:
        logger.error("Integration test failed: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"groq": {"status": "error", "error": str(exc)}, "timestamp": timestamp},
        )
    return {
        "groq": {"status": "success", "response": text, "model": _groq_chat_model},
        "elevenlabs": _elevenlabs_voice_check(),
        "timestamp": timestamp,
    }


@app.get("/api/validate-keys")
def validate_keys():
    return key_report()


@app.post("/api/vapi/webhook")
def vapi_webhook(body: Dict[str, Any] = Body(...)):
    kind = body.get("type")
    logger.info("VAPI webhook received: %s", kind)
    if kind == "function-call":
        return {"result": "Function executed successfully"}
    if kind == "assistant-request":
        if not os.getenv("ANTHROPIC_API_KEY"):
            raise HTTPException(status_code=500, detail="Claude API not configured")
        return {
            "assistant": {
                "model": {
                    "provider": "openai",
                    "model": "gpt-3.5-turbo",
                    "messages": [{"role": "system", "content": VAPI_ASSISTANT_PROMPT}],
                },
            },
        }
    if kind == "end-of-call-report":
        logger.info("Call ended: %s", body.get("call"))
    else:
        logger.info("Unhandled webhook type: %s", kind)
    return {"success": True}


@app.get("/", response_class=HTMLResponse)
def studio_ui():
    """
    Single-page studio: record or upload a sample, clone it, then chat with the clone.
    """
    return """
    <html>
      <head>
        <title>Resona Voice Studio</title>
        <style>
          html, body { margin: 0; padding: 0; }
          body { font-family: 'Inter', system-ui, sans-serif; background: #0b1020; color: #e2e8f0; }
          main { max-width: 880px; margin: 0 auto; padding: 32px; display: grid; gap: 16px; }
          .panel { background: rgba(255,255,255,0.04); border: 1px solid rgba(255,255,255,0.08); border-radius: 16px; padding: 16px; }
          .panel h2 { margin: 0 0 8px 0; font-size: 16px; color: #c7d2fe; }
          .pill { background: rgba(255,255,255,0.06); border: 1px solid rgba(255,255,255,0.1); padding: 6px 14px; border-radius: 999px; color: #cbd5e1; cursor: pointer; }
          .pill:disabled { opacity: 0.4; cursor: default; }
          #chat-log { min-height: 160px; max-height: 360px; overflow: auto; line-height: 1.5; }
          .msg-user { color: #93c5fd; }
          .msg-assistant { color: #e2e8f0; }
          .traits span { display: inline-block; margin: 2px 4px 2px 0; padding: 2px 10px; border-radius: 999px; background: rgba(99,102,241,0.2); }
          input[type=text] { width: 70%; padding: 8px; border-radius: 8px; border: 1px solid #334155; background: #0f172a; color: #e2e8f0; }
        </style>
      </head>
      <body>
        <main role="main">
          <section class="panel" aria-labelledby="sample-heading">
            <h2 id="sample-heading">Voice Sample</h2>
            <button id="rec-toggle" class="pill" type="button">Start Recording</button>
            <input id="file-input" type="file" accept="audio/*" />
            <button id="clone-btn" class="pill" type="button" disabled>Analyze &amp; Clone</button>
            <div id="status">Status: idle</div>
            <audio id="sample-audio" controls></audio>
          </section>
          <section class="panel" aria-labelledby="personality-heading">
            <h2 id="personality-heading">Personality</h2>
            <div id="transcript"></div>
            <p id="description"></p>
            <div id="traits" class="traits"></div>
          </section>
          <section class="panel" aria-labelledby="chat-heading">
            <h2 id="chat-heading">Chat</h2>
            <div id="chat-log">Clone a voice to start chatting.</div>
            <form id="chat-form">
              <input id="chat-input" type="text" placeholder="Say something…" disabled />
              <label><input id="audio-enabled" type="checkbox" checked /> speak replies</label>
              <button class="pill" type="submit" id="chat-send" disabled>Send</button>
            </form>
            <audio id="reply-audio"></audio>
          </section>
        </main>
        <script>
          const MAX_RECORD_MS = """ + json.dumps(_max_record_seconds * 1000) + """;
          const statusEl = document.getElementById('status');
          const recToggle = document.getElementById('rec-toggle');
          const fileInput = document.getElementById('file-input');
          const cloneBtn = document.getElementById('clone-btn');
          const sampleAudio = document.getElementById('sample-audio');
          const chatLog = document.getElementById('chat-log');
          const chatForm = document.getElementById('chat-form');
          const chatInput = document.getElementById('chat-input');
          const chatSend = document.getElementById('chat-send');
          const replyAudio = document.getElementById('reply-audio');
          let sampleBlob = null;
          let sampleName = 'voice-sample.webm';
          let recorder = null;
          let chunks = [];
          let stopTimer = null;
          let personality = '';
          let voiceId = null;
          let messages = [];

          function escapeHtml(str) {
            return String(str)
              .replace(/&/g, '&amp;')
              .replace(/</g, '&lt;')
              .replace(/>/g, '&gt;')
              .replace(/"/g, '&quot;')
              .replace(/'/g, '&#39;');
          }
          function setStatus(text) { statusEl.textContent = `Status: ${text}`; }
          function setSample(blob, name) {
            sampleBlob = blob;
            sampleName = name;
            sampleAudio.src = URL.createObjectURL(blob);
            cloneBtn.disabled = false;
          }
          function renderChat() {
            chatLog.innerHTML = messages.map(m =>
              `<div class="msg-${m.role}"><strong>${m.role === 'user' ? 'You' : 'Clone'}:</strong> ${escapeHtml(m.content)}</div>`
            ).join('');
            chatLog.scrollTop = chatLog.scrollHeight;
          }

          async function startRecording() {
            try {
              const stream = await navigator.mediaDevices.getUserMedia({ audio: true });
              chunks = [];
              recorder = new MediaRecorder(stream, { mimeType: 'audio/webm' });
              recorder.ondataavailable = (evt) => { if (evt.data && evt.data.size > 0) chunks.push(evt.data); };
              recorder.onstop = () => {
                stream.getTracks().forEach(t => t.stop());
                if (chunks.length) setSample(new Blob(chunks, { type: 'audio/webm' }), 'voice-sample.webm');
                recorder = null;
                recToggle.textContent = 'Start Recording';
                setStatus('sample recorded');
              };
              recorder.start();
              recToggle.textContent = 'Stop Recording';
              setStatus('recording…');
              stopTimer = setTimeout(stopRecording, MAX_RECORD_MS);
            } catch (e) {
              setStatus('microphone permission denied');
            }
          }
          function stopRecording() {
            clearTimeout(stopTimer);
            if (recorder && recorder.state === 'recording') recorder.stop();
          }
          recToggle.addEventListener('click', () => recorder ? stopRecording() : startRecording());
          fileInput.addEventListener('change', () => {
            const f = fileInput.files && fileInput.files[0];
            if (f) { setSample(f, f.name); setStatus('sample uploaded'); }
          });

          function sampleForm() {
            const form = new FormData();
            form.append('audio', sampleBlob, sampleName);
            return form;
          }
          async function postJson(url, payload) {
            const res = await fetch(url, {
              method: 'POST',
              headers: { 'Content-Type': 'application/json' },
              body: JSON.stringify(payload),
            });
            if (!res.ok) throw new Error(`${url} failed (${res.status})`);
            return res.json();
          }

          cloneBtn.addEventListener('click', async () => {
            if (!sampleBlob) return;
            cloneBtn.disabled = true;
            try {
              setStatus('transcribing…');
              const tRes = await fetch('/api/transcribe', { method: 'POST', body: sampleForm() });
              if (!tRes.ok) throw new Error(`transcription failed (${tRes.status})`);
              const t = await tRes.json();
              document.getElementById('transcript').textContent = t.transcription || '';
              setStatus('analyzing personality…');
              const analysis = await postJson('/api/analyze-personality', { transcription: t.transcription });
              personality = analysis.description || '';
              document.getElementById('description').textContent = personality;
              document.getElementById('traits').innerHTML = (analysis.traits || []).map(tr => `<span>${escapeHtml(tr)}</span>`).join('');
              setStatus('cloning voice…');
              const cRes = await fetch('/api/clone-voice', { method: 'POST', body: sampleForm() });
              const clone = await cRes.json();
              voiceId = clone.voiceId;
              setStatus(clone.isFallback ? `using ${clone.voiceName}` : 'voice cloned');
              messages = [];
              chatLog.textContent = 'Say hello to your clone.';
              chatInput.disabled = false;
              chatSend.disabled = false;
            } catch (e) {
              setStatus(e.message);
            } finally {
              cloneBtn.disabled = false;
            }
          });

          chatForm.addEventListener('submit', async (evt) => {
            evt.preventDefault();
            const text = chatInput.value.trim();
            if (!text) return;
            chatInput.value = '';
            messages.push({ role: 'user', content: text });
            renderChat();
            try {
              const data = await postJson('/api/chat', {
                messages,
                personality,
                voiceId,
                audioEnabled: document.getElementById('audio-enabled').checked,
              });
              messages.push({ role: 'assistant', content: data.message });
              renderChat();
              if (data.audioUrl) {
                replyAudio.src = data.audioUrl;
                replyAudio.play().catch(() => {});
              }
            } catch (e) {
              setStatus(e.message);
            }
          });
        </script>
      </body>
    </html>
    """


def run():
    import uvicorn

    uvicorn.run(app, host=os.getenv("RESONA_HOST", "0.0.0.0"), port=int(os.getenv("RESONA_PORT", "3000")))


if __name__ == "__main__":
    run()
