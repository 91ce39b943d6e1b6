import json
import re
from typing import Any, Dict, List

PERSONALITY_SYSTEM = (
    "You are an expert personality analyst and psychologist. Provide accurate, insightful personality "
    "analysis based on speech patterns and content. Always respond with valid JSON."
)

FALLBACK_ANALYSIS: Dict[str, Any] = {
    "description": (
        "Based on the speech sample, this person appears to have a conversational and engaging communication style."
    ),
    "traits": ["Articulate", "Confident", "Expressive", "Thoughtful", "Engaging"],
    "communicationStyle": "Clear and direct communication with good articulation",
    "confidence": 0.75,
}

FALLBACK_TRANSCRIPTION = (
    "Hello, this is a test transcription. I am speaking clearly and confidently. I enjoy having conversations "
    "and expressing my thoughts. I tend to be articulate and thoughtful in my communication style."
)

REPLY_SYSTEM = (
    "You are a helpful AI assistant that provides natural, conversational responses.\n"
    "Keep your responses concise and engaging (1-3 sentences).\n"
    "Be friendly and match the user's tone."
)

VAPI_ASSISTANT_PROMPT = (
    "You are a helpful AI assistant. Keep responses conversational, friendly, and concise since this is a "
    "voice conversation."
)

_EMOTIONS = {
    "happy": (
        "The user is feeling happy and content. Match their positive energy with an upbeat, cheerful tone. "
        "You can say things like 'I can see that you're happy!' or 'It's wonderful to see you in such good spirits!'"
    ),
    "sad": (
        "The user is feeling sad or down. Be extra compassionate and supportive. Acknowledge their feelings with "
        "phrases like 'I can see that you're feeling sad' or 'Don't be sad, I'm here for you' or "
        "'It's okay to feel this way.'"
    ),
    "angry": (
        "The user is feeling upset or frustrated. Stay calm and be patient. Acknowledge their feelings with "
        "phrases like 'I can see that you're angry' or 'I understand you're frustrated' or "
        "'Let's work through this together calmly.'"
    ),
    "fearful": (
        "The user is feeling anxious or worried. Be reassuring and calming. Say things like 'Don't be worried' "
        "or 'I can see you're concerned, but everything will be okay' or 'There's no need to be afraid.'"
    ),
    "disgusted": (
        "The user appears displeased or uncomfortable. Acknowledge their feelings with understanding, saying "
        "things like 'I can see that bothers you' or 'I understand your concern.'"
    ),
    "surprised": (
        "The user seems surprised or curious. Match their energy with phrases like 'I can see that surprised "
        "you!' or 'That's exciting, isn't it?'"
    ),
    "neutral": "The user has a neutral expression. Maintain a balanced, friendly tone that's warm and supportive.",
}
_EMOTION_DEFAULT = (
    "Adapt your tone naturally to the conversation flow, being warm and supportive. Acknowledge the user's "
    "emotions when appropriate."
)
_EMOTION_NONE = "The user's emotional state is neutral."

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def personality_prompt(transcription: str) -> str:
    return f"""
Analyze the following transcription and provide a detailed personality analysis.
Focus on communication style, emotional tone, personality traits, and speaking patterns.

Transcription: "{transcription}"

Please provide:
1. A comprehensive personality description (2-3 sentences)
2. 5-7 key personality traits
3. Communication style analysis
4. Confidence score (0-1) for the analysis accuracy

Format your response as JSON with the following structure:
{{
  "description": "Detailed personality description",
  "traits": ["trait1", "trait2", "trait3", "trait4", "trait5"],
  "communicationStyle": "Description of communication style",
  "confidence": 0.85
}}
"""


def parse_analysis(text: str | None) -> Dict[str, Any]:
    """Parse the model's JSON answer, tolerating a Markdown code fence."""
    body = (text or "").strip()
    m = _FENCE_RE.match(body)
    if m:
        body = m.group(1)
    try:
        parsed = json.loads(body)
    except (TypeError, ValueError):
        return dict(FALLBACK_ANALYSIS)
    if not isinstance(parsed, dict):
        return dict(FALLBACK_ANALYSIS)
    return parsed


def emotion_context(emotion: str | None) -> str:
    if not emotion:
        return _EMOTION_NONE
    return _EMOTIONS.get(emotion.lower(), _EMOTION_DEFAULT)


def conversation_history(messages: List[Dict[str, Any]]) -> str:
    lines = []
    for msg in messages:
        speaker = "Human" if msg.get("role") == "user" else "Assistant"
        lines.append(f"{speaker}: {msg.get('content', '')}")
    return "\n".join(lines)


def chat_system_prompt(personality: str, emotion: str | None, messages: List[Dict[str, Any]]) -> str:
    return f"""
You are a helpful AI assistant with a friendly and engaging personality.

Personality Profile: {personality}

{emotion_context(emotion)}

Full Conversation History:
{conversation_history(messages)}

Instructions:
- Be conversational, helpful, and engaging
- Keep responses natural and concise (1-3 sentences)
- Match the personality traits described in the profile
- Remember all previous messages in this conversation
- Naturally acknowledge and respond to the user's emotions when appropriate
- Use phrases like "I can see that you're [emotion]", "Don't worry", "I understand you're feeling [emotion]"
- Adjust your tone and approach based on the user's detected emotion
- Respond directly to what the user said
- Be authentic and personable in your responses
- Don't mention anything about voices, cloning, or audio technology

Respond naturally and helpfully with the appropriate emotional tone, acknowledging their feelings when appropriate.
"""
