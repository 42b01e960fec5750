"""
Text-to-speech collaborator: synthesize(text, voice_id, provider, out_path) -> out_path.

Providers:
  polly       Amazon Polly (boto3), neural engine, mp3
  openai      OpenAI audio.speech (TTS_MODEL_OPENAI)
  elevenlabs  ElevenLabs REST API via requests (ELEVENLABS_API_KEY)
"""

import os
from pathlib import Path

import boto3
import requests
from openai import OpenAI

import config

TTS_PROVIDERS = ("polly", "openai", "elevenlabs")
TTS_MODEL_OPENAI = os.getenv("TTS_MODEL_OPENAI", "gpt-4o-mini-tts")
ELEVENLABS_MODEL = os.getenv("ELEVENLABS_MODEL", "eleven_multilingual_v2")
ELEVENLABS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
POLLY_ENGINE = os.getenv("POLLY_ENGINE", "neural")


def _polly(text: str, voice_id: str, out_path: Path) -> None:
    client = boto3.client("polly", region_name=config.AWS_REGION)
    response = client.synthesize_speech(Text=text, VoiceId=voice_id, OutputFormat="mp3", Engine=POLLY_ENGINE)
    stream = response["AudioStream"]
    try:
        out_path.write_bytes(stream.read())
    finally:
        stream.close()


def _openai(text: str, voice_id: str, out_path: Path) -> None:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ValueError("OPENAI_API_KEY not set in .env; required when TTS provider is 'openai'.")
    client = OpenAI(api_key=api_key)
    response = client.audio.speech.create(model=TTS_MODEL_OPENAI, voice=voice_id, input=text, response_format="mp3")
    out_path.write_bytes(response.content)


def _elevenlabs(text: str, voice_id: str, out_path: Path) -> None:
    api_key = os.getenv("ELEVENLABS_API_KEY")
    if not api_key:
        raise ValueError("ELEVENLABS_API_KEY not set in .env; required when TTS provider is 'elevenlabs'.")
    resp = requests.post(
        ELEVENLABS_URL.format(voice_id=voice_id),
        headers={"xi-api-key": api_key, "Accept": "audio/mpeg", "Content-Type": "application/json"},
        json={"text": text, "model_id": ELEVENLABS_MODEL},
        timeout=config.DOWNLOAD_TIMEOUT,
    )
    resp.raise_for_status()
    out_path.write_bytes(resp.content)


_SYNTHESIZERS = {
    "polly": _polly,
    "openai": _openai,
    "elevenlabs": _elevenlabs,
}


def synthesize(text: str, voice_id: str, provider: str | None, out_path) -> Path:
    """
    Write narration for `text` to out_path and return it.
    Raises ValueError on missing input or unknown provider; provider errors propagate.
    """
    provider = (provider or "").strip().lower()
    if not provider:
        raise ValueError("No TTS provider specified")
    if not text or not str(text).strip() or not voice_id or not out_path:
        raise ValueError("Missing input for synthesize (text, voice_id and out_path are required)")
    synth = _SYNTHESIZERS.get(provider)
    if synth is None:
        raise ValueError(f"Unknown TTS provider: {provider}. Use one of {', '.join(TTS_PROVIDERS)}.")
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    print(f"[AUDIO] {provider}/{voice_id}: \"{str(text)[:60]}\" -> {out_path.name}")
    synth(str(text).strip(), voice_id, out_path)
    return out_path
