"""
Text generation for the few pipeline steps that ask a model for a short phrase.
Dispatches to OpenAI or Google (Gemini) based on .env TEXT_PROVIDER.

.env variables:
  TEXT_PROVIDER      - "openai" or "google" (default: openai)
  TEXT_MODEL_OPENAI  - OpenAI chat model (default: gpt-4o-mini)
  TEXT_MODEL_GOOGLE  - Gemini model (default: gemini-2.0-flash)
  OPENAI_API_KEY     - Required for OpenAI
  GOOGLE_API_KEY     - Required for Google (GEMINI_API_KEY also supported)
"""

import os
from typing import Any

from dotenv import load_dotenv

load_dotenv()

TEXT_PROVIDER = os.getenv("TEXT_PROVIDER", "openai").lower()
TEXT_MODEL_OPENAI = os.getenv("TEXT_MODEL_OPENAI", "gpt-4o-mini")
TEXT_MODEL_GOOGLE = os.getenv("TEXT_MODEL_GOOGLE", "gemini-2.0-flash")


def get_text_model_display() -> str:
    """Return a short string for logging: provider / model (e.g. 'openai / gpt-4o-mini')."""
    prov = TEXT_PROVIDER.lower()
    model = TEXT_MODEL_OPENAI if prov == "openai" else TEXT_MODEL_GOOGLE
    return f"{prov} / {model}"


def _split_messages(messages: list[dict[str, str]]) -> tuple[str | None, str]:
    """Fold OpenAI-shaped messages into (system_instruction, contents) for Gemini."""
    system_parts: list[str] = []
    turns: list[str] = []
    for m in messages:
        role = (m.get("role") or "user").lower()
        content = (m.get("content") or "").strip()
        if not content:
            continue
        if role == "system":
            system_parts.append(content)
        else:
            turns.append(content if role == "user" else f"Assistant: {content}")
    system_instruction = "\n\n".join(system_parts) if system_parts else None
    return system_instruction, "\n\n".join(turns)


def _openai_text(messages, model_name: str, temperature: float, **kwargs: Any) -> str:
    if not os.getenv("OPENAI_API_KEY"):
        raise ValueError("OPENAI_API_KEY is not set. Set it in .env for OpenAI text.")
    from openai import OpenAI
    client = OpenAI()
    response = client.chat.completions.create(
        model=model_name,
        messages=messages,
        temperature=temperature,
        **kwargs,
    )
    return response.choices[0].message.content or ""


def _google_text(messages, model_name: str, temperature: float, **kwargs: Any) -> str:
    api_key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
    if not api_key:
        raise ValueError("GOOGLE_API_KEY or GEMINI_API_KEY is not set. Set one in .env for Google (Gemini) text.")
    from google import genai
    from google.genai import types
    client = genai.Client(api_key=api_key)
    system_instruction, contents = _split_messages(messages)
    config_kw: dict[str, Any] = {"temperature": temperature}
    if "max_tokens" in kwargs:
        config_kw["max_output_tokens"] = kwargs.pop("max_tokens")
    config = types.GenerateContentConfig(system_instruction=system_instruction, **config_kw)
    response = client.models.generate_content(model=model_name, contents=contents, config=config)
    if not response:
        raise RuntimeError("Google Gemini returned no response.")
    text = getattr(response, "text", None) or ""
    if not text and getattr(response, "candidates", None):
        parts = getattr(getattr(response.candidates[0], "content", None), "parts", None) or []
        if parts:
            text = getattr(parts[0], "text", None) or ""
    return text


def generate_text(
    messages: list[dict[str, str]],
    model: str | None = None,
    provider: str | None = None,
    temperature: float = 0.7,
    **kwargs: Any,
) -> str:
    """
    Generate text from messages using OpenAI or Google Gemini.

    Args:
        messages: List of {"role": "user"|"system"|"assistant", "content": str} (OpenAI shape).
        model: Model name; if None, use env TEXT_MODEL_OPENAI or TEXT_MODEL_GOOGLE.
        provider: "openai" or "google"; if None, use env TEXT_PROVIDER.
        temperature: Sampling temperature.
        **kwargs: Passed through (e.g. max_tokens, timeout for OpenAI).

    Returns:
        The assistant reply as a single string (may be empty).
    """
    prov = (provider or TEXT_PROVIDER).lower()
    if prov == "openai":
        return _openai_text(messages, model or TEXT_MODEL_OPENAI, temperature, **kwargs)
    if prov == "google":
        kwargs.pop("timeout", None)
        return _google_text(messages, model or TEXT_MODEL_GOOGLE, temperature, **kwargs)
    raise ValueError(
        f"TEXT_PROVIDER must be 'openai' or 'google'. Got: {prov}. "
        "Set TEXT_PROVIDER in .env or pass provider=."
    )
