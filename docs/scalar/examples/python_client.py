"""
Prompt API Python Examples

Calling the translation and poem operations from Python.
Requires: pip install httpx
"""

import json
import os
from typing import Dict, Iterator

import httpx

# Load API configuration
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:3000")

def get_headers() -> Dict[str, str]:
    """Get common request headers."""
    return {"Content-Type": "application/json"}

# =============================================================================
# TRANSLATION
# =============================================================================

def translate(text: str, input_language: str, output_language: str, chat: bool = False) -> str:
    """
    Translate text with the completion or the chat model.

    Args:
        text: Text to translate
        input_language: Language of the text (e.g. 'English')
        output_language: Language to translate into (e.g. 'French')
        chat: Use /chat-translate instead of /translate

    Returns:
        Translated text
    """
    route = "/chat-translate" if chat else "/translate"
    response = httpx.post(
        f"{API_BASE_URL}{route}",
        headers=get_headers(),
        json={
            "Input Language": input_language,
            "Output Language": output_language,
            "Text": text,
        },
        timeout=120.0,
    )
    response.raise_for_status()
    return response.json()["text"]

# =============================================================================
# STREAMED POEM
# =============================================================================

def stream_poem(topic: str) -> Iterator[str]:
    """
    Stream a short poem, yielding text chunks as they are generated.

    Each response line is a JSON object. A line with an ``error`` key means
    generation failed after streaming started.
    """
    with httpx.stream(
        "POST",
        f"{API_BASE_URL}/poem",
        headers=get_headers(),
        json={"Topic": topic},
        timeout=120.0,
    ) as response:
        response.raise_for_status()
        for line in response.iter_lines():
            if not line:
                continue
            payload = json.loads(line)
            if "error" in payload:
                raise RuntimeError(f"{payload.get('code')}: {payload['error']}")
            yield payload["text"]

# =============================================================================
# EXAMPLE USAGE
# =============================================================================

if __name__ == "__main__":
    print("Prompt API Examples\n")

    print("1. Translation")
    print(translate("Good morning, how are you?", "English", "French"), "\n")

    print("2. Chat translation")
    print(translate("See you tomorrow", "English", "Spanish", chat=True), "\n")

    print("3. Streamed poem")
    for chunk in stream_poem("the sea"):
        print(chunk, end="", flush=True)
    print()
