from __future__ import annotations

import base64
import json
from typing import Any, Mapping
from urllib import request

from slideharvest.models import CredentialKind, Transport, VisionAttempt

DEFAULT_TIMEOUT_SECONDS = 45
DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"
MAX_OUTPUT_TOKENS = 200
ANTHROPIC_VERSION = "2023-06-01"

ROI_SYSTEM_PROMPT = "You are a vision assistant. Return ONLY JSON or null. No extra text."
ROI_USER_PROMPT = (
    "Find the rectangular region that contains the main slide content while excluding any live "
    "speaker video inset or webcam box. Reply with JSON: "
    '{"x":0-1,"y":0-1,"width":0-1,"height":0-1,"confidence":0-1}. If unsure, reply null.'
)

CREDENTIAL_ENV_VARS: dict[CredentialKind, tuple[str, ...]] = {
    CredentialKind.NONE: (),
    CredentialKind.OPENAI: ("OPENAI_API_KEY",),
    CredentialKind.ANTHROPIC: ("ANTHROPIC_API_KEY",),
    CredentialKind.GEMINI: ("GEMINI_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY", "GOOGLE_API_KEY"),
    CredentialKind.OPENROUTER: ("OPENROUTER_API_KEY",),
    CredentialKind.XAI: ("XAI_API_KEY",),
    CredentialKind.ZAI: ("Z_AI_API_KEY", "ZAI_API_KEY"),
}

DEFAULT_BASE_URLS: dict[CredentialKind, str] = {
    CredentialKind.OPENAI: "https://api.openai.com/v1",
    CredentialKind.ANTHROPIC: "https://api.anthropic.com",
    CredentialKind.GEMINI: "https://generativelanguage.googleapis.com/v1beta/openai",
    CredentialKind.OPENROUTER: "https://openrouter.ai/api/v1",
    CredentialKind.XAI: "https://api.x.ai/v1",
    CredentialKind.ZAI: "https://api.z.ai/api/paas/v4",
}


def build_roi_prompt() -> tuple[str, str]:
    """Return the (system, user) prompt pair for slide region detection."""

    return ROI_SYSTEM_PROMPT, ROI_USER_PROMPT


def lookup_credential(kind: CredentialKind, env: Mapping[str, str]) -> str | None:
    for name in CREDENTIAL_ENV_VARS[kind]:
        value = (env.get(name) or "").strip()
        if value:
            return value
    return None


def credential_available(kind: CredentialKind, env: Mapping[str, str]) -> bool:
    """Single availability check for every credential kind; local models need none."""

    return kind is CredentialKind.NONE or lookup_credential(kind, env) is not None


def request_vision_text(
    attempt: VisionAttempt,
    *,
    image_bytes: bytes,
    api_key: str | None,
    system_prompt: str = ROI_SYSTEM_PROMPT,
    user_prompt: str = ROI_USER_PROMPT,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ollama_endpoint: str = DEFAULT_OLLAMA_ENDPOINT,
) -> str:
    """Ask a vision model about one PNG image and return its raw text answer."""

    image_b64 = base64.b64encode(image_bytes).decode("ascii")

    if attempt.transport is Transport.OLLAMA:
        return _request_ollama(
            endpoint=attempt.base_url or ollama_endpoint,
            model=attempt.model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            image_b64=image_b64,
            timeout_seconds=timeout_seconds,
        )
    if attempt.transport is Transport.ANTHROPIC:
        return _request_anthropic(
            base_url=attempt.base_url or DEFAULT_BASE_URLS[CredentialKind.ANTHROPIC],
            model=attempt.model,
            api_key=api_key,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            image_b64=image_b64,
            timeout_seconds=timeout_seconds,
        )
    return _request_openai_chat(
        base_url=attempt.base_url or DEFAULT_BASE_URLS.get(attempt.credential, DEFAULT_BASE_URLS[CredentialKind.OPENAI]),
        model=attempt.model,
        api_key=api_key,
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        image_b64=image_b64,
        timeout_seconds=timeout_seconds,
    )


def _request_ollama(
    *,
    endpoint: str,
    model: str,
    system_prompt: str,
    user_prompt: str,
    image_b64: str,
    timeout_seconds: float,
) -> str:
    payload = _post_json(
        f"{endpoint.rstrip('/')}/api/generate",
        {
            "model": model,
            "system": system_prompt,
            "prompt": user_prompt,
            "images": [image_b64],
            "stream": False,
            "options": {"temperature": 0},
        },
        headers={},
        timeout_seconds=timeout_seconds,
    )
    content = payload.get("response")
    if not isinstance(content, str):
        raise ValueError("Ollama response missing text in 'response' field.")
    return content


def _request_openai_chat(
    *,
    base_url: str,
    model: str,
    api_key: str | None,
    system_prompt: str,
    user_prompt: str,
    image_b64: str,
    timeout_seconds: float,
) -> str:
    payload = _post_json(
        f"{base_url.rstrip('/')}/chat/completions",
        {
            "model": model,
            "temperature": 0,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "messages": [
                {"role": "system", "content": system_prompt},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": user_prompt},
                        {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{image_b64}"}},
                    ],
                },
            ],
        },
        headers={"Authorization": f"Bearer {api_key}"} if api_key else {},
        timeout_seconds=timeout_seconds,
    )
    content = payload["choices"][0]["message"]["content"]
    if isinstance(content, list):
        content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
    if not isinstance(content, str):
        raise ValueError("Chat completion response missing message content.")
    return content


def _request_anthropic(
    *,
    base_url: str,
    model: str,
    api_key: str | None,
    system_prompt: str,
    user_prompt: str,
    image_b64: str,
    timeout_seconds: float,
) -> str:
    payload = _post_json(
        f"{base_url.rstrip('/')}/v1/messages",
        {
            "model": model,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "temperature": 0,
            "system": system_prompt,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {"type": "base64", "media_type": "image/png", "data": image_b64},
                        },
                        {"type": "text", "text": user_prompt},
                    ],
                }
            ],
        },
        headers={"x-api-key": api_key or "", "anthropic-version": ANTHROPIC_VERSION},
        timeout_seconds=timeout_seconds,
    )
    blocks = payload.get("content") or []
    text = "".join(block.get("text", "") for block in blocks if isinstance(block, dict) and block.get("type") == "text")
    if not text:
        raise ValueError("Anthropic response contained no text blocks.")
    return text


def _post_json(url: str, body: dict[str, Any], *, headers: dict[str, str], timeout_seconds: float) -> dict[str, Any]:
    req = request.Request(
        url,
        data=json.dumps(body).encode("utf-8"),
        method="POST",
        headers={"Content-Type": "application/json", **headers},
    )

    with request.urlopen(req, timeout=timeout_seconds) as response:
        payload = json.loads(response.read().decode("utf-8"))

    if not isinstance(payload, dict):
        raise ValueError("Vision endpoint returned a non-object JSON payload.")
    return payload
