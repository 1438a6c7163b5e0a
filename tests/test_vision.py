from __future__ import annotations

import base64

import pytest

import slideharvest.roi.vision as vision
from slideharvest.models import CredentialKind, Transport, VisionAttempt


def test_lookup_credential_checks_aliases_in_order() -> None:
    env = {"GOOGLE_GENERATIVE_AI_API_KEY": " g-key ", "GOOGLE_API_KEY": "other"}

    assert vision.lookup_credential(CredentialKind.GEMINI, env) == "g-key"
    assert vision.lookup_credential(CredentialKind.OPENAI, env) is None
    assert vision.lookup_credential(CredentialKind.ZAI, {"ZAI_API_KEY": "z"}) == "z"


def test_credential_available_for_local_models_without_env() -> None:
    assert vision.credential_available(CredentialKind.NONE, {}) is True
    assert vision.credential_available(CredentialKind.XAI, {"XAI_API_KEY": "   "}) is False


def test_request_vision_text_openai_chat_payload(monkeypatch) -> None:
    captured: dict[str, object] = {}

    def _post_json(url: str, body: dict, *, headers: dict, timeout_seconds: float) -> dict:
        captured.update(url=url, body=body, headers=headers, timeout_seconds=timeout_seconds)
        return {"choices": [{"message": {"content": '{"x":0,"y":0,"width":1,"height":1}'}}]}

    monkeypatch.setattr(vision, "_post_json", _post_json)

    text = vision.request_vision_text(
        VisionAttempt(model="gemini-2.0-flash", credential=CredentialKind.GEMINI),
        image_bytes=b"png-bytes",
        api_key="secret",
        timeout_seconds=12,
    )

    assert text.startswith('{"x"')
    assert captured["url"] == "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions"
    assert captured["headers"] == {"Authorization": "Bearer secret"}
    assert captured["timeout_seconds"] == 12
    image_part = captured["body"]["messages"][1]["content"][1]
    expected = base64.b64encode(b"png-bytes").decode("ascii")
    assert image_part["image_url"]["url"] == f"data:image/png;base64,{expected}"


def test_request_vision_text_anthropic_payload(monkeypatch) -> None:
    captured: dict[str, object] = {}

    def _post_json(url: str, body: dict, *, headers: dict, timeout_seconds: float) -> dict:
        captured.update(url=url, body=body, headers=headers)
        return {"content": [{"type": "text", "text": "null"}]}

    monkeypatch.setattr(vision, "_post_json", _post_json)

    text = vision.request_vision_text(
        VisionAttempt(model="claude-3-5-haiku-latest", transport=Transport.ANTHROPIC, credential=CredentialKind.ANTHROPIC),
        image_bytes=b"img",
        api_key="a-key",
    )

    assert text == "null"
    assert captured["url"] == "https://api.anthropic.com/v1/messages"
    assert captured["headers"]["x-api-key"] == "a-key"
    assert captured["headers"]["anthropic-version"] == "2023-06-01"
    assert captured["body"]["system"] == vision.ROI_SYSTEM_PROMPT


def test_request_vision_text_ollama_uses_endpoint(monkeypatch) -> None:
    captured: dict[str, object] = {}

    def _post_json(url: str, body: dict, *, headers: dict, timeout_seconds: float) -> dict:
        captured.update(url=url, body=body)
        return {"response": "null"}

    monkeypatch.setattr(vision, "_post_json", _post_json)

    vision.request_vision_text(
        VisionAttempt(model="qwen2.5vl:7b", transport=Transport.OLLAMA, credential=CredentialKind.NONE),
        image_bytes=b"img",
        api_key=None,
        ollama_endpoint="http://gpu-box:11434/",
    )

    assert captured["url"] == "http://gpu-box:11434/api/generate"
    assert captured["body"]["stream"] is False
    assert len(captured["body"]["images"]) == 1


def test_request_vision_text_rejects_missing_text(monkeypatch) -> None:
    monkeypatch.setattr(vision, "_post_json", lambda *_args, **_kwargs: {"content": []})

    with pytest.raises(ValueError, match="no text blocks"):
        vision.request_vision_text(
            VisionAttempt(model="claude", transport=Transport.ANTHROPIC, credential=CredentialKind.ANTHROPIC),
            image_bytes=b"img",
            api_key="k",
        )


def test_build_roi_prompt_asks_for_json_region() -> None:
    system_prompt, user_prompt = vision.build_roi_prompt()

    assert "ONLY JSON" in system_prompt
    assert '"width":0-1' in user_prompt
    assert "webcam" in user_prompt
