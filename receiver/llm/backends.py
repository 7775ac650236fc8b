"""
LLM backend adapters.

Every backend exposes the same small contract (`Backend`): an identity
(`name`, `type`, `model`), `prepare_request` to apply per-backend overrides, and
`complete` to run one call. Backends are built once at startup from
`LLM_BACKENDS_JSON` through the `BACKEND_FAMILIES` registry; construction fails
fast on missing model/credentials/region so misconfiguration never reaches a job.

Families:
- openai: chat-completions over HTTPS, bearer key read from the env var named by `api_key_env`
- ollama: local chat endpoint, same message shape, no credential
- bedrock: AWS Bedrock `invoke_model` with the Anthropic messages envelope
"""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Callable, Dict, List, Protocol, Sequence, runtime_checkable

import requests

from receiver.config import BackendConfig
from receiver.core.errors import BackendConfigError, BackendError
from receiver.core.models import InferenceRequest

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OLLAMA_BASE_URL = "http://ollama:11434"
BEDROCK_ANTHROPIC_VERSION = "bedrock-2023-05-31"


@runtime_checkable
class Backend(Protocol):
    name: str
    type: str
    model: str

    def prepare_request(self, request: InferenceRequest) -> InferenceRequest: ...

    def complete(self, request: InferenceRequest, *, timeout: float) -> str: ...


def apply_overrides(
    request: InferenceRequest, *, system_prompt: str = "", max_tokens: int = 0, temperature: float = 0.0
) -> InferenceRequest:
    """
    Return a copy of `request` with non-default overrides applied.

    Blank/zero overrides inherit the caller's value.
    """
    update: Dict[str, Any] = {}
    if (system_prompt or "").strip():
        update["system_prompt"] = system_prompt
    if max_tokens > 0:
        update["max_tokens"] = max_tokens
    if temperature > 0:
        update["temperature"] = temperature
    return request.model_copy(update=update) if update else request


class _BaseBackend:
    type = ""

    def __init__(self, cfg: BackendConfig) -> None:
        if not (cfg.model or "").strip():
            raise BackendConfigError(f"{self.type} backend {cfg.name!r} is missing model")
        self.name = cfg.name or self.type
        self.model = cfg.model
        self.system_prompt = cfg.system_prompt
        self.max_tokens = cfg.max_tokens
        self.temperature = cfg.temperature

    def prepare_request(self, request: InferenceRequest) -> InferenceRequest:
        return apply_overrides(
            request,
            system_prompt=self.system_prompt,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    def _post_json(self, url: str, payload: Dict[str, Any], *, headers: Dict[str, str], timeout: float) -> Any:
        try:
            response = requests.post(url, json=payload, headers=headers, timeout=timeout)
        except requests.exceptions.RequestException as e:
            raise BackendError(f"{self.type} request failed: {e}") from e
        if response.status_code >= 300:
            raise BackendError(f"{self.type} status {response.status_code}: {(response.text or '').strip()}")
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"decode {self.type} response: {e}") from e


class OpenAIBackend(_BaseBackend):
    type = "openai"

    def __init__(self, cfg: BackendConfig) -> None:
        super().__init__(cfg)
        api_key = (os.getenv(cfg.api_key_env) or "").strip() if cfg.api_key_env else ""
        if not api_key:
            raise BackendConfigError(f"openai backend {cfg.name!r} is missing API key env {cfg.api_key_env!r}")
        self.api_key = api_key
        self.base_url = (cfg.base_url or DEFAULT_OPENAI_BASE_URL).rstrip("/")

    def complete(self, request: InferenceRequest, *, timeout: float) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        data = self._post_json(
            f"{self.base_url}/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            timeout=timeout,
        )
        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            raise BackendError("openai returned no choices")
        message = (choices[0] or {}).get("message") or {}
        return str(message.get("content") or "").strip()


class OllamaBackend(_BaseBackend):
    type = "ollama"

    def __init__(self, cfg: BackendConfig) -> None:
        super().__init__(cfg)
        self.base_url = (cfg.base_url or DEFAULT_OLLAMA_BASE_URL).rstrip("/")

    def complete(self, request: InferenceRequest, *, timeout: float) -> str:
        payload = {
            "model": self.model,
            "stream": False,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_tokens,
            },
        }
        data = self._post_json(
            f"{self.base_url}/api/chat",
            payload,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
        if not isinstance(data, dict):
            raise BackendError("decode ollama response: expected an object")
        message = data.get("message") or {}
        return str(message.get("content") or "").strip()


def unwrap_bedrock_body(raw: bytes) -> str:
    """
    Extract text from an Anthropic-on-Bedrock response body.

    Text blocks are joined in order with newlines. A body that is not JSON, or that
    carries no text blocks, is returned verbatim (trimmed) instead of failing.
    """
    text = raw.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(text)
    except ValueError:
        return text.strip()

    content = parsed.get("content") if isinstance(parsed, dict) else None
    parts: List[str] = []
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("text"):
                parts.append(str(block["text"]))
    if not parts:
        return text.strip()
    return "\n".join(parts).strip()


class BedrockBackend(_BaseBackend):
    type = "bedrock"

    def __init__(self, cfg: BackendConfig) -> None:
        super().__init__(cfg)
        region = (cfg.region or "").strip() or (os.getenv("AWS_REGION") or "").strip()
        if not region:
            raise BackendConfigError(f"bedrock backend {cfg.name!r} is missing region")
        self.region = region
        self._clients: Dict[float, Any] = {}
        self._client_lock = threading.Lock()

    def _client(self, timeout: float) -> Any:
        """Cached bedrock-runtime client (one per timeout value); no SDK-level retries."""
        cached = self._clients.get(timeout)
        if cached is not None:
            return cached
        with self._client_lock:
            cached = self._clients.get(timeout)
            if cached is not None:
                return cached
            import boto3
            from botocore.config import Config as BotoConfig

            client = boto3.client(
                "bedrock-runtime",
                region_name=self.region,
                config=BotoConfig(
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    retries={"total_max_attempts": 1, "mode": "standard"},
                ),
            )
            self._clients[timeout] = client
            return client

    def complete(self, request: InferenceRequest, *, timeout: float) -> str:
        payload: Dict[str, Any] = {
            "anthropic_version": BEDROCK_ANTHROPIC_VERSION,
            "messages": [{"role": "user", "content": request.user_prompt}],
            "max_tokens": request.max_tokens,
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        if request.temperature > 0:
            payload["temperature"] = request.temperature

        try:
            output = self._client(timeout).invoke_model(
                modelId=self.model,
                contentType="application/json",
                accept="application/json",
                body=json.dumps(payload).encode("utf-8"),
            )
            raw = output["body"].read()
        except Exception as e:
            raise BackendError(f"bedrock invoke failed: {e}") from e
        return unwrap_bedrock_body(raw)


BACKEND_FAMILIES: Dict[str, Callable[[BackendConfig], Backend]] = {
    "openai": OpenAIBackend,
    "ollama": OllamaBackend,
    "bedrock": BedrockBackend,
}


def build_backend(cfg: BackendConfig) -> Backend:
    btype = (cfg.type or "").strip().lower() or "openai"
    factory = BACKEND_FAMILIES.get(btype)
    if factory is None:
        raise BackendConfigError(f"unsupported backend type {cfg.type!r}")
    return factory(cfg)


def build_backends(configs: Sequence[BackendConfig]) -> List[Backend]:
    """Build every configured backend, in order. Raises on the first invalid entry."""
    backends = [build_backend(c) for c in configs]
    logger.info("Configured LLM backends: %s", [b.name for b in backends])
    return backends


def backend_names(backends: Sequence[Backend], *, sort: bool = True) -> List[str]:
    names = [b.name for b in backends]
    return sorted(names) if sort else names

