# services/ai_client.py
import httpx
import logging
from openai import AsyncOpenAI
from typing import Optional

import config

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class AIConfigurationError(Exception):
    """Raised when the selected AI provider has no API key."""


def extract_choice_content(response_data: dict) -> str:
    if "choices" not in response_data or not response_data["choices"]:
        logger.error("AI API response missing 'choices' field")
        raise ValueError("AI API response missing 'choices' field")

    choice = response_data["choices"][0]
    if "message" in choice and "content" in choice["message"]:
        return choice["message"]["content"]
    elif "text" in choice:
        return choice["text"]
    elif "content" in choice:
        return choice["content"]
    logger.error("AI API response missing expected content field")
    raise ValueError("AI API response missing expected content field")


def build_messages(prompt: str, system_prompt: Optional[str] = None) -> list:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


def model_candidates() -> list:
    """Primary model first, then the fallback for the configured provider."""
    if config.AI_PROVIDER == "openai":
        models = [config.OPENAI_MODEL, config.OPENAI_FALLBACK_MODEL]
    else:
        models = [config.XAI_MODEL, config.XAI_FALLBACK_MODEL]
    return [m for i, m in enumerate(models) if m and m not in models[:i]]


async def call_grok(messages: list, model: str, max_tokens: int, temperature: float) -> str:
    if not config.XAI_API_KEY:
        raise AIConfigurationError("xAI API key not configured")

    headers = {
        "Authorization": f"Bearer {config.XAI_API_KEY}",
        "Content-Type": "application/json"
    }
    payload = {
        "model": model,
        "messages": messages,
        "stream": False,
        "temperature": temperature,
        "max_tokens": max_tokens
    }

    async with httpx.AsyncClient(timeout=config.AI_TIMEOUT_SECONDS) as client:
        response = await client.post(config.XAI_API_URL, headers=headers, json=payload)
        response.raise_for_status()
        data = response.json()
    logger.info(f"Grok API responded with model {data.get('model', model)}")
    return extract_choice_content(data)


async def call_openai(messages: list, model: str, max_tokens: int, temperature: float) -> str:
    if not config.OPENAI_API_KEY:
        raise AIConfigurationError("OpenAI API key not configured")

    client = AsyncOpenAI(api_key=config.OPENAI_API_KEY, timeout=config.AI_TIMEOUT_SECONDS)
    response = await client.chat.completions.create(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature
    )
    logger.info(f"OpenAI API responded with model {response.model}")
    return response.choices[0].message.content or ""


async def call_ai_api(
    prompt: str,
    system_prompt: Optional[str] = None,
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
    temperature: float = 0.7,
) -> str:
    """
    Send one chat completion to the configured provider and return the raw text.
    Provider errors (httpx.HTTPError, openai.OpenAIError) propagate to the caller.
    """
    model = model or model_candidates()[0]
    max_tokens = max_tokens or config.AI_MAX_TOKENS
    messages = build_messages(prompt, system_prompt)
    logger.info(f"Calling {config.AI_PROVIDER} with model {model}")

    if config.AI_PROVIDER == "openai":
        return await call_openai(messages, model, max_tokens, temperature)
    return await call_grok(messages, model, max_tokens, temperature)
