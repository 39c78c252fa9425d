#!/usr/bin/env python3
"""
Client for the OpenRouter chat-completion API (OpenAI-compatible endpoint).

One call per prompt and no retries: the sync pipeline decides whether a
failed completion is attempted again.
"""

import os
import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional

import openai
from openai import AsyncOpenAI

from exceptions import UpstreamError, LLMTimeoutError, ParseError

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "anthropic/claude-3.5-sonnet"

# USD per token
TOKEN_COSTS = {
    "anthropic/claude-3.5-sonnet": {"input": 3.0 / 1_000_000, "output": 15.0 / 1_000_000},
}


@dataclass
class CompletionResult:
    text: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost: float = 0.0


class OpenRouterClient:
    """
    LLM completion collaborator: prompt string in, raw completion text out
    """

    def __init__(self, api_key: str = None, model: str = DEFAULT_MODEL,
                 base_url: str = OPENROUTER_BASE_URL, timeout: float = 60,
                 app_url: str = None, app_title: str = "Servicing Insights",
                 client: Optional[Any] = None):
        """
        Initialize the OpenRouter client

        Args:
            api_key: OpenRouter API key (if None, will use OPENROUTER_API_KEY)
            model: Model to request
            base_url: OpenAI-compatible API base URL
            timeout: Per-call timeout in seconds
            app_url: Value of the HTTP-Referer attribution header
            app_title: Value of the X-Title attribution header
            client: Preconfigured AsyncOpenAI-compatible client (used by tests)
        """
        self.model = model
        self.timeout = timeout
        self.total_prompt_tokens = 0
        self.total_completion_tokens = 0
        self.total_cost = 0.0

        if client is not None:
            self.client = client
            return

        api_key = api_key or os.environ.get("OPENROUTER_API_KEY")
        if not api_key:
            logger.warning("OpenRouter API key not provided")

        headers = {"X-Title": app_title}
        if app_url:
            headers["HTTP-Referer"] = app_url

        # max_retries=0: retries happen in the pipeline, not in the SDK
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            default_headers=headers,
        )
        logger.info(f"OpenRouter client initialized with model: {model}")

    def _calculate_cost(self, token_usage: Dict[str, int]) -> float:
        """
        Calculate the cost of API call based on token usage

        Args:
            token_usage: Token usage data from API response

        Returns:
            Estimated cost in USD
        """
        costs = TOKEN_COSTS.get(self.model, TOKEN_COSTS[DEFAULT_MODEL])

        input_tokens = token_usage.get("prompt_tokens", 0)
        output_tokens = token_usage.get("completion_tokens", 0)

        return input_tokens * costs["input"] + output_tokens * costs["output"]

    async def complete(self, prompt: str) -> CompletionResult:
        """
        Send one prompt and return the completion text

        Args:
            prompt: User prompt

        Returns:
            CompletionResult with text, token usage and estimated cost

        Raises:
            LLMTimeoutError: The call exceeded its timeout
            UpstreamError: Non-2xx response or no response at all
            ParseError: The response carried no message content
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                response_format={"type": "json_object"},
            )
        except openai.APITimeoutError as e:
            raise LLMTimeoutError(f"Completion timed out after {self.timeout}s") from e
        except openai.APIStatusError as e:
            body = e.response.text if getattr(e, "response", None) is not None else None
            raise UpstreamError(f"OpenRouter API error: {e.message}", status_code=e.status_code, body=body) from e
        except openai.APIConnectionError as e:
            raise UpstreamError(f"OpenRouter connection error: {str(e)}") from e

        content = None
        if response.choices:
            content = response.choices[0].message.content
        if not content:
            raise ParseError("No content in response", raw_text=content)

        result = CompletionResult(text=content, model=getattr(response, "model", None) or self.model)

        usage = getattr(response, "usage", None)
        if usage is not None:
            token_usage = {
                "prompt_tokens": usage.prompt_tokens or 0,
                "completion_tokens": usage.completion_tokens or 0,
            }
            result.prompt_tokens = token_usage["prompt_tokens"]
            result.completion_tokens = token_usage["completion_tokens"]
            result.cost = self._calculate_cost(token_usage)

            self.total_prompt_tokens += result.prompt_tokens
            self.total_completion_tokens += result.completion_tokens
            self.total_cost += result.cost

        logger.debug(f"Completion received ({result.prompt_tokens}+{result.completion_tokens} tokens)")
        return result
