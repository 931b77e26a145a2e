"""
Inference backend binding.

Sends one prompt plus one PDF attachment to the OpenAI Chat Completions API
and returns the raw response text. Backend failures are classified into
``TransientTransportError``; an empty completion is a ``MalformedResponse``.
"""

import base64
import json
import logging
import math
from typing import Any

import openai

from .exceptions import MalformedResponse, TransientTransportError

logger = logging.getLogger(__name__)

# Rough price used only for the usage log line (USD per 1K tokens)
COST_PER_1K_TOKENS = 0.0005


def log_token_usage(label: str, prompt: str, output: str, usage: Any = None) -> None:
    """Log token usage for one call, estimating from text length when the backend is silent."""
    input_tokens = getattr(usage, "prompt_tokens", None)
    output_tokens = getattr(usage, "completion_tokens", None)
    estimated = not (isinstance(input_tokens, int) and isinstance(output_tokens, int))
    if estimated:
        input_tokens = math.ceil(len(json.dumps(prompt)) / 4)
        output_tokens = math.ceil(len(output) / 4)
    total_tokens = input_tokens + output_tokens
    cost = (total_tokens / 1000) * COST_PER_1K_TOKENS

    logger.info(
        "Token usage for %s: input=%d output=%d total=%d%s estimated_cost=$%.6f",
        label,
        input_tokens,
        output_tokens,
        total_tokens,
        " (estimated)" if estimated else "",
        cost,
    )


def build_pdf_message(prompt: str, pdf_bytes: bytes, filename: str) -> list[dict[str, Any]]:
    """User message carrying the prompt text and the PDF as a base64 file part."""
    encoded = base64.b64encode(pdf_bytes).decode("utf-8")
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {
                    "type": "file",
                    "file": {
                        "filename": filename,
                        "file_data": f"data:application/pdf;base64,{encoded}",
                    },
                },
            ],
        }
    ]


async def generate_from_pdf(
    client: Any,  # AsyncOpenAI client
    prompt: str,
    pdf_bytes: bytes,
    model: str = "gpt-4.1",
    filename: str = "document.pdf",
    label: str = "inference",
    max_output_tokens: int = 8192,
    temperature: float = 0.7,
    top_p: float = 0.8,
) -> str:
    """
    Run one inference request and return the response text.

    Raises:
        TransientTransportError: Network failure or non-2xx response.
        MalformedResponse: The backend answered with no text, or stopped at
            the output token limit.
    """
    try:
        response = await client.chat.completions.create(
            model=model,
            messages=build_pdf_message(prompt, pdf_bytes, filename),
            max_tokens=max_output_tokens,
            temperature=temperature,
            top_p=top_p,
        )
    except openai.APIConnectionError as e:
        raise TransientTransportError(
            f"Inference backend unreachable: {e}", is_connection_error=True
        ) from e
    except openai.APIStatusError as e:
        raise TransientTransportError(
            f"Inference backend returned {e.status_code}: {e.message}",
            status_code=e.status_code,
        ) from e
    except openai.APIError as e:
        raise TransientTransportError(f"Inference request failed: {e}") from e

    if not response.choices:
        raise MalformedResponse("Inference backend returned no choices")
    choice = response.choices[0]
    content = choice.message.content
    if not content:
        raise MalformedResponse("Empty response from inference backend")
    if getattr(choice, "finish_reason", None) == "length":
        logger.warning("Response for %s cut off at %d output tokens", label, max_output_tokens)
        raise MalformedResponse(
            f"Response cut off at the output token limit ({max_output_tokens})", raw_text=content
        )

    log_token_usage(label, prompt, content, getattr(response, "usage", None))
    return content
