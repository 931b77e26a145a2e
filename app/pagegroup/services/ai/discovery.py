"""
Field discovery: suggests extractable fields from the first page of a document.
"""

import logging
from typing import Any

from ...models import FieldSpec
from .exceptions import MalformedResponse
from .inference import generate_from_pdf
from .repair import parse_json_response, unwrap_list

logger = logging.getLogger(__name__)


FIELD_SUGGESTION_PROMPT = """Analyze this PDF document and identify extractable fields. Return your response in this exact JSON format, with no additional text before or after:

[
    {
        "fieldName": "field1",
        "description": "description1"
    },
    {
        "fieldName": "field2",
        "description": "description2"
    }
]

Important rules:
1. Return ONLY the JSON array, no other text
2. Use camelCase for fieldNames (no spaces)
3. Both fieldName and description must be in the same language as the document
4. Each field must have exactly these two properties: fieldName and description
5. Ensure the response is valid JSON with proper quotes and commas"""


def parse_field_suggestions(text: str) -> list[FieldSpec]:
    """
    Turn a suggestion response into field specs.

    Entries that are not objects with string ``fieldName`` and
    ``description`` are dropped, as are repeated names.

    Raises:
        MalformedResponse: If no valid field remains.
    """
    parsed = parse_json_response(text)
    entries = unwrap_list(parsed, "fields", "suggestions")
    if entries is None:
        raise MalformedResponse(
            "Invalid response format: expected array of fields", raw_text=text
        )

    fields: list[FieldSpec] = []
    seen: set[str] = set()
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        name = entry.get("fieldName")
        description = entry.get("description")
        if not isinstance(name, str) or not isinstance(description, str):
            continue
        name = name.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        fields.append(FieldSpec(field_name=name, description=description.strip()[:1000]))

    if not fields:
        logger.error("No valid fields in suggestion response: %s", text[:500])
        raise MalformedResponse("No valid fields found in response", raw_text=text)

    logger.info("Parsed %d suggested field(s): %s", len(fields), [f.field_name for f in fields])
    return fields


async def suggest_fields(
    first_page_pdf: bytes,
    client: Any,
    model: str = "gpt-4.1",
    **generation: Any,
) -> list[FieldSpec]:
    """
    Ask the backend which fields page 1 offers.

    Args:
        first_page_pdf: One-page PDF holding the document's first page.
        client: AsyncOpenAI client instance.
        model: Model name to use.
        **generation: Extra generation settings for ``generate_from_pdf``.

    Returns:
        Suggested field specs, in the order the model listed them.
    """
    text = await generate_from_pdf(
        client,
        FIELD_SUGGESTION_PROMPT,
        first_page_pdf,
        model=model,
        filename="first-page.pdf",
        label="suggest-fields",
        **generation,
    )
    return parse_field_suggestions(text)
