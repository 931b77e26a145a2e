"""
Field extraction for one page group.

Builds the group prompt, sends the group's PDF slice and normalizes the
answer into one ``ExtractedPage`` per page of the group.
"""

import json
import logging
from typing import Any

from ...models import ExtractedPage, FieldValue, PageGroup
from .exceptions import MalformedResponse
from .inference import generate_from_pdf
from .repair import parse_json_response, unwrap_list
from .validation import coerce_field_value, coerce_page_number, field_type_for

logger = logging.getLogger(__name__)


def build_group_prompt(field_names: list[str], group: PageGroup) -> str:
    """Build the extraction prompt for a group. Deterministic for equal inputs."""
    example_fields = {name: {"value": "extracted value", "type": "text"} for name in field_names[:2]}

    return f"""Extract the following fields from pages {group.start_page} to {group.end_page}: {', '.join(field_names)}

The attached PDF contains only these pages; its first page is page {group.start_page} of the original document.

Return your response in this exact JSON format, with no additional text before or after:

{{
    "pages": [
        {{
            "pageNumber": {group.start_page},
            "fields": {json.dumps(example_fields)}
        }}
    ]
}}

Rules:
1. Return ONLY the JSON object, no other text
2. Use proper JSON format with double quotes
3. For empty or not found values, use null
4. Page numbers must be actual numbers, not strings, counted in the original document ({group.start_page} to {group.end_page})
5. Keep original field names exactly as provided
6. Use "type": "date" for date values, "text" for others
7. Include one entry for every page from {group.start_page} to {group.end_page}

Field names to extract: {json.dumps(field_names)}"""


def _lookup(fields: dict[str, Any], name: str) -> Any:
    if name in fields:
        return fields[name]
    lowered = name.lower()
    for key, value in fields.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value
    return None


def _shift_for_slice(numbers: list[int], group: PageGroup) -> int:
    """
    Offset to add when the model counted pages within the slice (1..n).

    Returns 0 when the numbers are already document-absolute.
    """
    size = group.end_page - group.start_page + 1
    if group.start_page == 1 or not numbers:
        return 0
    if all(group.start_page <= n <= group.end_page for n in numbers):
        return 0
    if all(1 <= n <= size for n in numbers):
        return group.start_page - 1
    return 0


def normalize_group_pages(
    parsed: Any, field_names: list[str], group: PageGroup, raw_text: str = ""
) -> list[ExtractedPage]:
    """
    Validate a parsed group response and shape it into extracted pages.

    Every page of the group is produced exactly once, in page order, with
    every requested field present. Missing pages and values become null.

    Raises:
        MalformedResponse: If the structure is unusable or a page number
            falls outside the group.
    """
    entries = unwrap_list(parsed, "pages")
    if entries is None and isinstance(parsed, dict) and "pageNumber" in parsed:
        entries = [parsed]
    if entries is None:
        raise MalformedResponse(
            "Invalid response format: missing pages array", raw_text=raw_text
        )

    by_number: dict[int, dict[str, Any]] = {}
    numbers: list[int] = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise MalformedResponse("Invalid page format in response", raw_text=raw_text)
        number = coerce_page_number(entry.get("pageNumber"))
        fields = entry.get("fields")
        if number is None or not isinstance(fields, dict):
            raise MalformedResponse("Invalid page format in response", raw_text=raw_text)
        numbers.append(number)
        by_number.setdefault(number, fields)

    shift = _shift_for_slice(numbers, group)
    if shift:
        logger.warning(
            "Model numbered pages within the slice for %s; shifting by %d", group.label, shift
        )
        by_number = {number + shift: fields for number, fields in by_number.items()}

    outside = sorted(n for n in by_number if not group.start_page <= n <= group.end_page)
    if outside:
        raise MalformedResponse(
            f"Page numbers {outside} are outside {group.label}", raw_text=raw_text
        )

    missing = [n for n in group.page_numbers if n not in by_number]
    if missing:
        logger.warning("Response for %s omitted pages %s; filling with nulls", group.label, missing)

    pages: list[ExtractedPage] = []
    for number in group.page_numbers:
        fields = by_number.get(number, {})
        values: dict[str, FieldValue] = {}
        for name in field_names:
            value = coerce_field_value(_lookup(fields, name))
            values[name] = FieldValue(value=value, type=field_type_for(value))
        pages.append(ExtractedPage(page_number=number, fields=values))
    return pages


async def extract_group(
    group_pdf: bytes,
    field_names: list[str],
    group: PageGroup,
    client: Any,
    model: str = "gpt-4.1",
    **generation: Any,
) -> list[ExtractedPage]:
    """
    Extract the selected fields from every page of one group.

    Args:
        group_pdf: PDF holding only the group's pages.
        field_names: Fields to extract, in display order.
        group: The group the slice belongs to.
        client: AsyncOpenAI client instance.
        model: Model name to use.

    Returns:
        One ExtractedPage per page of the group, in page order.
    """
    logger.info("Extracting %d field(s) from %s", len(field_names), group.label)
    prompt = build_group_prompt(field_names, group)
    text = await generate_from_pdf(
        client,
        prompt,
        group_pdf,
        model=model,
        filename=f"pages-{group.start_page}-{group.end_page}.pdf",
        label=f"extract-data-group {group.group_index + 1}",
        **generation,
    )
    parsed = parse_json_response(text)
    return normalize_group_pages(parsed, field_names, group, raw_text=text)
