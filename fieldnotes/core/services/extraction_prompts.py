"""
Prompts for turning notes and queries into structured entities.

Note extraction yields four categories:
- entities: people, places, objects, organizations, events
- quantities: numeric values with a unit and a subject
- event_times: when something happened
- relations: subject / relation type / object triples
"""

import json
import re
from typing import Any, Dict

from fieldnotes.core.errors import ParseFailure

EXTRACTION_SYSTEM_PROMPT = (
    "You are a helpful assistant that extracts structured data from notes. "
    "Output only valid JSON without any explanations or additional text."
)

EXTRACT_NOTE_PROMPT = """Given the following note, extract structured information:

Note: "{note_text}"

Extract the following in JSON format:
{{
  "entities": [
    {{
      "name": "string",
      "type": "string",
      "normalized_name": "string"
    }}
  ],
  "quantities": [
    {{
      "value": "number",
      "unit": "string",
      "subject": "string"
    }}
  ],
  "event_times": [
    {{
      "time_value": "string",
      "is_approximate": "boolean",
      "reference_type": "string"
    }}
  ],
  "relations": [
    {{
      "subject": "string",
      "relation_type": "string",
      "object": "string"
    }}
  ]
}}

Entity "type" is one of: person, place, object, organization, event, activity.
Entity "name" is the entity as it appears in the text.
Quantity "unit" is e.g. dollars, minutes; "subject" is what the quantity refers to.
Event time "reference_type" is "absolute", "relative", etc.

IMPORTANT RULES:
1. Each entity should appear only ONCE in the entities array, even if mentioned multiple times.
2. Be specific about entity types - prefer specific types like "person", "place" over generic "entity".
3. For normalized_name, use a consistent, lowercase standardized version.
4. Do not create duplicate entries with different capitalization or types.
5. If any category has no relevant information, return an empty array for that category."""


QUERY_SYSTEM_PROMPT = (
    "You are a specialized search query analyzer. Your purpose is to accurately extract "
    "entities and relationships from natural language search queries. You're especially good "
    "at identifying the core elements that a user is looking for in questions, ignoring common "
    "question words and focusing on the subject matter."
)

PARSE_QUERY_PROMPT = """Analyze this search query: "{query}"

IMPORTANT: Your task is to extract key entities and relations from search queries, especially natural language questions. Focus on extracting the SPECIFIC entities being asked about.

For example:
- Query: "When did Laya sleep?"
  - Extract "Laya" (entity)
- Query: "Where did we see slugs?"
  - Extract "slugs" (entity)
- Query: "Show me notes about Sally"
  - Extract "Sally" (entity)

Extract search parameters in this JSON format:
{{
  "entities": [
    {{
      "name": "string",
      "type": "string"
    }}
  ],
  "relations": [
    {{
      "subject": "string",
      "relation_type": "string",
      "object": "string"
    }}
  ]
}}

Only include fields where information is clearly present in the query. Leave arrays empty if no relevant information. If a field within an object doesn't apply, omit it."""


def parse_json_response(response: str) -> Dict[str, Any]:
    """Parse a model's JSON reply, tolerating a surrounding markdown code fence."""
    text = (response or "").strip()
    fence = re.match(r"^```(?:json)?\s*(.*?)\s*```$", text, re.DOTALL)
    if fence:
        text = fence.group(1)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseFailure(f"Model returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseFailure(f"Expected a JSON object, got {type(data).__name__}")
    return data


def list_field(data: Dict[str, Any], name: str) -> list:
    """A list-valued field, keeping only object items."""
    value = data.get(name) or []
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]
