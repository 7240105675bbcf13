"""
AnswerSynthesizer - grounded answers with citations over candidate notes.

The model sees candidates as "Entry <n> [ID: <id>]: <text>" and is asked to end
its reply with a RELEVANT_ENTRIES:[...] line naming the entry numbers it used.
Parsing that marker is best-effort: a missing or malformed marker yields the
whole reply as the answer and no citations.
"""

import logging
import re
from typing import List, Optional

from fieldnotes.core.domain.note import Note
from fieldnotes.core.domain.query import Answer
from fieldnotes.core.errors import DependencyUnavailable
from fieldnotes.core.interfaces.ports import IAnswerStrategy, ILLMProvider

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions based on provided notes. "
    "Your answers are clear, concise, and only reference information explicitly in the notes. "
    "If the notes don't have the information, say so clearly."
)

USER_PROMPT = """I have the following personal notes:

{entries}

Based only on these notes, answer this question: {query}

AFTER your answer, include a separate line break, then provide the ENTRY NUMBERS (not IDs) that were relevant to answering the query in EXACTLY this format:
RELEVANT_ENTRIES:[1,2,...]

The RELEVANT_ENTRIES format must be separate from your main answer and must appear on its own line. Do not include this format within paragraphs of your answer.

Only include entries that are directly relevant to answering the query. If no entries are relevant, return RELEVANT_ENTRIES:[]"""

# Marker contents never span lines or contain brackets
MARKER_PATTERN = re.compile(r"RELEVANT_ENTRIES:[ \t]*\[([^\[\]\n]*)\]")


def format_entries(candidates: List[Note]) -> str:
    return "\n\n".join(
        f"Entry {i} [ID: {note.id}]: {note.text}" for i, note in enumerate(candidates, 1)
    )


def build_user_prompt(query: str, candidates: List[Note]) -> str:
    return USER_PROMPT.format(entries=format_entries(candidates), query=query)


def parse_response(content: str, candidates: List[Note]) -> Answer:
    """Split a model reply into the answer text and the cited note ids."""
    content = content or ""
    match = MARKER_PATTERN.search(content)
    if match is None:
        logger.debug("No RELEVANT_ENTRIES marker in response")
        return Answer(answer=content.strip(), cited_note_ids=[])

    cited: List[int] = []
    for part in match.group(1).split(","):
        part = part.strip()
        try:
            index = int(part)
        except ValueError:
            continue
        if 1 <= index <= len(candidates):
            note_id = candidates[index - 1].id
            if note_id not in cited:
                cited.append(note_id)

    answer = MARKER_PATTERN.sub("", content).strip()
    return Answer(answer=answer, cited_note_ids=cited)


def failure_message(provider_label: str, error: Optional[Exception] = None) -> str:
    """Deterministic answer text for a failed or unconfigured provider."""
    if error is None:
        return (
            f"I couldn't answer your query because the {provider_label} API key is missing. "
            f"Please set it in your .env file."
        )
    kind = getattr(error, "kind", DependencyUnavailable.UNKNOWN)
    if kind == DependencyUnavailable.AUTHENTICATION:
        return (
            f"I couldn't answer your query because of an authentication error with {provider_label}. "
            f"Please check your API key."
        )
    if kind == DependencyUnavailable.RATE_LIMIT:
        return (
            f"I couldn't answer your query because the {provider_label} API rate limit "
            f"has been exceeded. Please try again later."
        )
    if kind == DependencyUnavailable.NETWORK:
        return (
            f"I couldn't answer your query because {provider_label} could not be reached. "
            f"Please check your connection."
        )
    return f"I couldn't answer your query due to an error with {provider_label}: {error}"


class AnswerSynthesizer(IAnswerStrategy):
    def __init__(self, llm: Optional[ILLMProvider], provider_label: str = "LLM"):
        self.llm = llm
        self.provider_label = provider_label

    def answer(self, query: str, candidates: List[Note]) -> Answer:
        if self.llm is None:
            return Answer(answer=failure_message(self.provider_label), cited_note_ids=[])

        logger.info("Generating answer using %s with %d entries", self.provider_label, len(candidates))
        try:
            content = self.llm.generate(build_user_prompt(query, candidates), system_prompt=SYSTEM_PROMPT)
        except Exception as e:
            logger.warning("Error generating answer with %s: %s", self.provider_label, e)
            return Answer(answer=failure_message(self.provider_label, e), cited_note_ids=[])

        return parse_response(content, candidates)
