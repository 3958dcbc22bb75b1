"""
Study.AI - Gemini Service
Prompt construction, response schema, structured-output parsing, and chat
"""

import base64
import json
import logging
import re
from typing import Any, Dict, List, Optional

import google.generativeai as genai

import settings
from exam import (
    SECTIONS,
    Difficulty,
    MatchingQuestion,
    QuestionConfig,
    TestData,
)

logger = logging.getLogger(__name__)

genai.configure(api_key=settings.GEMINI_API_KEY)

STUDY_AI_PERSONA = (
    "You are 'Study AI'. An advanced academic assistant with a futuristic, helpful, "
    "and intelligent persona. Keep responses precise and insightful."
)

EMPTY_CHAT_REPLY = "Neural connection interrupted. No response received."


class GenerationError(Exception):
    """The model call failed or its output broke the response contract."""


DIFFICULTY_INSTRUCTIONS = {
    Difficulty.SIMPLE: (
        "Generate 'Simple' questions. Focus on basic recall, definitions, and fundamental facts. "
        "Questions should be straightforward and easy to answer directly from the text."
    ),
    Difficulty.MEDIUM: (
        "Generate 'Medium' questions. Balance simple recall with some application. "
        "Standard academic difficulty suitable for a general assessment."
    ),
    Difficulty.HARD: (
        "Generate 'Hard' questions. Focus on complex analysis, synthesis, and application of "
        "concepts to novel situations. Questions should require critical thinking."
    ),
    Difficulty.CONCEPTUAL: (
        "Generate 'Conceptual' questions. Focus deeply on the 'why' and 'how'. Test understanding "
        "of underlying theories, relationships between ideas, and abstract principles rather "
        "than rote memorization."
    ),
    Difficulty.IMPORTANT: (
        "Generate 'Important' questions. Identify and focus strictly on the most critical, "
        "high-value, and frequently tested concepts in the material. Filter out trivial details."
    ),
}


def _string():
    return {"type": "STRING"}


def _array_of(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "ARRAY",
        "items": {"type": "OBJECT", "properties": properties, "required": required},
    }


RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": _string(),
        "subtitle": _string(),
        "mcqs": _array_of(
            {
                "question": _string(),
                "options": {"type": "ARRAY", "items": _string()},
                "answer": _string(),
            },
            ["question", "options", "answer"],
        ),
        "shortQuestions": _array_of(
            {"question": _string(), "answerKey": _string()},
            ["question", "answerKey"],
        ),
        "longQuestions": _array_of(
            {
                "question": _string(),
                "answerKey": {
                    "type": "STRING",
                    "description": "Detailed answer key for the long question",
                },
            },
            ["question", "answerKey"],
        ),
        "trueFalse": _array_of(
            {"statement": _string(), "isTrue": {"type": "BOOLEAN"}},
            ["statement", "isTrue"],
        ),
        "fillInBlanks": _array_of(
            {"sentence": _string(), "answer": _string()},
            ["sentence", "answer"],
        ),
        "essays": _array_of(
            {"question": _string(), "keyPoints": _string()},
            ["question", "keyPoints"],
        ),
        "matching": _array_of(
            {
                "pairs": _array_of(
                    {"item": _string(), "match": _string()},
                    ["item", "match"],
                ),
            },
            ["pairs"],
        ),
    },
    "required": [
        "title", "mcqs", "shortQuestions", "longQuestions",
        "trueFalse", "fillInBlanks", "essays", "matching",
    ],
}


def get_model(system_instruction: Optional[str] = None):
    """Create a Gemini model handle for the configured model id."""
    return genai.GenerativeModel(settings.GEMINI_MODEL, system_instruction=system_instruction)


# Prompt construction

def build_instructions(config: QuestionConfig) -> str:
    instructions = ""
    if config.topic_focus.strip():
        instructions += (
            "IMPORTANT: Focus the test specifically on this topic, chapter, or page range: "
            f"\"{config.topic_focus.strip()}\". Ignore unrelated content.\n"
        )
    difficulty_text = DIFFICULTY_INSTRUCTIONS.get(config.difficulty, "Standard academic difficulty.")
    instructions += f"DIFFICULTY INSTRUCTION: {difficulty_text}\n"
    return instructions


def build_prompt(config: QuestionConfig) -> str:
    level = config.difficulty.value
    return (
        "Act as an expert educational content creator.\n"
        "Generate a comprehensive test based on the provided content.\n\n"
        "Configuration:\n"
        f"- Difficulty Level: {level}\n"
        f"- MCQs: {config.mcq_count}\n"
        f"- Short Answer: {config.short_q_count}\n"
        f"- Long Answer: {config.long_q_count}\n"
        f"- True/False: {config.tf_count}\n"
        f"- Fill in Blanks: {config.blank_count}\n"
        f"- Essay Questions: {config.essay_count}\n"
        f"- Matching Pairs: {config.match_count}\n\n"
        f"{build_instructions(config)}\n"
        "Requirements:\n"
        f"- Ensure questions strictly match the '{level}' difficulty level description above.\n"
        "- Return exactly the number of items requested for each type; use an empty list for a count of 0.\n"
        "- Every multiple choice answer must repeat the text of one of its options.\n"
        "- Long Answer questions should require a detailed, paragraph-length response.\n"
        "- Provide a professional and relevant title for the test.\n"
        "- Return strictly JSON format.\n"
    )


def build_contents(file: Optional[Dict[str, str]], text_context: str, config: QuestionConfig) -> list:
    """
    Assemble the multi-part request: prompt, optional inline file, optional pasted text.

    :param file: FileData dict ({"name", "mimeType", "data"}) with base64 data, or None.
    :param text_context: Free text pasted by the user (or extracted from a document).
    """
    parts: list = [build_prompt(config)]

    if file:
        try:
            mime_type = file["mimeType"]
            raw = base64.b64decode(file["data"], validate=True)
        except (KeyError, TypeError, ValueError) as e:
            raise GenerationError(f"Uploaded file data is invalid: {e}") from e
        parts.append({"mime_type": mime_type, "data": raw})

    if text_context and text_context.strip():
        parts.append(f"Context Content:\n{text_context}")

    return parts


# Response parsing

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*)\s*```", re.DOTALL | re.IGNORECASE)
_LETTER_ONLY_RE = re.compile(r"(?:option\s+)?\(?([a-h])\)?[.):]?", re.IGNORECASE)
_LETTER_PREFIX_RE = re.compile(r"\(?([a-h])[.):]\s+(.+)", re.IGNORECASE | re.DOTALL)


def _load_json(raw: str) -> Any:
    text = raw.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Only a fence wrapping the whole reply; fences inside string values are content
    fenced = _FENCE_RE.fullmatch(text)
    if fenced:
        text = fenced.group(1)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        # Model wrapped the object in prose
        match = re.search(r"({.*})", text, re.DOTALL)
        if match:
            try:
                return json.loads(match.group(1))
            except json.JSONDecodeError as e:
                raise GenerationError(f"Model returned invalid JSON: {e}") from e
        raise GenerationError("Model returned invalid JSON: no object found") from None


def resolve_mcq_answer(options: List[str], answer: str) -> str:
    """
    Map an MCQ answer onto the text of one of its options.

    Accepts the option text itself (any case), a bare letter ("B", "b)",
    "Option B") or a lettered option ("B) Paris"). Anything else is returned
    unchanged.
    """
    if answer in options:
        return answer
    lowered = {o.lower(): o for o in options}
    if answer.lower() in lowered:
        return lowered[answer.lower()]

    letter = _LETTER_ONLY_RE.fullmatch(answer.strip())
    if letter:
        idx = ord(letter.group(1).lower()) - ord("a")
        if idx < len(options):
            return options[idx]

    prefixed = _LETTER_PREFIX_RE.fullmatch(answer.strip())
    if prefixed and prefixed.group(2).strip().lower() in lowered:
        return lowered[prefixed.group(2).strip().lower()]

    return answer


def _parse_section(raw_items: Any, section) -> list:
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        logger.warning("Section '%s' is not a list; ignoring it", section.key)
        return []

    items = []
    for i, raw in enumerate(raw_items):
        try:
            items.append(section.record_cls.from_dict(raw))
        except ValueError as e:
            logger.warning("Dropping malformed %s[%d]: %s", section.key, i, e)
    return items


def parse_test_response(raw: str, config: QuestionConfig) -> TestData:
    """
    Turn the model's JSON into a TestData that honors the requested mix.

    Returns:
        TestData trimmed to the configured counts
    """
    data = _load_json(raw)
    if not isinstance(data, dict):
        raise GenerationError("Model response is not a JSON object.")

    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        raise GenerationError("Model response is missing a test title.")

    subtitle = data.get("subtitle")
    test = TestData(
        title=title.strip(),
        subtitle=subtitle.strip() if isinstance(subtitle, str) else "",
    )

    for section in SECTIONS:
        items = _parse_section(data.get(section.key), section)
        limit = config.count_for(section.count_key)

        if section.key == "mcqs":
            for q in items:
                resolved = resolve_mcq_answer(q.options, q.answer)
                if resolved not in q.options:
                    logger.warning("MCQ answer %r does not match any option", q.answer)
                q.answer = resolved
        elif section.key == "matching":
            # The preview shows one two-column block; fold every group into it
            pairs = [p for group in items for p in group.pairs][:limit]
            items = [MatchingQuestion(pairs=pairs)] if pairs else []
            setattr(test, section.attr, items)
            continue

        if len(items) > limit:
            logger.info("Trimming %s from %d to %d", section.key, len(items), limit)
        setattr(test, section.attr, items[:limit])

    return test


def _response_text(response) -> str:
    try:
        return response.text or ""
    except ValueError as e:
        # Raised by the SDK when the candidate has no text parts (e.g. blocked)
        feedback = getattr(response, "prompt_feedback", None)
        raise GenerationError(f"Gemini returned no usable content. {feedback or e}".strip()) from e


def generate_test_from_content(file: Optional[Dict[str, str]], text_context: str,
                               config: QuestionConfig, model=None) -> TestData:
    """
    Generate an exam from an uploaded file and/or pasted text.

    Args:
        file: FileData dict with base64 data, or None
        text_context: Pasted or extracted text
        config: Question mix and difficulty
        model: Optional model handle (defaults to the configured Gemini model)

    Returns:
        Parsed TestData
    """
    model = model or get_model()
    contents = build_contents(file, text_context, config)

    logger.info(
        "Generating test: difficulty=%s questions=%d file=%s text_chars=%d",
        config.difficulty.value,
        config.total_questions(),
        file.get("name") if file else None,
        len(text_context or ""),
    )

    response = model.generate_content(
        contents,
        generation_config={
            "response_mime_type": "application/json",
            "response_schema": RESPONSE_SCHEMA,
        },
    )

    text = _response_text(response)
    if not text.strip():
        raise GenerationError("No response generated from Gemini.")

    return parse_test_response(text, config)


# Chat

def to_gemini_history(history: List[Dict[str, Any]], limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Convert ChatMessage dicts into Gemini's {"role", "parts"} history.

    Blank messages and unknown roles are skipped. Leading model turns (the
    greeting shown in the chat view) are dropped since a conversation sent
    to Gemini opens with the user.
    """
    limit = limit or settings.MAX_CHAT_HISTORY
    converted = []
    for msg in history or []:
        if not isinstance(msg, dict):
            continue
        role = msg.get("role")
        text = msg.get("text")
        if role not in ("user", "model") or not isinstance(text, str) or not text.strip():
            continue
        converted.append({"role": role, "parts": [text]})

    converted = converted[-limit:]
    while converted and converted[0]["role"] == "model":
        converted.pop(0)
    return converted


def chat_with_study_ai(history: List[Dict[str, Any]], new_message: str, model=None) -> str:
    model = model or get_model(system_instruction=STUDY_AI_PERSONA)
    chat_session = model.start_chat(history=to_gemini_history(history))
    response = chat_session.send_message(new_message)
    try:
        text = response.text
    except ValueError:
        text = ""
    return text or EMPTY_CHAT_REPLY
