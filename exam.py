"""
Study.AI - Exam Model
Question configuration, typed question records, and preview edits
"""

from __future__ import annotations

import copy
from collections import namedtuple
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ExamEditError(Exception):
    """Raised when a preview edit targets an unknown section or index."""


class Difficulty(str, Enum):
    SIMPLE = "Simple"
    MEDIUM = "Medium"
    HARD = "Hard"
    CONCEPTUAL = "Conceptual"
    IMPORTANT = "Important"

    @classmethod
    def parse(cls, value: Any) -> "Difficulty":
        for level in cls:
            if isinstance(value, str) and value.strip().lower() == level.value.lower():
                return level
        return cls.MEDIUM


# Slider maxima shown in the config panel
COUNT_LIMITS = {
    "mcqCount": 50,
    "shortQCount": 20,
    "longQCount": 10,
    "tfCount": 50,
    "blankCount": 50,
    "essayCount": 5,
    "matchCount": 15,
}

COUNT_DEFAULTS = {
    "mcqCount": 5,
    "shortQCount": 3,
    "longQCount": 1,
    "tfCount": 5,
    "blankCount": 5,
    "essayCount": 1,
    "matchCount": 4,
}

MIN_WATERMARK_OPACITY = 0.05
MAX_WATERMARK_OPACITY = 0.5
DEFAULT_WATERMARK_OPACITY = 0.1


def _clamp_count(value: Any, default: int, maximum: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        count = int(value)
    except (TypeError, ValueError):
        return default
    return max(0, min(count, maximum))


def _clamp_opacity(value: Any) -> float:
    try:
        opacity = float(value)
    except (TypeError, ValueError):
        return DEFAULT_WATERMARK_OPACITY
    if opacity != opacity:  # NaN
        return DEFAULT_WATERMARK_OPACITY
    return max(MIN_WATERMARK_OPACITY, min(opacity, MAX_WATERMARK_OPACITY))


def _optional_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass
class QuestionConfig:
    mcq_count: int = COUNT_DEFAULTS["mcqCount"]
    short_q_count: int = COUNT_DEFAULTS["shortQCount"]
    long_q_count: int = COUNT_DEFAULTS["longQCount"]
    tf_count: int = COUNT_DEFAULTS["tfCount"]
    blank_count: int = COUNT_DEFAULTS["blankCount"]
    essay_count: int = COUNT_DEFAULTS["essayCount"]
    match_count: int = COUNT_DEFAULTS["matchCount"]
    difficulty: Difficulty = Difficulty.MEDIUM
    topic_focus: str = ""
    pdf_subtitle: str = ""
    exam_name: str = ""
    watermark_text: str = ""
    watermark_opacity: float = DEFAULT_WATERMARK_OPACITY

    _COUNT_ATTRS = {
        "mcqCount": "mcq_count",
        "shortQCount": "short_q_count",
        "longQCount": "long_q_count",
        "tfCount": "tf_count",
        "blankCount": "blank_count",
        "essayCount": "essay_count",
        "matchCount": "match_count",
    }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "QuestionConfig":
        """
        Build a config from the browser's JSON, clamping every count to its
        slider range the same way the config panel does.
        """
        if not isinstance(data, dict):
            data = {}
        kwargs: Dict[str, Any] = {}
        for key, attr in cls._COUNT_ATTRS.items():
            kwargs[attr] = _clamp_count(data.get(key), COUNT_DEFAULTS[key], COUNT_LIMITS[key])

        kwargs["difficulty"] = Difficulty.parse(data.get("difficulty"))
        kwargs["topic_focus"] = _optional_text(data.get("topicFocus"))
        kwargs["pdf_subtitle"] = _optional_text(data.get("pdfSubtitle"))
        kwargs["exam_name"] = _optional_text(data.get("examName"))
        kwargs["watermark_text"] = _optional_text(data.get("watermarkText"))
        kwargs["watermark_opacity"] = _clamp_opacity(
            data.get("watermarkOpacity", DEFAULT_WATERMARK_OPACITY)
        )
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            key: getattr(self, attr) for key, attr in self._COUNT_ATTRS.items()
        }
        data.update({
            "difficulty": self.difficulty.value,
            "topicFocus": self.topic_focus,
            "pdfSubtitle": self.pdf_subtitle,
            "examName": self.exam_name,
            "watermarkText": self.watermark_text,
            "watermarkOpacity": self.watermark_opacity,
        })
        return data

    def count_for(self, count_key: str) -> int:
        return getattr(self, self._COUNT_ATTRS[count_key])

    def total_questions(self) -> int:
        return sum(getattr(self, attr) for attr in self._COUNT_ATTRS.values())


# Question records

def _required_text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{key}' must be a non-empty string")
    return value.strip()


def parse_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"'{key}' must be a boolean")


class Question:
    """Shared JSON plumbing for question records."""

    # JSON key -> attribute name, excluding isFlagged
    JSON_FIELDS: Dict[str, str] = {}

    @classmethod
    def from_dict(cls, data: Any):
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        out = {key: copy.deepcopy(getattr(self, attr)) for key, attr in self.JSON_FIELDS.items()}
        out["isFlagged"] = self.is_flagged
        return out


def _require_mapping(data: Any, name: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"{name} record must be an object")
    return data


@dataclass
class MCQ(Question):
    question: str
    options: List[str]
    answer: str
    is_flagged: bool = False

    JSON_FIELDS = {"question": "question", "options": "options", "answer": "answer"}

    @classmethod
    def from_dict(cls, data: Any) -> "MCQ":
        data = _require_mapping(data, "MCQ")
        options = data.get("options")
        if not isinstance(options, list):
            raise ValueError("'options' must be a list")
        options = [str(o).strip() for o in options if o is not None and str(o).strip()]
        if len(options) < 2:
            raise ValueError("an MCQ needs at least two options")
        return cls(
            question=_required_text(data, "question"),
            options=options,
            answer=_required_text(data, "answer"),
            is_flagged=bool(data.get("isFlagged", False)),
        )


@dataclass
class ShortQuestion(Question):
    question: str
    answer_key: str
    is_flagged: bool = False

    JSON_FIELDS = {"question": "question", "answerKey": "answer_key"}

    @classmethod
    def from_dict(cls, data: Any):
        data = _require_mapping(data, cls.__name__)
        return cls(
            question=_required_text(data, "question"),
            answer_key=_required_text(data, "answerKey"),
            is_flagged=bool(data.get("isFlagged", False)),
        )


@dataclass
class LongQuestion(ShortQuestion):
    pass


@dataclass
class TrueFalse(Question):
    statement: str
    is_true: bool
    is_flagged: bool = False

    JSON_FIELDS = {"statement": "statement", "isTrue": "is_true"}

    @classmethod
    def from_dict(cls, data: Any) -> "TrueFalse":
        data = _require_mapping(data, "TrueFalse")
        return cls(
            statement=_required_text(data, "statement"),
            is_true=parse_bool(data.get("isTrue"), "isTrue"),
            is_flagged=bool(data.get("isFlagged", False)),
        )


@dataclass
class FillInBlank(Question):
    sentence: str
    answer: str
    is_flagged: bool = False

    JSON_FIELDS = {"sentence": "sentence", "answer": "answer"}

    @classmethod
    def from_dict(cls, data: Any) -> "FillInBlank":
        data = _require_mapping(data, "FillInBlank")
        return cls(
            sentence=_required_text(data, "sentence"),
            answer=_required_text(data, "answer"),
            is_flagged=bool(data.get("isFlagged", False)),
        )


@dataclass
class EssayQuestion(Question):
    question: str
    key_points: str
    is_flagged: bool = False

    JSON_FIELDS = {"question": "question", "keyPoints": "key_points"}

    @classmethod
    def from_dict(cls, data: Any) -> "EssayQuestion":
        data = _require_mapping(data, "EssayQuestion")
        return cls(
            question=_required_text(data, "question"),
            key_points=_required_text(data, "keyPoints"),
            is_flagged=bool(data.get("isFlagged", False)),
        )


@dataclass
class MatchingPair:
    item: str
    match: str

    def to_dict(self) -> Dict[str, str]:
        return {"item": self.item, "match": self.match}


@dataclass
class MatchingQuestion(Question):
    pairs: List[MatchingPair]
    is_flagged: bool = False

    JSON_FIELDS = {"pairs": "pairs"}

    @classmethod
    def from_dict(cls, data: Any) -> "MatchingQuestion":
        data = _require_mapping(data, "MatchingQuestion")
        raw_pairs = data.get("pairs")
        if not isinstance(raw_pairs, list):
            raise ValueError("'pairs' must be a list")
        pairs = []
        for raw in raw_pairs:
            if isinstance(raw, MatchingPair):
                pairs.append(raw)
                continue
            raw = _require_mapping(raw, "MatchingPair")
            pairs.append(MatchingPair(
                item=_required_text(raw, "item"),
                match=_required_text(raw, "match"),
            ))
        if not pairs:
            raise ValueError("a matching block needs at least one pair")
        return cls(pairs=pairs, is_flagged=bool(data.get("isFlagged", False)))

    def to_dict(self) -> Dict[str, Any]:
        return {"pairs": [p.to_dict() for p in self.pairs], "isFlagged": self.is_flagged}


# Sections in the order the preview and the export lay them out
Section = namedtuple("Section", "key attr record_cls label count_key")

SECTIONS = [
    Section("mcqs", "mcqs", MCQ, "Multiple Choice", "mcqCount"),
    Section("trueFalse", "true_false", TrueFalse, "True / False", "tfCount"),
    Section("fillInBlanks", "fill_in_blanks", FillInBlank, "Fill in the Blanks", "blankCount"),
    Section("matching", "matching", MatchingQuestion, "Matching", "matchCount"),
    Section("shortQuestions", "short_questions", ShortQuestion, "Short Answer", "shortQCount"),
    Section("longQuestions", "long_questions", LongQuestion, "Long Answer", "longQCount"),
    Section("essays", "essays", EssayQuestion, "Essay Questions", "essayCount"),
]

SECTIONS_BY_KEY = {s.key: s for s in SECTIONS}


@dataclass
class TestData:
    title: str
    subtitle: str = ""
    mcqs: List[MCQ] = field(default_factory=list)
    short_questions: List[ShortQuestion] = field(default_factory=list)
    long_questions: List[LongQuestion] = field(default_factory=list)
    true_false: List[TrueFalse] = field(default_factory=list)
    fill_in_blanks: List[FillInBlank] = field(default_factory=list)
    essays: List[EssayQuestion] = field(default_factory=list)
    matching: List[MatchingQuestion] = field(default_factory=list)

    # Not a pytest test class
    __test__ = False

    @classmethod
    def from_dict(cls, data: Any) -> "TestData":
        """
        Rebuild a test the browser sent back (preview edits, export).

        Raises ValueError on any malformed record; lenient parsing of raw
        model output lives in gemini_service.
        """
        if not isinstance(data, dict):
            raise ValueError("test must be an object")
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValueError("test title is required")
        test = cls(title=title.strip(), subtitle=_optional_text(data.get("subtitle")))
        for section in SECTIONS:
            raw_items = data.get(section.key) or []
            if not isinstance(raw_items, list):
                raise ValueError(f"'{section.key}' must be a list")
            items = []
            for i, raw in enumerate(raw_items):
                try:
                    items.append(section.record_cls.from_dict(raw))
                except ValueError as e:
                    raise ValueError(f"{section.key}[{i}]: {e}") from e
            setattr(test, section.attr, items)
        return test

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"title": self.title, "subtitle": self.subtitle}
        for section in SECTIONS:
            data[section.key] = [item.to_dict() for item in getattr(self, section.attr)]
        return data

    def items(self, section_key: str) -> list:
        return getattr(self, _section(section_key).attr)

    def question_count(self) -> int:
        total = 0
        for section in SECTIONS:
            items = getattr(self, section.attr)
            if section.key == "matching":
                total += sum(len(m.pairs) for m in items)
            else:
                total += len(items)
        return total

    def flagged_items(self) -> List[Dict[str, Any]]:
        """List every record marked for review as {section, index, item}."""
        flagged = []
        for section in SECTIONS:
            for i, item in enumerate(getattr(self, section.attr)):
                if item.is_flagged:
                    flagged.append({"section": section.key, "index": i, "item": item.to_dict()})
        return flagged


# Preview edits. Each returns a new TestData and leaves the input untouched.

def _section(section_key: str) -> Section:
    try:
        return SECTIONS_BY_KEY[section_key]
    except KeyError:
        raise ExamEditError(f"Unknown section '{section_key}'") from None


def _check_index(items: list, index: Any, section_key: str) -> int:
    if isinstance(index, bool) or not isinstance(index, int):
        raise ExamEditError("Index must be an integer")
    if not 0 <= index < len(items):
        raise ExamEditError(f"Index {index} is out of range for '{section_key}'")
    return index


def move_item(test: TestData, section_key: str, from_index: int, to_index: int) -> TestData:
    """Reorder one record within its section (drag and drop in the preview)."""
    section = _section(section_key)
    updated = copy.deepcopy(test)
    items = getattr(updated, section.attr)
    _check_index(items, from_index, section_key)
    _check_index(items, to_index, section_key)
    moved = items.pop(from_index)
    items.insert(to_index, moved)
    return updated


def delete_item(test: TestData, section_key: str, index: int) -> TestData:
    section = _section(section_key)
    updated = copy.deepcopy(test)
    items = getattr(updated, section.attr)
    _check_index(items, index, section_key)
    del items[index]
    return updated


def toggle_flag(test: TestData, section_key: str, index: int) -> TestData:
    section = _section(section_key)
    updated = copy.deepcopy(test)
    items = getattr(updated, section.attr)
    _check_index(items, index, section_key)
    items[index].is_flagged = not items[index].is_flagged
    return updated


def update_item(test: TestData, section_key: str, index: int, fields: Dict[str, Any]) -> TestData:
    """
    Replace the text fields of one record.

    :param fields: JSON-named fields to overwrite, e.g. {"question": "..."}.
    """
    section = _section(section_key)
    if not isinstance(fields, dict) or not fields:
        raise ExamEditError("No fields to update")
    allowed = set(section.record_cls.JSON_FIELDS) | {"isFlagged"}
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise ExamEditError(f"Unknown field(s) for '{section_key}': {', '.join(unknown)}")

    updated = copy.deepcopy(test)
    items = getattr(updated, section.attr)
    _check_index(items, index, section_key)
    merged = items[index].to_dict()
    merged.update(fields)
    try:
        items[index] = section.record_cls.from_dict(merged)
    except ValueError as e:
        raise ExamEditError(str(e)) from e
    return updated


EDIT_ACTIONS = ("move", "delete", "flag", "update")


def apply_edit(test: TestData, action: str, section_key: str, index: int,
               to_index: Optional[int] = None, fields: Optional[Dict[str, Any]] = None) -> TestData:
    if action == "move":
        return move_item(test, section_key, index, to_index)
    if action == "delete":
        return delete_item(test, section_key, index)
    if action == "flag":
        return toggle_flag(test, section_key, index)
    if action == "update":
        return update_item(test, section_key, index, fields or {})
    raise ExamEditError(f"Unknown action '{action}'")
