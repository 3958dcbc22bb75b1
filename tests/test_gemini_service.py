import base64
import json

import pytest

import gemini_service
from exam import Difficulty, QuestionConfig
from gemini_service import (
    EMPTY_CHAT_REPLY,
    RESPONSE_SCHEMA,
    GenerationError,
    build_contents,
    build_prompt,
    chat_with_study_ai,
    generate_test_from_content,
    parse_test_response,
    resolve_mcq_answer,
    to_gemini_history,
)


def full_config(**overrides):
    data = {
        "mcqCount": 2, "shortQCount": 1, "longQCount": 1, "tfCount": 2,
        "blankCount": 1, "essayCount": 1, "matchCount": 3,
    }
    data.update(overrides)
    return QuestionConfig.from_dict(data)


class TestPrompt:
    def test_prompt_lists_counts_and_difficulty(self):
        prompt = build_prompt(full_config(difficulty="Hard", mcqCount=7))
        assert "- MCQs: 7" in prompt
        assert "- Difficulty Level: Hard" in prompt
        assert "complex analysis" in prompt

    def test_topic_focus_included_only_when_set(self):
        assert "IMPORTANT: Focus the test" not in build_prompt(full_config())
        prompt = build_prompt(full_config(topicFocus="Chapter 4"))
        assert '"Chapter 4"' in prompt

    def test_contents_with_file_and_text(self):
        file = {"name": "notes.pdf", "mimeType": "application/pdf",
                "data": base64.b64encode(b"%PDF-1.4 fake").decode()}
        contents = build_contents(file, "extra notes", full_config())
        assert len(contents) == 3
        assert contents[1] == {"mime_type": "application/pdf", "data": b"%PDF-1.4 fake"}
        assert contents[2].startswith("Context Content:\n")

    def test_contents_text_only(self):
        assert len(build_contents(None, "just text", full_config())) == 2

    @pytest.mark.parametrize("file", [
        {"name": "x.pdf", "data": "AAAA"},
        {"name": "x.pdf", "mimeType": "application/pdf", "data": "not base64!!"},
    ])
    def test_invalid_file_data(self, file):
        with pytest.raises(GenerationError):
            build_contents(file, "", full_config())


class TestMcqAnswer:
    OPTIONS = ["London", "Paris", "Rome", "Berlin"]

    @pytest.mark.parametrize("answer,expected", [
        ("Paris", "Paris"),
        ("paris", "Paris"),
        ("B", "Paris"),
        ("c)", "Rome"),
        ("Option D", "Berlin"),
        ("B) Paris", "Paris"),
        ("Madrid", "Madrid"),
        ("Z", "Z"),
    ])
    def test_resolve(self, answer, expected):
        assert resolve_mcq_answer(self.OPTIONS, answer) == expected


class TestParseResponse:
    def test_trims_to_requested_counts(self, sample_test_dict):
        config = full_config(mcqCount=1, tfCount=0)
        test = parse_test_response(json.dumps(sample_test_dict), config)
        assert len(test.mcqs) == 1
        assert test.true_false == []
        assert len(test.essays) == 1

    def test_strips_code_fences_and_prose(self, sample_test_dict):
        raw = "Here you go:\n```json\n" + json.dumps(sample_test_dict) + "\n```"
        assert parse_test_response(raw, full_config()).title == "Cell Biology Basics"
        raw = "Sure! " + json.dumps(sample_test_dict) + " Good luck."
        assert parse_test_response(raw, full_config()).title == "Cell Biology Basics"

    def test_code_blocks_inside_questions_survive(self, sample_test_dict):
        question = "What does this print?\n```python\nprint(1)\n```"
        sample_test_dict["shortQuestions"] = [{"question": question, "answerKey": "1"}]
        raw = json.dumps(sample_test_dict)

        assert parse_test_response(raw, full_config()).short_questions[0].question == question
        fenced = "```json\n" + raw + "\n```"
        assert parse_test_response(fenced, full_config()).short_questions[0].question == question

    def test_invalid_json(self):
        with pytest.raises(GenerationError):
            parse_test_response("not json at all", full_config())

    def test_missing_title(self, sample_test_dict):
        del sample_test_dict["title"]
        with pytest.raises(GenerationError, match="title"):
            parse_test_response(json.dumps(sample_test_dict), full_config())

    def test_malformed_records_dropped(self, sample_test_dict):
        sample_test_dict["mcqs"].insert(0, {"question": "Broken", "options": "A,B"})
        test = parse_test_response(json.dumps(sample_test_dict), full_config())
        assert [q.question for q in test.mcqs] == [
            "Which organelle produces ATP?", "What does DNA stand for?",
        ]

    def test_letter_answers_mapped_to_option_text(self, sample_test_dict):
        sample_test_dict["mcqs"][0]["answer"] = "B"
        test = parse_test_response(json.dumps(sample_test_dict), full_config())
        assert test.mcqs[0].answer == "Mitochondria"

    def test_matching_groups_merged_and_capped(self, sample_test_dict):
        sample_test_dict["matching"].append({"pairs": [
            {"item": "Vacuole", "match": "Storage"},
            {"item": "Nucleus", "match": "DNA"},
        ]})
        test = parse_test_response(json.dumps(sample_test_dict), full_config(matchCount=4))
        assert len(test.matching) == 1
        assert [p.item for p in test.matching[0].pairs] == [
            "Chloroplast", "Lysosome", "Ribosome", "Vacuole",
        ]

    def test_zero_matching_requested(self, sample_test_dict):
        test = parse_test_response(json.dumps(sample_test_dict), full_config(matchCount=0))
        assert test.matching == []


class TestGenerate:
    def test_sends_schema_and_parses(self, fake_model, sample_test_dict):
        model = fake_model(text=json.dumps(sample_test_dict))
        test = generate_test_from_content(None, "Cells are the unit of life.", full_config(), model=model)

        assert test.title == "Cell Biology Basics"
        call = model.calls[0]
        assert call["generation_config"]["response_mime_type"] == "application/json"
        assert call["generation_config"]["response_schema"] is RESPONSE_SCHEMA
        assert "Context Content:\nCells are the unit of life." in call["contents"]

    def test_empty_response(self, fake_model):
        with pytest.raises(GenerationError, match="No response generated"):
            generate_test_from_content(None, "text", full_config(), model=fake_model(text=""))

    def test_blocked_response(self, fake_model):
        model = fake_model(error=ValueError("no parts"), prompt_feedback="block_reason: SAFETY")
        with pytest.raises(GenerationError, match="SAFETY"):
            generate_test_from_content(None, "text", full_config(), model=model)


class TestChat:
    def test_history_conversion(self):
        history = [
            {"role": "model", "text": "Hello, I am Study.AI"},
            {"role": "user", "text": "What is ATP?"},
            {"role": "model", "text": "An energy carrier."},
            {"role": "system", "text": "ignored"},
            {"role": "user", "text": "   "},
            "junk",
        ]
        assert to_gemini_history(history) == [
            {"role": "user", "parts": ["What is ATP?"]},
            {"role": "model", "parts": ["An energy carrier."]},
        ]

    def test_history_limit(self):
        history = [{"role": "user" if i % 2 else "model", "text": f"m{i}"} for i in range(10)]
        converted = to_gemini_history(history, limit=4)
        assert [m["parts"][0] for m in converted] == ["m7", "m8", "m9"]

    def test_chat_reply(self, fake_model):
        model = fake_model(text="Mitochondria make ATP.")
        reply = chat_with_study_ai([{"role": "user", "text": "hi"}], "Where is ATP made?", model=model)
        assert reply == "Mitochondria make ATP."
        assert model.sent == ["Where is ATP made?"]
        assert model.chats[0].history == [{"role": "user", "parts": ["hi"]}]

    def test_chat_empty_reply(self, fake_model):
        assert chat_with_study_ai([], "hello", model=fake_model(text="")) == EMPTY_CHAT_REPLY
        assert chat_with_study_ai([], "hello", model=fake_model(error=ValueError("x"))) == EMPTY_CHAT_REPLY


def test_every_difficulty_has_instructions():
    assert set(gemini_service.DIFFICULTY_INSTRUCTIONS) == set(Difficulty)
