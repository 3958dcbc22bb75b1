import pytest

from exam import (
    COUNT_DEFAULTS,
    MCQ,
    Difficulty,
    ExamEditError,
    QuestionConfig,
    TestData,
    TrueFalse,
    apply_edit,
    delete_item,
    move_item,
    toggle_flag,
    update_item,
)


class TestQuestionConfig:
    def test_defaults_when_empty(self):
        config = QuestionConfig.from_dict(None)
        assert config.mcq_count == COUNT_DEFAULTS["mcqCount"]
        assert config.difficulty is Difficulty.MEDIUM
        assert config.watermark_opacity == pytest.approx(0.1)

    @pytest.mark.parametrize("data", [["mcqCount", 9], "Hard", 3])
    def test_non_object_config_gives_defaults(self, data):
        assert QuestionConfig.from_dict(data) == QuestionConfig()

    def test_counts_clamped_to_limits(self):
        config = QuestionConfig.from_dict({
            "mcqCount": 120, "essayCount": 9, "matchCount": -4, "longQCount": "7",
        })
        assert config.mcq_count == 50
        assert config.essay_count == 5
        assert config.match_count == 0
        assert config.long_q_count == 7

    def test_garbage_counts_fall_back_to_defaults(self):
        config = QuestionConfig.from_dict({"tfCount": "lots", "blankCount": True})
        assert config.tf_count == COUNT_DEFAULTS["tfCount"]
        assert config.blank_count == COUNT_DEFAULTS["blankCount"]

    def test_difficulty_is_case_insensitive(self):
        assert QuestionConfig.from_dict({"difficulty": "conceptual"}).difficulty is Difficulty.CONCEPTUAL
        assert QuestionConfig.from_dict({"difficulty": "nightmare"}).difficulty is Difficulty.MEDIUM

    def test_watermark_opacity_clamped(self):
        assert QuestionConfig.from_dict({"watermarkOpacity": 0.01}).watermark_opacity == pytest.approx(0.05)
        assert QuestionConfig.from_dict({"watermarkOpacity": 2}).watermark_opacity == pytest.approx(0.5)
        assert QuestionConfig.from_dict({"watermarkOpacity": "nan"}).watermark_opacity == pytest.approx(0.1)

    def test_to_dict_uses_browser_keys(self):
        data = QuestionConfig.from_dict({"examName": "  Midterm  ", "difficulty": "Hard"}).to_dict()
        assert data["examName"] == "Midterm"
        assert data["difficulty"] == "Hard"
        assert set(COUNT_DEFAULTS) <= set(data)

    def test_total_questions(self):
        config = QuestionConfig.from_dict({
            "mcqCount": 1, "shortQCount": 0, "longQCount": 0, "tfCount": 2,
            "blankCount": 0, "essayCount": 0, "matchCount": 3,
        })
        assert config.total_questions() == 6


class TestRecords:
    def test_mcq_requires_two_options(self):
        with pytest.raises(ValueError):
            MCQ.from_dict({"question": "Q?", "options": ["only"], "answer": "only"})

    def test_mcq_drops_blank_options(self):
        mcq = MCQ.from_dict({"question": "Q?", "options": ["a", None, " ", "b"], "answer": "a"})
        assert mcq.options == ["a", "b"]

    def test_true_false_accepts_string_booleans(self):
        assert TrueFalse.from_dict({"statement": "Sky is blue", "isTrue": "TRUE"}).is_true is True
        with pytest.raises(ValueError):
            TrueFalse.from_dict({"statement": "Sky is blue", "isTrue": "maybe"})


class TestTestData:
    def test_round_trip(self, sample_test_dict):
        test = TestData.from_dict(sample_test_dict)
        data = test.to_dict()
        assert data["title"] == "Cell Biology Basics"
        assert data["mcqs"][0]["answer"] == "Mitochondria"
        assert data["mcqs"][0]["isFlagged"] is False
        assert data["matching"][0]["pairs"][1] == {"item": "Lysosome", "match": "Digestion"}

    def test_missing_title_rejected(self, sample_test_dict):
        sample_test_dict["title"] = "  "
        with pytest.raises(ValueError):
            TestData.from_dict(sample_test_dict)

    def test_malformed_record_names_its_position(self, sample_test_dict):
        sample_test_dict["essays"].append({"question": "No key points"})
        with pytest.raises(ValueError, match=r"essays\[1\]"):
            TestData.from_dict(sample_test_dict)

    def test_question_count_counts_matching_pairs(self, sample_test_dict):
        # 2 mcq + 1 short + 1 long + 2 tf + 1 blank + 1 essay + 3 pairs
        assert TestData.from_dict(sample_test_dict).question_count() == 11


class TestEdits:
    def test_move_reorders_without_touching_input(self, sample_test_dict):
        test = TestData.from_dict(sample_test_dict)
        moved = move_item(test, "mcqs", 0, 1)
        assert moved.mcqs[0].answer == "Deoxyribonucleic acid"
        assert test.mcqs[0].answer == "Mitochondria"

    def test_delete(self, sample_test_dict):
        test = TestData.from_dict(sample_test_dict)
        updated = delete_item(test, "trueFalse", 1)
        assert len(updated.true_false) == 1
        assert len(test.true_false) == 2

    def test_toggle_flag_twice_clears(self, sample_test_dict):
        test = TestData.from_dict(sample_test_dict)
        flagged = toggle_flag(test, "essays", 0)
        assert flagged.flagged_items() == [{
            "section": "essays",
            "index": 0,
            "item": flagged.essays[0].to_dict(),
        }]
        assert toggle_flag(flagged, "essays", 0).flagged_items() == []

    def test_update_merges_fields(self, sample_test_dict):
        test = TestData.from_dict(sample_test_dict)
        updated = update_item(test, "shortQuestions", 0, {"question": "What is osmosis?"})
        assert updated.short_questions[0].question == "What is osmosis?"
        assert updated.short_questions[0].answer_key == "Diffusion of water across a membrane."

    def test_update_rejects_unknown_fields(self, sample_test_dict):
        test = TestData.from_dict(sample_test_dict)
        with pytest.raises(ExamEditError, match="Unknown field"):
            update_item(test, "mcqs", 0, {"answerKey": "x"})

    def test_update_rejects_blanking_a_field(self, sample_test_dict):
        test = TestData.from_dict(sample_test_dict)
        with pytest.raises(ExamEditError):
            update_item(test, "fillInBlanks", 0, {"answer": ""})

    @pytest.mark.parametrize("section,index", [("mcqs", 5), ("mcqs", -1), ("nope", 0), ("mcqs", "0")])
    def test_bad_targets(self, sample_test_dict, section, index):
        test = TestData.from_dict(sample_test_dict)
        with pytest.raises(ExamEditError):
            delete_item(test, section, index)

    def test_apply_edit_dispatch(self, sample_test_dict):
        test = TestData.from_dict(sample_test_dict)
        assert apply_edit(test, "flag", "mcqs", 1).mcqs[1].is_flagged is True
        assert len(apply_edit(test, "delete", "matching", 0).matching) == 0
        with pytest.raises(ExamEditError):
            apply_edit(test, "shuffle", "mcqs", 0)
