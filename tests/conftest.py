import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))


class FakeResponse:
    def __init__(self, text=None, error=None, prompt_feedback=None):
        self._text = text
        self._error = error
        self.prompt_feedback = prompt_feedback

    @property
    def text(self):
        if self._error:
            raise self._error
        return self._text


class FakeChat:
    def __init__(self, model, history):
        self.model = model
        self.history = history

    def send_message(self, message):
        self.model.sent.append(message)
        return self.model.response


class FakeModel:
    """Stands in for genai.GenerativeModel; records what it was asked."""

    def __init__(self, response):
        self.response = response
        self.calls = []
        self.chats = []
        self.sent = []

    def generate_content(self, contents, generation_config=None):
        self.calls.append({"contents": contents, "generation_config": generation_config})
        return self.response

    def start_chat(self, history=None):
        chat = FakeChat(self, history)
        self.chats.append(chat)
        return chat


@pytest.fixture
def sample_test_dict():
    return {
        "title": "Cell Biology Basics",
        "subtitle": "Unit 3 review",
        "mcqs": [
            {"question": "Which organelle produces ATP?",
             "options": ["Nucleus", "Mitochondria", "Ribosome", "Golgi body"],
             "answer": "Mitochondria"},
            {"question": "What does DNA stand for?",
             "options": ["Deoxyribonucleic acid", "Dinitrogen acid", "Dual nucleic acid", "None"],
             "answer": "Deoxyribonucleic acid"},
        ],
        "shortQuestions": [
            {"question": "Define osmosis.", "answerKey": "Diffusion of water across a membrane."},
        ],
        "longQuestions": [
            {"question": "Describe mitosis.", "answerKey": "Prophase, metaphase, anaphase, telophase."},
        ],
        "trueFalse": [
            {"statement": "Plant cells have a cell wall.", "isTrue": True},
            {"statement": "Ribosomes are membrane-bound.", "isTrue": False},
        ],
        "fillInBlanks": [
            {"sentence": "The ____ controls the cell.", "answer": "nucleus"},
        ],
        "essays": [
            {"question": "Discuss the endosymbiotic theory.", "keyPoints": "Mitochondria origin; double membrane"},
        ],
        "matching": [
            {"pairs": [
                {"item": "Chloroplast", "match": "Photosynthesis"},
                {"item": "Lysosome", "match": "Digestion"},
                {"item": "Ribosome", "match": "Protein synthesis"},
            ]},
        ],
    }


@pytest.fixture
def fake_model():
    def build(text=None, error=None, prompt_feedback=None):
        return FakeModel(FakeResponse(text=text, error=error, prompt_feedback=prompt_feedback))
    return build
