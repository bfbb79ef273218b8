"""Shared fixtures: sample chapters, a fake Anthropic client and a scratch store."""
import copy
import json
from types import SimpleNamespace

import pytest

from execution.retry_handler import RetryHandler
from extraction.llm_client import LLMClient
from extraction.question_generator import QuestionGenerator
from ingestion.models import ChapterSource, Verse
from storage.database import Database


SAMPLE_PAGE = """<html>
<head>
<title>Bala Kanda - Sarga 1</title>
<script>var visits = 1;</script>
</head>
<body>
<p>Valmiki Ramayana, the first epic</p>
<p>1. तपःस्वाध्यायनिरतं तपस्वी वाग्विदां वरम् ।</p>
<p>नारदं परिपप्रच्छ वाल्मीकिर्मुनिपुङ्गवम् ॥</p>
<p>The ascetic Valmiki enquired of Narada, the eminent sage devoted to austerity and study.</p>
<p>2. कोन्वस्मिन् साम्प्रतं लोके गुणवान् कश्च वीर्यवान् ।</p>
<p>Who is there in this world today who is virtuous and valiant?</p>
<p>3. चारित्रेण च को युक्तः सर्वभूतेषु को हितः ।</p>
<p>Who is of good conduct and devoted to the welfare of all beings?</p>
<br>
<p>~</p>
<p>Next Sarga</p>
<p>&copy; copyright valmikiramayan</p>
<!-- footer -->
</body>
</html>"""


def make_question(
    text: str = "When Valmiki questioned Narada, what quality did he ask about first?",
    category: str = "characters",
    difficulty: str = "easy",
    **overrides
) -> dict:
    question = {
        "category": category,
        "difficulty": difficulty,
        "question_text": text,
        "options": ["Virtue", "Wealth", "Beauty", "Lineage"],
        "correct_answer_id": 0,
        "basic_explanation": "Valmiki first asks who in the world is truly virtuous.",
        "original_quote": "गुणवान्",
        "quote_translation": "virtuous",
        "tags": ["valmiki", "narada"],
        "cross_epic_tags": [],
    }
    question.update(overrides)
    return question


FOUR_QUESTIONS = [
    make_question(),
    make_question(
        "After hearing Valmiki's question, which sage began to describe Rama?",
        category="events",
        options=["Narada", "Vasishtha", "Vishvamitra", "Agastya"],
    ),
    make_question(
        "What ideal does Valmiki's search for a perfect man reflect about dharma?",
        category="themes",
        difficulty="medium",
        options=["Righteous conduct", "Royal power", "Ascetic withdrawal", "Ritual wealth"],
    ),
    make_question(
        "When Valmiki sat with Narada, what practice was Narada said to be devoted to?",
        category="culture",
        difficulty="medium",
        options=["Tapas and svadhyaya", "Trade", "Warfare", "Agriculture"],
    ),
]


class FakeMessages:
    """Stands in for ``Anthropic().messages``; replies are returned in order."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if not isinstance(reply, str):
            reply = json.dumps(reply, ensure_ascii=False)
        return SimpleNamespace(
            content=[SimpleNamespace(text=reply)],
            usage=SimpleNamespace(input_tokens=100, output_tokens=50)
        )


class FakeAnthropic:
    def __init__(self, replies):
        self.messages = FakeMessages(replies)


@pytest.fixture
def sample_source():
    return ChapterSource(
        kanda="bala_kanda",
        sarga=1,
        title="Bala Kanda - Sarga 1",
        source_url="https://www.valmikiramayan.net/utf8/baala/sarga1/bala_1_frame.htm",
        verses=[
            Verse(number=1, sanskrit="तपःस्वाध्यायनिरतं तपस्वी वाग्विदां वरम्",
                  translation="Valmiki enquired of Narada, devoted to austerity and study."),
            Verse(number=2, sanskrit="कोन्वस्मिन् साम्प्रतं लोके गुणवान् कश्च वीर्यवान्",
                  translation="Who is there in this world today who is virtuous and valiant?"),
            Verse(number=3, sanskrit="चारित्रेण च को युक्तः सर्वभूतेषु को हितः",
                  translation="Who is of good conduct and devoted to the welfare of all beings?"),
        ]
    )


@pytest.fixture
def db(tmp_path):
    return Database(tmp_path / "store.db")


@pytest.fixture
def make_generator(tmp_path):
    """Build a generator whose provider replies are scripted."""
    def factory(replies):
        client = FakeAnthropic(replies)
        llm = LLMClient(
            client,
            model="test-model",
            retry_handler=RetryHandler(max_retries=1),
            debug_dir=tmp_path / "debug"
        )
        generator = QuestionGenerator(
            llm,
            summaries_dir=tmp_path / "summaries",
            questions_dir=tmp_path / "questions",
            call_delay=0,
            sleep=lambda seconds: None
        )
        return generator, client
    return factory


@pytest.fixture
def sample_page():
    return SAMPLE_PAGE


@pytest.fixture
def question_factory():
    return make_question


@pytest.fixture
def four_questions():
    return copy.deepcopy(FOUR_QUESTIONS)
