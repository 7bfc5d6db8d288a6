import json
from types import SimpleNamespace

import pytest

from clipshelf.errors import ClassificationError
from clipshelf.llm import OpenAIClassifier, is_url, parse_suggestion
from clipshelf.llm.classifier import MAX_TEXT_CHARS, wants_summary
from clipshelf.models import ImageContent, TextContent


class FakeCompletions:

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(reply=None, error=None):
    completions = FakeCompletions(reply, error)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def test_url_detection():
    assert is_url("https://example.com/page")
    assert is_url("  http://localhost:8000 ")
    assert not is_url("example.com")
    assert not is_url("ftp://example.com")
    assert not is_url("see https://example.com")


def test_summary_requested_for_urls_and_images_only():
    assert wants_summary(TextContent(plain="https://example.com"))
    assert wants_summary(ImageContent(data=b"x", width=1, height=1))
    assert not wants_summary(TextContent(plain="hello world"))


def test_classify_parses_reply():
    client, completions = fake_client(json.dumps({
        "category": "url",
        "tags": ["web", "example"],
        "summary": "Example domain",
    }))
    classifier = OpenAIClassifier(model="test-model", client=client)

    suggestion = classifier.classify(TextContent(plain="https://example.com"))

    assert suggestion.category == "url"
    assert suggestion.tags == ["web", "example"]
    assert suggestion.summary == "Example domain"
    request = completions.requests[0]
    assert request["model"] == "test-model"
    assert request["response_format"] == {"type": "json_object"}


def test_long_text_is_truncated():
    client, completions = fake_client('{"category": "notes", "tags": []}')
    classifier = OpenAIClassifier(client=client)

    classifier.classify(TextContent(plain="x" * (MAX_TEXT_CHARS + 500)))

    prompt = completions.requests[0]["messages"][-1]["content"]
    assert "x" * MAX_TEXT_CHARS + "..." in prompt
    assert "x" * (MAX_TEXT_CHARS + 1) not in prompt


def test_image_is_sent_as_data_url():
    classifier = OpenAIClassifier(client=object())

    messages = classifier.build_messages(ImageContent(data=b"\x89PNG", width=640, height=480))

    parts = messages[-1]["content"]
    assert "640" in parts[0]["text"]
    assert parts[1]["image_url"]["url"].startswith("data:image/png;base64,")


def test_missing_api_key_is_a_classification_error():
    classifier = OpenAIClassifier(api_key=None)

    assert not classifier.has_api_key
    with pytest.raises(ClassificationError):
        classifier.classify(TextContent(plain="hello"))


def test_configure_resets_client():
    client, _ = fake_client("{}")
    classifier = OpenAIClassifier(api_key="old", client=client)

    classifier.configure("new")

    assert classifier.has_api_key
    assert classifier._client is None


def test_transport_errors_become_classification_errors():
    import openai

    client, _ = fake_client(error=openai.OpenAIError("connection refused"))
    classifier = OpenAIClassifier(client=client)

    with pytest.raises(ClassificationError):
        classifier.classify(TextContent(plain="hello"))


def test_parse_tolerates_code_fences():
    suggestion = parse_suggestion('```json\n{"category": "command", "tags": ["shell"]}\n```')

    assert suggestion.category == "command"
    assert suggestion.tags == ["shell"]
    assert suggestion.summary is None


def test_parse_drops_non_string_tags():
    suggestion = parse_suggestion('{"category": "data", "tags": ["csv", 3, null]}')

    assert suggestion.tags == ["csv"]


@pytest.mark.parametrize("reply", [
    "I think this is a URL",
    "[1, 2]",
    '{"tags": ["no category"]}',
    '{"category": "  "}',
])
def test_unusable_replies_raise(reply):
    with pytest.raises(ClassificationError):
        parse_suggestion(reply)
