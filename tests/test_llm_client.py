from types import SimpleNamespace

import pytest

from niena.core.errors import AgentOutputError
from niena.services.llm_client import LLMClient, extract_json


class StubCompletions:
    def __init__(self, content):
        self.content = content
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class StubEmbeddings:
    def __init__(self):
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        return SimpleNamespace(data=[SimpleNamespace(embedding=(0.1, 0.2, 0.3))])


def make_client(content="{}"):
    completions = StubCompletions(content)
    embeddings = StubEmbeddings()
    openai_stub = SimpleNamespace(chat=SimpleNamespace(completions=completions), embeddings=embeddings)
    return LLMClient(client=openai_stub), completions, embeddings


# ============================================================
# extract_json
# ============================================================

def test_extract_json_plain_object():
    assert extract_json('{"name": "Ama"}') == {"name": "Ama"}


def test_extract_json_fenced_block():
    text = 'Here you go:\n```json\n{"skills": ["python"]}\n```\nAnything else?'
    assert extract_json(text) == {"skills": ["python"]}


def test_extract_json_prose_around_object():
    text = 'Sure! {"score": 4, "feedback": "good"} Hope this helps.'
    assert extract_json(text) == {"score": 4, "feedback": "good"}


def test_extract_json_array():
    assert extract_json('Result: [1, 2, 3]') == [1, 2, 3]


def test_extract_json_invalid_raises():
    with pytest.raises(AgentOutputError):
        extract_json("I could not do that")


def test_extract_json_none_raises():
    with pytest.raises(AgentOutputError):
        extract_json(None)


# ============================================================
# LLMClient
# ============================================================

def test_chat_json_mode_sets_response_format():
    client, completions, _ = make_client('{"ok": true}')
    answer = client.chat("system", "user", max_tokens=50, json_mode=True)

    assert answer == '{"ok": true}'
    assert completions.kwargs["response_format"] == {"type": "json_object"}
    assert completions.kwargs["max_tokens"] == 50
    assert completions.kwargs["messages"][0] == {"role": "system", "content": "system"}
    assert completions.kwargs["messages"][1] == {"role": "user", "content": "user"}


def test_chat_text_mode_has_no_response_format():
    client, completions, _ = make_client("plain text")
    client.chat("system", "user")
    assert "response_format" not in completions.kwargs


def test_chat_empty_content_raises():
    client, _, _ = make_client("")
    with pytest.raises(AgentOutputError):
        client.chat("system", "user")


def test_embed_returns_list():
    client, _, embeddings = make_client()
    vector = client.embed("python developer")
    assert vector == [0.1, 0.2, 0.3]
    assert embeddings.kwargs["input"] == "python developer"


def test_check_connection_false_on_error():
    client, _, _ = make_client("")
    assert client.check_connection() is False
