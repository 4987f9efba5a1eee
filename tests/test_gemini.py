from types import SimpleNamespace

import openai
import pytest

import gemini
import prompt


class FakeCompletions:
    def __init__(self, reply="", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(monkeypatch, reply="", error=None):
    completions = FakeCompletions(reply, error)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    monkeypatch.setattr(gemini, "get_client", lambda: client)
    return completions


def test_send_chat_message_builds_conversation(monkeypatch):
    completions = fake_client(monkeypatch, "Sure, let's start with GA4.")
    history = [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello!"},
    ]

    reply = gemini.send_chat_message("How do I track purchases?", history)

    assert reply == "Sure, let's start with GA4."
    call = completions.calls[0]
    assert call["max_tokens"] == 2048
    assert call["temperature"] == 0.7
    messages = call["messages"]
    assert messages[0] == {"role": "system", "content": prompt.SYSTEM_PROMPT}
    assert messages[1] == {"role": "assistant", "content": prompt.CHAT_GREETING}
    assert messages[2:4] == history
    assert messages[-1] == {"role": "user", "content": "How do I track purchases?"}


def test_vendor_errors_become_gemini_error(monkeypatch):
    fake_client(monkeypatch, error=openai.OpenAIError("quota exceeded"))
    with pytest.raises(gemini.GeminiError):
        gemini.generate_content("hello")


def test_analyze_website_includes_url(monkeypatch):
    completions = fake_client(monkeypatch, "analysis")
    assert gemini.analyze_website("https://acme.example") == "analysis"
    assert "https://acme.example" in completions.calls[0]["messages"][0]["content"]


@pytest.mark.parametrize("text,expected", [
    ('```json\n{"businessType": "ecommerce"}\n```', {"businessType": "ecommerce"}),
    ('Here it is: {"a": {"b": 1}} hope it helps', {"a": {"b": 1}}),
    ("no json at all", None),
    ("{not valid json}", None),
    ("", None),
])
def test_extract_json(text, expected):
    assert gemini.extract_json(text) == expected


def test_generate_json_returns_empty_dict_on_failure(monkeypatch):
    fake_client(monkeypatch, error=openai.OpenAIError("down"))
    assert gemini.generate_json("give me json") == {}


def test_generate_gtm_configuration_formats_prompt(monkeypatch):
    completions = fake_client(monkeypatch, '{"containerConfig": {"containerId": "GTM-ABC123"}}')
    config = gemini.generate_gtm_configuration({
        "projectName": "Acme",
        "url": "https://acme.example",
        "businessType": "ecommerce",
        "platforms": ["Meta Ads"],
    })

    assert config == {"containerConfig": {"containerId": "GTM-ABC123"}}
    sent = completions.calls[0]["messages"][0]["content"]
    assert "Acme" in sent
    assert '"Meta Ads"' in sent
