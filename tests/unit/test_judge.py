"""
Unit tests for LLM judges and the judge factory.
"""

from unittest.mock import Mock, patch

import pytest
import requests

from coach_memory.config.settings import ClassifierCfg
from coach_memory.generation.judge import MockJudge, OllamaJudge, create_judge


def test_mock_judge_records_prompts():
    judge = MockJudge('{"shouldSave": true, "confidence": 1.0}')

    assert judge.judge("prompt one") == '{"shouldSave": true, "confidence": 1.0}'
    assert judge.prompts == ["prompt one"]
    assert judge.is_available()


def test_mock_judge_default_reply_declines():
    assert '"shouldSave": false' in MockJudge().judge("anything")


@patch("coach_memory.generation.judge.requests.post")
def test_ollama_judge_success(mock_post):
    mock_post.return_value = Mock(status_code=200, json=Mock(return_value={"response": '  {"shouldSave": true} \n'}))
    judge = OllamaJudge(model="llama3", base_url="http://localhost:11434/", timeout=3.0)

    assert judge.judge("classify this") == '{"shouldSave": true}'

    url = mock_post.call_args[0][0]
    kwargs = mock_post.call_args[1]
    assert url == "http://localhost:11434/api/generate"
    assert kwargs["json"]["format"] == "json"
    assert kwargs["json"]["stream"] is False
    assert kwargs["timeout"] == 3.0


@patch("coach_memory.generation.judge.requests.post")
def test_ollama_judge_http_error(mock_post):
    mock_post.return_value = Mock(status_code=500, text="boom")

    with pytest.raises(RuntimeError, match="500"):
        OllamaJudge().judge("x")


@patch("coach_memory.generation.judge.requests.post")
def test_ollama_judge_timeout(mock_post):
    mock_post.side_effect = requests.exceptions.Timeout()

    with pytest.raises(RuntimeError, match="timed out"):
        OllamaJudge(timeout=1.0).judge("x")


@patch("coach_memory.generation.judge.requests.post")
def test_ollama_judge_connection_error(mock_post):
    mock_post.side_effect = requests.exceptions.ConnectionError("refused")

    with pytest.raises(RuntimeError, match="Ollama request failed"):
        OllamaJudge().judge("x")


@patch("coach_memory.generation.judge.requests.get")
def test_ollama_is_available(mock_get):
    mock_get.return_value = Mock(status_code=200)
    assert OllamaJudge().is_available()

    mock_get.side_effect = requests.exceptions.ConnectionError()
    assert not OllamaJudge().is_available()


@pytest.mark.parametrize("cfg", [
    ClassifierCfg(provider="none"),
    ClassifierCfg(provider="mock", use_llm=False),
])
def test_create_judge_disabled(cfg):
    assert create_judge(cfg) is None


def test_create_judge_mock():
    assert isinstance(create_judge(ClassifierCfg(provider="mock")), MockJudge)


def test_create_judge_ollama():
    judge = create_judge(ClassifierCfg(provider="ollama", model="mistral", timeout=4.0))

    assert isinstance(judge, OllamaJudge)
    assert judge.model == "mistral"
    assert judge.base_url == "http://localhost:11434"
    assert judge.timeout == 4.0
