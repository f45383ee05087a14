"""
Tests for prompt logging.
"""

import pytest

from planwell.llm import prompt_logger


@pytest.fixture
def log_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(prompt_logger, "LOG_DIR", tmp_path / "prompt_logs")
    prompt_logger.reset_session()
    prompt_logger.enable_prompt_logging(True)
    yield prompt_logger.LOG_DIR
    prompt_logger.enable_prompt_logging(False)
    prompt_logger.reset_session()


def test_disabled_by_default():
    assert prompt_logger.log_prompt(provider="primary", model="m", messages=[]) is None
    assert prompt_logger.get_session_log_dir() is None


def test_writes_markdown_per_call(log_dir):
    messages = [{"role": "system", "content": "You are a nutritionist."}, {"role": "user", "content": "Plan please"}]

    first = prompt_logger.log_prompt(
        provider="primary",
        model="primary-model",
        messages=messages,
        attempt_id="a-1",
        raw_response='{"days": 7}',
        params={"temperature": 0.7},
    )
    second = prompt_logger.log_prompt(provider="fallback", model="fb", messages=messages, error="connection refused")

    assert first.name == "01_primary.md"
    assert second.name == "02_fallback.md"
    assert first.parent == prompt_logger.get_session_log_dir()

    text = first.read_text(encoding="utf-8")
    assert "**Attempt:** a-1" in text
    assert "temperature=0.7" in text
    assert '"days": 7' in text
    assert "**ERROR:** connection refused" in second.read_text(encoding="utf-8")


def test_enabled_from_settings(log_dir):
    from planwell.config import Settings
    from planwell.llm.client import AIGenerationClient

    prompt_logger.enable_prompt_logging(False)
    AIGenerationClient.from_settings(Settings(_env_file=None, primary_ai_api_key="pk"))
    assert prompt_logger.LOG_PROMPTS is False

    AIGenerationClient.from_settings(Settings(_env_file=None, primary_ai_api_key="pk", planwell_log_prompts=True))
    assert prompt_logger.LOG_PROMPTS is True
