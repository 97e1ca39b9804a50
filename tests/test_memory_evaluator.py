"""Tests for the memory value evaluator."""

from unittest.mock import AsyncMock

import pytest

from app.services import llm_service
from app.services.memory_evaluator import (
    AUTO_SAVE,
    PROMPT_USER,
    SKIP,
    evaluate_memory_value,
    fallback_evaluation,
    parse_decision,
)


# -- parse_decision -------------------------------------------------------------


def test_parse_plain_json() -> None:
    decision = parse_decision('{"action": "auto_save", "reason": "New fact", "confidence": 0.92}')

    assert decision.action == AUTO_SAVE
    assert decision.reason == "New fact"
    assert decision.confidence == 0.92


def test_parse_json_inside_code_fence() -> None:
    reply = '```json\n{"action": "skip", "reason": "Greeting", "confidence": 0.4}\n```'

    assert parse_decision(reply).action == SKIP


def test_parse_clamps_confidence_and_defaults_reason() -> None:
    high = parse_decision('{"action": "prompt_user", "confidence": 7}')
    low = parse_decision('{"action": "prompt_user", "reason": "", "confidence": -1}')

    assert high.confidence == 1.0
    assert high.reason == "No reason provided"
    assert low.confidence == 0.0


def test_parse_missing_confidence_defaults_to_half() -> None:
    assert parse_decision('{"action": "skip"}').confidence == 0.5


@pytest.mark.parametrize("reply", [
    "I think you should save it.",
    '{"action": "archive", "reason": "x"}',
    '{"action": "skip", ',
    "",
])
def test_parse_rejects_unusable_replies(reply) -> None:
    with pytest.raises(ValueError):
        parse_decision(reply)


# -- fallback_evaluation ----------------------------------------------------------


def test_fallback_auto_save_on_learning_content() -> None:
    decision = fallback_evaluation("Explain recursion", "Recursion is when a function calls itself.", "")

    assert decision.action == AUTO_SAVE
    assert decision.confidence == 0.8


def test_fallback_auto_save_checked_before_skip() -> None:
    # "thanks" would match the skip list, but "fix" matches first
    decision = fallback_evaluation("thanks, that fix worked", "Glad to hear it!", "")

    assert decision.action == AUTO_SAVE


def test_fallback_skip_on_greeting() -> None:
    decision = fallback_evaluation("hello", "Hello! What can I do for you today?", "")

    assert decision.action == SKIP
    assert decision.confidence == 0.9


def test_fallback_skip_on_very_short_text() -> None:
    decision = fallback_evaluation("2+2", "4", "")

    assert decision.action == SKIP


def test_fallback_prompt_user_on_sensitive_content() -> None:
    decision = fallback_evaluation(
        "Store my passport details",
        "Passport details are confidential material; consider a vault.",
        "",
    )

    assert decision.action == PROMPT_USER
    assert decision.confidence == 0.7


def test_fallback_prompt_user_on_long_response_with_context() -> None:
    response = "Paris is the capital of France. " * 5
    decision = fallback_evaluation("capital of france?", response, "Paris: capital city")

    assert decision.action == PROMPT_USER
    assert decision.confidence == 0.6


def test_fallback_default_skip() -> None:
    response = "Paris is the capital of France. " * 5
    decision = fallback_evaluation("capital of france?", response, "")

    assert decision.action == SKIP
    assert decision.confidence == 0.5


# -- evaluate_memory_value ----------------------------------------------------------


async def test_evaluate_uses_model_reply(monkeypatch) -> None:
    complete = AsyncMock(return_value='{"action": "auto_save", "reason": "Fact", "confidence": 0.7}')
    monkeypatch.setattr(llm_service, "complete", complete)

    decision = await evaluate_memory_value("q", "a", "", model="gpt-4o-mini")

    assert decision.action == AUTO_SAVE
    _, kwargs = complete.call_args
    assert kwargs["model"] == "gpt-4o-mini"
    prompt = complete.call_args.args[0][1]["content"]
    assert 'User Query: "q"' in prompt


async def test_evaluate_falls_back_on_call_error(monkeypatch) -> None:
    monkeypatch.setattr(llm_service, "complete", AsyncMock(side_effect=ConnectionError("down")))

    decision = await evaluate_memory_value("hello", "Hello! What can I do for you today?", "", model="m")

    assert decision.action == SKIP
    assert decision.reason == "Basic conversation or very short response"


async def test_evaluate_falls_back_on_bad_reply(monkeypatch) -> None:
    monkeypatch.setattr(llm_service, "complete", AsyncMock(return_value="Definitely save this."))

    decision = await evaluate_memory_value("how to bake bread", "Mix flour and water.", "", model="m")

    assert decision.action == AUTO_SAVE


async def test_evaluate_without_model_skips_llm(monkeypatch) -> None:
    complete = AsyncMock()
    monkeypatch.setattr(llm_service, "complete", complete)

    await evaluate_memory_value("hello", "hi", "", model=None)

    complete.assert_not_called()
