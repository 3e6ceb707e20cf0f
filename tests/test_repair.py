"""Tests for the bounded repair loop."""

import asyncio

import pytest
from conftest import ScriptedOracle

from api_glue.engine.repair import (
    Conversation,
    ParsedArtifact,
    RepairTask,
    TemperatureRamp,
    parse_artifact,
    repair,
)
from api_glue.errors import (
    CallFailure,
    GenerationExhausted,
    MalformedOutput,
    OracleFailure,
    ValidationFailure,
)

ANSWER_SCHEMA = {
    "type": "object",
    "required": ["answer"],
    "properties": {"answer": {"type": "integer"}},
}


def make_task(check=None, **kwargs) -> RepairTask:
    return RepairTask(
        name="answer",
        system_prompt="Answer with a number.",
        instruction="What is six times seven?",
        subject={"a": 6, "b": 7},
        output_schema=ANSWER_SCHEMA,
        check=check,
        **kwargs,
    )


class TestParseArtifact:
    """Tests for parsing oracle output."""

    def test_plain_json(self):
        assert parse_artifact('{"answer": 42}') == ParsedArtifact({"answer": 42})

    def test_code_fenced_json(self):
        parsed = parse_artifact('```json\n{"answer": 42}\n```')
        assert parsed == ParsedArtifact({"answer": 42})

    def test_invalid_json_is_malformed(self):
        parsed = parse_artifact("the answer is 42")

        assert isinstance(parsed, MalformedOutput)
        assert parsed.raw == "the answer is 42"

    def test_non_object_is_malformed(self):
        assert isinstance(parse_artifact("[42]"), MalformedOutput)


class TestTemperatureRamp:
    """Tests for the temperature schedule."""

    def test_first_attempt_is_deterministic(self):
        assert TemperatureRamp().temperature_for(0) == 0.0

    def test_monotonic_and_capped(self):
        ramp = TemperatureRamp(step=0.3, cap=1.0)
        temps = [ramp.temperature_for(i) for i in range(8)]

        assert temps == sorted(temps)
        assert max(temps) == 1.0
        assert temps[1] == pytest.approx(0.3)
        assert temps[3] == pytest.approx(0.9)


class TestConversation:
    """Tests for the immutable conversation."""

    def test_append_returns_new_conversation(self):
        base = Conversation().append("system", "hi")
        longer = base.append("user", "question")

        assert len(base.messages) == 1
        assert len(longer.messages) == 2

    def test_after_failure_carries_error(self):
        conversation = Conversation().append("user", "question")
        error = ValidationFailure("bad output")

        next_conversation = conversation.after_failure('{"answer": "x"}', error)

        assert next_conversation.messages[-2] == {"role": "assistant", "content": '{"answer": "x"}'}
        assert "bad output" in next_conversation.messages[-1]["content"]
        assert len(conversation.messages) == 1


class TestRepair:
    """Tests for repair()."""

    @pytest.mark.asyncio
    async def test_first_attempt_success(self):
        """Test that a valid first answer needs exactly one oracle call."""
        oracle = ScriptedOracle([{"answer": 42}])

        outcome = await repair(make_task(), 3, oracle)

        assert outcome.artifact == {"answer": 42}
        assert outcome.attempts == 1
        assert outcome.retries == 0
        assert len(oracle.calls) == 1
        assert oracle.temperatures == [0.0]

    @pytest.mark.asyncio
    async def test_k_failures_then_success(self):
        """Test that k failures followed by success make k+1 calls."""
        oracle = ScriptedOracle([{"answer": "x"}, {"wrong": 1}, {"answer": 42}])

        outcome = await repair(make_task(), 3, oracle)

        assert outcome.attempts == 3
        assert len(oracle.calls) == 3

    @pytest.mark.asyncio
    async def test_exhaustion_after_max_retries_plus_one(self):
        """Test that the loop gives up after max_retries + 1 attempts."""
        oracle = ScriptedOracle([{"answer": "never a number"}])

        with pytest.raises(GenerationExhausted) as exc_info:
            await repair(make_task(), 2, oracle)

        assert exc_info.value.attempts == 3
        assert len(oracle.calls) == 3
        assert isinstance(exc_info.value.last_error, ValidationFailure)

    @pytest.mark.asyncio
    async def test_zero_retries_makes_single_attempt(self):
        oracle = ScriptedOracle([{"answer": "x"}])

        with pytest.raises(GenerationExhausted):
            await repair(make_task(), 0, oracle)

        assert len(oracle.calls) == 1

    @pytest.mark.asyncio
    async def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            await repair(make_task(), -1, ScriptedOracle([{"answer": 1}]))

    @pytest.mark.asyncio
    async def test_temperature_ramps_per_attempt(self):
        """Test that temperatures rise per attempt and stay capped."""
        oracle = ScriptedOracle([{"answer": "x"}])

        with pytest.raises(GenerationExhausted):
            await repair(make_task(), 5, oracle, TemperatureRamp(step=0.3, cap=1.0))

        temps = oracle.temperatures
        assert temps == sorted(temps)
        assert temps[0] == 0.0
        assert max(temps) == 1.0

    @pytest.mark.asyncio
    async def test_no_temperature_for_unsupported_oracle(self):
        oracle = ScriptedOracle([{"answer": "x"}, {"answer": 1}], supports_temperature=False)

        await repair(make_task(), 3, oracle)

        assert oracle.temperatures == [None, None]

    @pytest.mark.asyncio
    async def test_malformed_output_is_retried(self):
        oracle = ScriptedOracle(["not json at all", '```json\n{"answer": 42}\n```'])

        outcome = await repair(make_task(), 3, oracle)

        assert outcome.artifact == {"answer": 42}
        assert outcome.attempts == 2

    @pytest.mark.asyncio
    async def test_oracle_failure_is_retried(self):
        oracle = ScriptedOracle([OracleFailure("rate limited"), {"answer": 42}])

        outcome = await repair(make_task(), 3, oracle)

        assert outcome.attempts == 2

    @pytest.mark.asyncio
    async def test_failure_fed_back_to_oracle(self):
        """Test that the next attempt sees the previous raw output and error."""
        oracle = ScriptedOracle([{"answer": "x"}, {"answer": 42}])

        await repair(make_task(), 3, oracle)

        second = oracle.calls[1]["messages"]
        assert len(second) == len(oracle.calls[0]["messages"]) + 2
        assert second[-2]["role"] == "assistant"
        assert "The previous attempt failed" in second[-1]["content"]
        assert "$.answer" in second[-1]["content"]

    @pytest.mark.asyncio
    async def test_check_result_is_returned(self):
        async def check(artifact):
            return artifact["answer"] * 2

        outcome = await repair(make_task(check=check), 3, ScriptedOracle([{"answer": 21}]))

        assert outcome.artifact == 42

    @pytest.mark.asyncio
    async def test_check_repairable_failure_is_retried(self):
        async def check(artifact):
            if artifact["answer"] != 42:
                raise ValidationFailure("wrong answer")
            return artifact["answer"]

        oracle = ScriptedOracle([{"answer": 41}, {"answer": 42}])

        outcome = await repair(make_task(check=check), 3, oracle)

        assert outcome.artifact == 42
        assert len(oracle.calls) == 2

    @pytest.mark.asyncio
    async def test_non_repairable_error_propagates(self):
        """Test that a non-repairable error stops the loop immediately."""

        async def check(artifact):
            raise CallFailure("server down", CallFailure.HTTP_STATUS, status_code=503)

        oracle = ScriptedOracle([{"answer": 42}])

        with pytest.raises(CallFailure):
            await repair(make_task(check=check), 3, oracle)

        assert len(oracle.calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_tasks_are_independent(self):
        """Test that concurrent loops do not share conversation state."""
        oracles = [ScriptedOracle([{"answer": "x"}] * i + [{"answer": i}]) for i in range(4)]

        outcomes = await asyncio.gather(
            *(repair(make_task(), 5, oracle) for oracle in oracles)
        )

        for i, (outcome, oracle) in enumerate(zip(outcomes, oracles)):
            assert outcome.artifact == {"answer": i}
            assert outcome.attempts == i + 1
            assert len(oracle.calls[-1]["messages"]) == 2 + 2 * i
