import asyncio

import pytest

from persona_core.config import EmbeddingConfig, HumanizerConfig, PersonaCoreConfig, PipelineConfig
from persona_core.exceptions import PipelineExecutionError, StageContractError
from persona_core.runtime.pipeline.orchestrator import PipelineOrchestrator, PipelineStages, is_retryable
from persona_core.runtime.pipeline.types import (
    ContextGathererOutput,
    EmotionalLayerState,
    EmotionalProcessorOutput,
    EmotionalState,
    IdentityResolverOutput,
    LearnerOutput,
    LLMCallerOutput,
    LLMCallResult,
    PromptBuilderOutput,
    PromptPayload,
    ResolvedIdentity,
)
from persona_core.runtime.telemetry import RecordingTelemetryClient

REPLY = (
    "That makes sense. The launch deadline is important, so let us protect Friday. "
    "I will keep the checklist short and we can review it together tomorrow morning."
)
SLOTS = [
    "context_gatherer",
    "identity_resolver",
    "emotional_processor",
    "prompt_builder",
    "llm_caller",
    "humanizer",
    "learner",
]


class FakeContextGatherer:
    name = "context_gatherer"

    def __init__(self, context):
        self.context = context

    async def run(self, payload):
        return ContextGathererOutput.extend(payload, context=self.context)


class FakeIdentityResolver:
    name = "identity_resolver"

    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    async def run(self, payload):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return IdentityResolverOutput.extend(payload, identity=ResolvedIdentity(variant="afternoon_self", energy=0.6))


class FakeEmotionalProcessor:
    name = "emotional_processor"

    async def run(self, payload):
        return EmotionalProcessorOutput.extend(
            payload,
            emotional=EmotionalState(felt=EmotionalLayerState(label="calm", intensity=0.4), discharge_risk=0.3),
        )


class FakePromptBuilder:
    name = "prompt_builder"

    async def run(self, payload):
        return PromptBuilderOutput.extend(
            payload, prompt=PromptPayload(system_instruction=f"You are {payload.context.persona.name}.")
        )


class ContractBreakingPromptBuilder:
    name = "prompt_builder"

    async def run(self, payload):
        return payload


class FlakyLLMCaller:
    name = "llm_caller"

    def __init__(self, failures=0, error_factory=lambda: ConnectionError("provider timeout"), text=REPLY):
        self.failures = failures
        self.error_factory = error_factory
        self.text = text
        self.calls = 0

    async def run(self, payload):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return LLMCallerOutput.extend(payload, llm=LLMCallResult(text=self.text, provider_id="fake", model="fake-1"))


@pytest.fixture
def build_stages(context_factory):
    def build(**overrides):
        stages = {
            "context_gatherer": FakeContextGatherer(context_factory()),
            "identity_resolver": FakeIdentityResolver(),
            "emotional_processor": FakeEmotionalProcessor(),
            "prompt_builder": FakePromptBuilder(),
            "llm_caller": FlakyLLMCaller(),
        }
        stages.update(overrides)
        return PipelineStages(**stages)

    return build


def test_pipeline_runs_all_stages_in_order(pipeline_input, build_stages):
    telemetry = RecordingTelemetryClient()
    orchestrator = PipelineOrchestrator(build_stages(), telemetry=telemetry)

    output = asyncio.run(orchestrator.run(pipeline_input))

    assert isinstance(output, LearnerOutput)
    assert output.user_message == pipeline_input.user_message
    assert output.prompt.system_instruction == "You are Mira."
    assert 2 <= len(output.humanized.messages) <= 4
    assert output.learner.extracted_memories
    assert telemetry.names() == [f"pipeline.{slot}" for slot in SLOTS]
    for _, attrs in telemetry.spans:
        assert attrs["success"] is True
        assert attrs["attempt"] == 1
        assert attrs["duration_ms"] >= 0


def test_llm_caller_retries_transient_failure(pipeline_input, build_stages):
    llm = FlakyLLMCaller(failures=1)
    telemetry = RecordingTelemetryClient()
    orchestrator = PipelineOrchestrator(build_stages(llm_caller=llm), telemetry=telemetry)

    output = asyncio.run(orchestrator.run(pipeline_input, max_retries=1))

    assert llm.calls == 2
    assert output.llm.text == REPLY
    llm_spans = [attrs for name, attrs in telemetry.spans if name == "pipeline.llm_caller"]
    assert [attrs["attempt"] for attrs in llm_spans] == [1, 2]
    assert llm_spans[0]["success"] is False
    assert llm_spans[0]["error_type"] == "ConnectionError"
    assert llm_spans[1]["success"] is True


def test_retry_policy_defaults_come_from_config(pipeline_input, build_stages):
    llm = FlakyLLMCaller(failures=2)
    orchestrator = PipelineOrchestrator(
        build_stages(llm_caller=llm), config=PipelineConfig(max_retries=2, retry_delay_ms=1)
    )

    asyncio.run(orchestrator.run(pipeline_input))

    assert llm.calls == 3


def test_exhausted_retries_raise_with_stage_and_cause(pipeline_input, build_stages):
    llm = FlakyLLMCaller(failures=5)
    orchestrator = PipelineOrchestrator(build_stages(llm_caller=llm))

    with pytest.raises(PipelineExecutionError) as excinfo:
        asyncio.run(orchestrator.run(pipeline_input, max_retries=2))

    assert llm.calls == 3
    assert excinfo.value.stage == "llm_caller"
    assert excinfo.value.attempts == 3
    assert isinstance(excinfo.value.__cause__, ConnectionError)


def test_other_stages_are_not_retried(pipeline_input, build_stages):
    identity = FakeIdentityResolver(error=RuntimeError("profile store down"))
    orchestrator = PipelineOrchestrator(build_stages(identity_resolver=identity))

    with pytest.raises(PipelineExecutionError) as excinfo:
        asyncio.run(orchestrator.run(pipeline_input, max_retries=3))

    assert identity.calls == 1
    assert excinfo.value.stage == "identity_resolver"
    assert isinstance(excinfo.value.cause, RuntimeError)


def test_validation_errors_are_not_retried(pipeline_input, build_stages):
    llm = FlakyLLMCaller(failures=1, error_factory=lambda: LLMCallResult.model_validate({}))
    orchestrator = PipelineOrchestrator(build_stages(llm_caller=llm))

    with pytest.raises(PipelineExecutionError) as excinfo:
        asyncio.run(orchestrator.run(pipeline_input, max_retries=3))

    assert llm.calls == 1
    assert excinfo.value.stage == "llm_caller"
    assert not is_retryable(excinfo.value.cause)


def test_wrong_output_type_is_a_contract_error(pipeline_input, build_stages):
    orchestrator = PipelineOrchestrator(build_stages(prompt_builder=ContractBreakingPromptBuilder()))

    with pytest.raises(PipelineExecutionError) as excinfo:
        asyncio.run(orchestrator.run(pipeline_input))

    assert excinfo.value.stage == "prompt_builder"
    assert isinstance(excinfo.value.__cause__, StageContractError)


def test_input_must_be_pipeline_input(build_stages):
    orchestrator = PipelineOrchestrator(build_stages())

    with pytest.raises(PipelineExecutionError) as excinfo:
        asyncio.run(orchestrator.run({"thread_id": "t1"}))

    assert excinfo.value.stage == "orchestrator"
    assert isinstance(excinfo.value.cause, StageContractError)


def test_one_character_reply_completes_the_turn(pipeline_input, build_stages):
    orchestrator = PipelineOrchestrator(build_stages(llm_caller=FlakyLLMCaller(text="k")))

    output = asyncio.run(orchestrator.run(pipeline_input))

    assert [m.text for m in output.humanized.messages] == ["k", "🙂"]
    assert output.learner.extracted_memories


def test_from_config_wires_core_stages(pipeline_input, context_factory):
    config = PersonaCoreConfig(
        embedding=EmbeddingConfig(dimensions=64),
        humanizer=HumanizerConfig(short_reply_followup="ok"),
        pipeline=PipelineConfig(max_retries=1),
    )
    llm = FlakyLLMCaller(failures=1, text="sure")
    orchestrator = PipelineOrchestrator.from_config(
        config,
        context_gatherer=FakeContextGatherer(context_factory()),
        identity_resolver=FakeIdentityResolver(),
        emotional_processor=FakeEmotionalProcessor(),
        prompt_builder=FakePromptBuilder(),
        llm_caller=llm,
    )

    output = asyncio.run(orchestrator.run(pipeline_input))

    assert llm.calls == 2
    assert [m.text for m in output.humanized.messages] == ["sure", "ok"]
    assert {len(memory.embedding) for memory in output.learner.extracted_memories} == {64}


class TracingLLMCaller:
    name = "llm_caller"

    async def run(self, payload):
        return TracedLLMCallerOutput(
            **dict(payload), llm=LLMCallResult(text=REPLY, provider_id="fake", model="fake-1"), trace_id="trace-7"
        )


class TracedLLMCallerOutput(LLMCallerOutput):
    trace_id: str


def test_extra_upstream_fields_reach_the_learner_output(pipeline_input, build_stages):
    orchestrator = PipelineOrchestrator(build_stages(llm_caller=TracingLLMCaller()))

    output = asyncio.run(orchestrator.run(pipeline_input))

    assert isinstance(output, LearnerOutput)
    assert output.trace_id == "trace-7"
