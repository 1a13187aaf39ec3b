"""Tests for the Gemini client with the genai SDK patched out."""

import json

import pytest
from unittest.mock import Mock, patch

from google.generativeai.types.generation_types import BlockedPromptException

from market_agent.config.settings import Settings
from market_agent.llm.gemini_client import GeminiClient
from market_agent.orchestration.planner import LLMPlanProposer
from market_agent.orchestration.schemas import RunPreferences


@pytest.fixture
def genai_mock():
    with patch("market_agent.llm.gemini_client.genai") as mocked:
        yield mocked


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def model(genai_mock):
    return genai_mock.GenerativeModel.return_value


def make_client(sleep, **kwargs) -> GeminiClient:
    return GeminiClient(api_key="test-key", sleep=sleep, **kwargs)


class TestGeminiClientSetup:
    """Test configuration and key handling."""

    def test_configures_sdk(self, genai_mock, sleep):
        client = make_client(sleep, model_name="gemini-test")

        genai_mock.configure.assert_called_once_with(api_key="test-key")
        genai_mock.GenerativeModel.assert_called_once_with("gemini-test")
        assert client.model_name == "gemini-test"

    def test_model_defaults_to_settings(self, genai_mock, sleep):
        client = GeminiClient(config=Settings(gemini_api_key="k", gemini_model="gemini-x"), sleep=sleep)

        assert client.model_name == "gemini-x"
        genai_mock.configure.assert_called_once_with(api_key="k")

    def test_missing_api_key_raises(self, genai_mock):
        with pytest.raises(ValueError, match="GEMINI_API_KEY"):
            GeminiClient(config=Settings(gemini_api_key=None))

        genai_mock.configure.assert_not_called()

    def test_rejects_zero_attempts(self, genai_mock, sleep):
        with pytest.raises(ValueError):
            make_client(sleep, max_attempts=0)


class TestGeminiClientRetries:
    """Test backoff, exhaustion and safety blocks."""

    def test_requests_json(self, genai_mock, model, sleep):
        model.generate_content.return_value = Mock(text="{}")

        assert make_client(sleep).generate_content("plan please") == "{}"

        genai_mock.types.GenerationConfig.assert_called_once_with(
            temperature=0.2, response_mime_type="application/json"
        )
        model.generate_content.assert_called_once_with(
            "plan please", generation_config=genai_mock.types.GenerationConfig.return_value
        )

    def test_retry_then_success(self, model, sleep):
        model.generate_content.side_effect = [
            RuntimeError("503 unavailable"),
            RuntimeError("503 unavailable"),
            Mock(text='{"steps": []}'),
        ]

        result = make_client(sleep).generate_content("plan")

        assert result == '{"steps": []}'
        assert model.generate_content.call_count == 3
        delays = [call.args[0] for call in sleep.call_args_list]
        assert len(delays) == 2
        assert 1.0 <= delays[0] <= 1.1
        assert 2.0 <= delays[1] <= 2.2

    def test_retries_exhausted_reraises(self, model, sleep):
        model.generate_content.side_effect = RuntimeError("quota exceeded")

        with pytest.raises(RuntimeError, match="quota exceeded"):
            make_client(sleep, max_attempts=3).generate_content("plan")

        assert model.generate_content.call_count == 3
        assert sleep.call_count == 2

    def test_blocked_prompt_not_retried(self, model, sleep):
        model.generate_content.side_effect = BlockedPromptException("blocked")

        with pytest.raises(BlockedPromptException):
            make_client(sleep).generate_content("plan")

        assert model.generate_content.call_count == 1
        sleep.assert_not_called()

    def test_retry_delay_doubles(self, sleep, genai_mock):
        client = make_client(sleep, base_delay=0.5)

        with patch("market_agent.llm.gemini_client.random.uniform", return_value=0.0):
            assert [client.retry_delay(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]


class TestGeminiPlanning:
    """Test the client behind the LLM plan proposer."""

    @pytest.mark.asyncio
    async def test_proposer_uses_client(self, model, sleep):
        plan = {
            "rationale": "Price first",
            "steps": [
                {
                    "type": "data_collection",
                    "tool": "getMarketData",
                    "parameters": {},
                    "expectedInsight": "Price action",
                }
            ],
        }
        model.generate_content.side_effect = [RuntimeError("timeout"), Mock(text=json.dumps(plan))]
        proposer = LLMPlanProposer(client=make_client(sleep))

        result = await proposer.propose("AAPL", RunPreferences(), ["getMarketData"])

        assert [step.tool for step in result.steps] == ["getMarketData"]
        assert sleep.call_count == 1
