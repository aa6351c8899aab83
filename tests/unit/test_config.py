"""Unit tests for configuration dataclasses."""

from dataclasses import FrozenInstanceError

import pytest

from draftmind.config import AdmissionConfig
from draftmind.config import ContextBudgetConfig
from draftmind.config import LLMConfig
from draftmind.config import MemoryConfig
from draftmind.config import StoreConfig


# ---------------------------------------------------------------------------
# LLMConfig
# ---------------------------------------------------------------------------


class TestLLMConfig:
    def test_defaults(self):
        cfg = LLMConfig()
        assert cfg.provider == "openai"
        assert cfg.model == "gpt-4o-mini"
        assert cfg.api_key is None
        assert cfg.base_url == "https://api.openai.com/v1"
        assert cfg.temperature == 0.2
        assert cfg.max_tokens == 4096
        assert cfg.timeout_seconds == 60.0


# ---------------------------------------------------------------------------
# AdmissionConfig
# ---------------------------------------------------------------------------


class TestAdmissionConfig:
    def test_defaults_match_provider_quota(self):
        cfg = AdmissionConfig()
        assert cfg.requests_per_minute == 50
        assert cfg.input_tokens_per_minute == 30_000
        assert cfg.output_tokens_per_minute == 8_000
        assert cfg.window_seconds == 60.0
        assert cfg.initial_backoff_seconds == 0.5
        assert cfg.max_backoff_seconds == 15.0
        assert cfg.output_warning_ratio == 0.8
        assert cfg.acquire_timeout_seconds == 120.0


# ---------------------------------------------------------------------------
# ContextBudgetConfig
# ---------------------------------------------------------------------------


class TestContextBudgetConfig:
    def test_defaults(self):
        cfg = ContextBudgetConfig()
        assert cfg.system_tokens == 4_000
        assert cfg.document_tokens == 80_000
        assert cfg.summary_tokens == 3_000
        assert cfg.chat_tokens == 47_000
        assert cfg.memory_tokens == 20_000
        assert cfg.summary_input_tokens == 20_000
        assert cfg.highlights_tokens == 10_000
        assert cfg.total_tokens == 164_000
        assert cfg.chars_per_token == 4
        assert cfg.summary_regen_threshold == 5

    def test_layer_quotas_sum_to_total(self):
        cfg = ContextBudgetConfig()
        layers = (
            cfg.system_tokens
            + cfg.document_tokens
            + cfg.summary_tokens
            + cfg.chat_tokens
            + cfg.memory_tokens
            + cfg.highlights_tokens
        )
        assert layers == cfg.total_tokens

    def test_document_head_and_tail_fit_quota(self):
        cfg = ContextBudgetConfig()
        assert (
            cfg.document_head_chars + cfg.document_tail_chars
            < cfg.document_tokens * cfg.chars_per_token
        )


# ---------------------------------------------------------------------------
# MemoryConfig / StoreConfig
# ---------------------------------------------------------------------------


class TestMemoryConfig:
    def test_defaults(self):
        cfg = MemoryConfig()
        assert cfg.extraction_content_chars == 4_000
        assert cfg.max_items_per_event == 15
        assert cfg.recent_statements == 5
        assert cfg.max_cached_memories == 1_024
        assert cfg.max_outcomes == 1_000
        assert cfg.recent_highlights == 3


class TestStoreConfig:
    def test_defaults(self):
        cfg = StoreConfig()
        assert cfg.key_prefix == "draftmind"
        assert cfg.ttl_seconds is None


# ---------------------------------------------------------------------------
# Immutability
# ---------------------------------------------------------------------------


class TestConfigImmutability:
    def test_llm_config_frozen(self):
        cfg = LLMConfig()
        with pytest.raises(FrozenInstanceError):
            cfg.provider = "anthropic"

    def test_admission_config_frozen(self):
        cfg = AdmissionConfig()
        with pytest.raises(FrozenInstanceError):
            cfg.requests_per_minute = 1

    def test_context_budget_config_frozen(self):
        cfg = ContextBudgetConfig()
        with pytest.raises(FrozenInstanceError):
            cfg.total_tokens = 1

    def test_custom_values(self):
        cfg = AdmissionConfig(requests_per_minute=5, input_tokens_per_minute=100)
        assert cfg.requests_per_minute == 5
        assert cfg.input_tokens_per_minute == 100
