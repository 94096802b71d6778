import os
import logging
from typing import Dict, List, Literal, Optional
from dataclasses import dataclass

from langchain_openai import ChatOpenAI
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from enum import StrEnum

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger('cvboost.agent.model_factory')

ModelRole = Literal["primary", "fast", "fallback"]


class LLMProviders(StrEnum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass
class ModelConfig:
    """Configuration for a specific model"""
    model_id: str
    provider: LLMProviders
    api_key_env: Optional[str] = None
    default_max_tokens: int = 4000


MODEL_CONFIGS = {
    "gpt-4o": ModelConfig("gpt-4o", LLMProviders.OPENAI, "OPENAI_API_KEY"),
    "gpt-4o-mini": ModelConfig("gpt-4o-mini", LLMProviders.OPENAI, "OPENAI_API_KEY"),
    "claude-sonnet-4.5": ModelConfig("claude-sonnet-4-5-20250929", LLMProviders.ANTHROPIC, "ANTHROPIC_API_KEY"),
    "claude-haiku-4.5": ModelConfig("claude-haiku-4-5-20251001", LLMProviders.ANTHROPIC, "ANTHROPIC_API_KEY"),
}

# Candidates per role, first available wins. LLM_MODEL overrides the primary choice.
MODEL_ROLE_FALLBACKS: Dict[str, List[str]] = {
    "primary": ["gpt-4o", "claude-sonnet-4.5"],
    "fast": ["gpt-4o-mini", "claude-haiku-4.5"],
    "fallback": ["claude-haiku-4.5", "gpt-4o-mini"],
}


class ModelFactory:
    """Creates chat models for a role, falling back along the role's candidate list"""

    def __init__(self):
        self._model_cache: Dict[str, BaseChatModel] = {}

    def _check_model_availability(self, model_name: str) -> bool:
        if model_name not in MODEL_CONFIGS:
            return False

        config = MODEL_CONFIGS[model_name]
        if config.api_key_env and not os.getenv(config.api_key_env):
            return False

        return True

    def _create_model(self, model_name: str, **kwargs) -> BaseChatModel:
        config = MODEL_CONFIGS[model_name]

        model_kwargs = {
            "temperature": kwargs.get("temperature", 0.3),
            "max_tokens": kwargs.get("max_tokens", config.default_max_tokens),
        }

        if config.provider == LLMProviders.OPENAI:
            return ChatOpenAI(model=config.model_id, api_key=os.getenv(config.api_key_env), **model_kwargs)
        elif config.provider == LLMProviders.ANTHROPIC:
            return ChatAnthropic(model_name=config.model_id, api_key=os.getenv(config.api_key_env), **model_kwargs)
        else:
            raise ValueError(f"Unsupported provider: {config.provider}")

    def candidates_for(self, role: ModelRole) -> List[str]:
        candidates = list(MODEL_ROLE_FALLBACKS[role])
        override = os.getenv("LLM_MODEL")
        if role == "primary" and override:
            candidates.insert(0, override)
        return candidates

    def get_model(self, role: ModelRole = "primary", **kwargs) -> BaseChatModel:
        """
        Get a chat model for a role.

        Args:
            role: "primary", "fast" or "fallback"
            **kwargs: temperature / max_tokens

        Raises:
            RuntimeError: If no candidate model has its API key configured
        """
        cache_key = f"{role}:{sorted(kwargs.items())}"
        if cache_key in self._model_cache:
            return self._model_cache[cache_key]

        candidates = self.candidates_for(role)
        for candidate in candidates:
            if not self._check_model_availability(candidate):
                continue
            model = self._create_model(candidate, **kwargs)
            logger.info(f"Using model {candidate} for role {role}")
            self._model_cache[cache_key] = model
            return model

        raise RuntimeError(
            f"No available models for role '{role}'. Tried: {candidates}. Please check your API key configuration."
        )


model_factory = ModelFactory()


def get_model(role: ModelRole = "primary", **kwargs) -> BaseChatModel:
    return model_factory.get_model(role, **kwargs)
