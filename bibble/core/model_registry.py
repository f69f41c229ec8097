"""Model registry and generation parameter resolution."""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from bibble.config.schemas import ModelConfig

REASONING_MODEL_PATTERN = re.compile(r"^o\d")
DEFAULT_REASONING_EFFORT = "medium"

# Providers speaking the OpenAI API, which can serve gpt and o-series models
OPENAI_STYLE_PROVIDERS = ("openai", "openrouter", "openai_compatible")


@dataclass
class GenerationParams:
    """Sampling and length controls for one request.

    Standard models use temperature, top_p, top_k and max_tokens. Reasoning
    models use reasoning_effort and max_completion_tokens instead.
    """

    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    is_reasoning_model: bool = False
    reasoning_effort: Optional[str] = None
    max_completion_tokens: Optional[int] = None
    stop_sequences: List[str] = field(default_factory=list)


class ModelRegistry:
    """Model configurations keyed by model id."""

    def __init__(self, models: Optional[Iterable[ModelConfig]] = None):
        self._models: Dict[str, ModelConfig] = {}
        for model in models or []:
            self.register(model)

    def register(self, model: ModelConfig) -> None:
        self._models[model.id] = model

    def get(self, model_id: str) -> Optional[ModelConfig]:
        return self._models.get(model_id)

    def list_models(self) -> List[ModelConfig]:
        return list(self._models.values())

    def provider_for(self, model_id: str, default: str = "openai") -> str:
        """Provider configured for a model, or a guess from its id."""
        model = self.get(model_id)
        if model is not None:
            return model.provider
        if model_id.startswith("claude"):
            return "anthropic"
        if model_id.startswith("gemini"):
            return "google"
        if model_id.startswith("gpt-") or REASONING_MODEL_PATTERN.match(model_id):
            return default if default in OPENAI_STYLE_PROVIDERS else "openai"
        return default

    def is_reasoning_model(self, model_id: str) -> bool:
        model = self.get(model_id)
        if model is not None and model.is_reasoning_model:
            return True
        return bool(REASONING_MODEL_PATTERN.match(model_id))

    def resolve(self, model_id: str) -> GenerationParams:
        """Generation parameters for a model.

        Unregistered models get empty parameters, except that ids shaped like
        o1, o3-mini, ... are still treated as reasoning models.
        """
        model = self.get(model_id)

        if self.is_reasoning_model(model_id):
            return GenerationParams(
                is_reasoning_model=True,
                reasoning_effort=(model.reasoning_effort if model else None) or DEFAULT_REASONING_EFFORT,
                max_completion_tokens=(
                    (model.max_completion_tokens or model.max_tokens) if model else None
                ),
            )

        if model is None:
            return GenerationParams()

        return GenerationParams(
            max_tokens=model.max_tokens,
            temperature=model.temperature,
            top_p=model.top_p,
            top_k=model.top_k,
        )
