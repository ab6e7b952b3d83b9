"""Pluggable text generators used by the generate stage."""
from __future__ import annotations

from typing import Protocol

from ..core.config import Settings
from .markov import MarkovGenerator, MarkovModel
from .ollama_client import OllamaGenerator


class TextGenerator(Protocol):
    async def generate(self, prompt: str | None, max_length: int) -> str:
        ...


def get_generator(config: Settings) -> TextGenerator:
    backend = config.GENERATION_BACKEND.lower()
    if backend == "markov":
        return MarkovGenerator.from_corpus(config.MARKOV_CORPUS_PATH)
    if backend == "ollama":
        return OllamaGenerator(model=config.OLLAMA_MODEL)
    raise ValueError(f"unknown generation backend {config.GENERATION_BACKEND!r}")


__all__ = ["MarkovGenerator", "MarkovModel", "OllamaGenerator", "TextGenerator", "get_generator"]
