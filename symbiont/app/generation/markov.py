"""Word-level Markov chain text generator."""
from __future__ import annotations

import logging
import random
from collections import defaultdict
from pathlib import Path
from typing import Dict, List

logger = logging.getLogger(__name__)

DEFAULT_CORPUS = (
    "I went for a walk in the park and saw a dog there. "
    "The dog was very cheerful and I decided to play with it. "
    "We ran across the grass and the dog chased a ball. "
    "After the walk I went home and wrote about the park."
)
UNTRAINED_TEXT = "Model not trained."


class MarkovModel:
    """First-order chain of word successors with a set of starter words."""

    def __init__(self, *, rng: random.Random | None = None) -> None:
        self.chain: Dict[str, List[str]] = defaultdict(list)
        self.starters: List[str] = []
        self._rng = rng or random.Random()

    @property
    def trained(self) -> bool:
        return bool(self.chain) and bool(self.starters)

    def train(self, text: str) -> None:
        words = text.split()
        if not words:
            logger.warning("Markov training text is empty")
            return
        if words[0] not in self.starters:
            self.starters.append(words[0])
        for current, following in zip(words, words[1:]):
            self.chain[current].append(following)
        self.starters.sort()
        logger.info(
            "Markov model trained: %d states, %d starter words", len(self.chain), len(self.starters)
        )

    def generate(self, max_length: int, prompt: str | None = None) -> str:
        """Walk the chain for at most ``max_length`` words.

        When the last word of ``prompt`` is a known state the walk starts
        there; otherwise it starts from a random starter word.
        """

        if not self.trained:
            logger.warning("Markov model has no states; cannot generate")
            return UNTRAINED_TEXT

        current = self._start_word(prompt)
        words = [current]
        while len(words) < max_length:
            successors = self.chain.get(current)
            if not successors:
                break
            current = self._rng.choice(successors)
            words.append(current)
        return " ".join(words)

    def _start_word(self, prompt: str | None) -> str:
        if prompt:
            prompt_words = prompt.split()
            if prompt_words and prompt_words[-1] in self.chain:
                return prompt_words[-1]
        return self._rng.choice(self.starters)


class MarkovGenerator:
    def __init__(self, model: MarkovModel) -> None:
        self.model = model

    @classmethod
    def from_corpus(cls, corpus_path: str | None = None) -> "MarkovGenerator":
        model = MarkovModel()
        if corpus_path:
            logger.info("Training Markov model from %s", corpus_path)
            model.train(Path(corpus_path).read_text(encoding="utf-8"))
        else:
            model.train(DEFAULT_CORPUS)
        return cls(model)

    async def generate(self, prompt: str | None, max_length: int) -> str:
        return self.model.generate(max_length, prompt=prompt)
