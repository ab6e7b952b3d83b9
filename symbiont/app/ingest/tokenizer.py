"""Sentence and word splitting for scraped text."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List

SENTENCE_TERMINATORS = frozenset(".?!")
_WORD = re.compile(r"\w+(?:['’-]\w+)*", re.UNICODE)


@dataclass(slots=True)
class TokenizedDocument:
    """Sentences and word tokens extracted from one block of text."""

    sentences: list[str] = field(default_factory=list)
    tokens: list[str] = field(default_factory=list)


def normalize_whitespace(text: str) -> str:
    return " ".join(text.split())


def split_sentences(text: str) -> List[str]:
    """Split after every ``.``, ``?`` or ``!``; a trailing remainder is its own sentence."""

    cleaned = normalize_whitespace(text)
    if not cleaned:
        return []

    sentences: list[str] = []
    start = 0
    for index, character in enumerate(cleaned):
        if character in SENTENCE_TERMINATORS:
            sentence = cleaned[start : index + 1].strip()
            if sentence:
                sentences.append(sentence)
            start = index + 1

    remainder = cleaned[start:].strip()
    if remainder:
        sentences.append(remainder)
    return sentences


def tokenize(text: str) -> List[str]:
    return _WORD.findall(text)


def tokenize_document(text: str) -> TokenizedDocument:
    sentences = split_sentences(text)
    tokens = [token for sentence in sentences for token in tokenize(sentence)]
    return TokenizedDocument(sentences=sentences, tokens=tokens)
