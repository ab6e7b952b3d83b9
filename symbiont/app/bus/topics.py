"""Bus topic names shared by the gateway and the stage workers."""
from __future__ import annotations

PERCEIVE_URL = "tasks.perceive.url"
RAW_TEXT_DISCOVERED = "data.raw_text.discovered"
TEXT_TOKENIZED = "data.text.tokenized"
TEXT_WITH_EMBEDDINGS = "data.text.with_embeddings"

EMBEDDING_FOR_QUERY = "tasks.embedding.for_query"
SEMANTIC_SEARCH = "tasks.search.semantic.request"

GENERATE_TEXT = "tasks.generation.text"
TEXT_GENERATED = "events.text.generated"

INBOX_PREFIX = "_inbox"
