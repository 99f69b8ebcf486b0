"""
Token budgeting for embedding inputs.

text-embedding-3-* models use the cl100k_base encoding and reject inputs
longer than EMBEDDING_TOKEN_LIMIT tokens.
"""
import re

import tiktoken

EMBEDDING_TOKEN_LIMIT = 8191
EMBEDDING_ENCODING = "cl100k_base"

_WHITESPACE = re.compile(r"\s+")
_encodings: dict[str, tiktoken.Encoding] = {}


def get_encoding(name: str = EMBEDDING_ENCODING) -> tiktoken.Encoding:
    if name not in _encodings:
        _encodings[name] = tiktoken.get_encoding(name)
    return _encodings[name]


def count_tokens(text: str) -> int:
    return len(get_encoding().encode(text))


def truncate_to_token_limit(text: str, max_tokens: int = EMBEDDING_TOKEN_LIMIT) -> str:
    """Keep the first max_tokens tokens of text."""
    enc = get_encoding()
    tokens = enc.encode(text)
    if len(tokens) <= max_tokens:
        return text
    return enc.decode(tokens[:max_tokens])


def prepare_embedding_input(text: str, max_tokens: int = EMBEDDING_TOKEN_LIMIT) -> str:
    """Collapse whitespace runs and fit text into the embedding token budget."""
    return truncate_to_token_limit(_WHITESPACE.sub(" ", text).strip(), max_tokens)
