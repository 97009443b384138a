"""
Text Utilities for Hybrid RAG
Tokenizer for lexical (sparse) vectors, stable term hashing, truncation
"""
import hashlib
import re
import unicodedata


# English stopwords (common words to ignore in sparse vectors)
EN_STOPWORDS = {
    "a", "about", "above", "after", "again", "against", "all", "am", "an",
    "and", "any", "are", "as", "at", "be", "because", "been", "before",
    "being", "below", "between", "both", "but", "by", "can", "could", "did",
    "do", "does", "doing", "down", "during", "each", "few", "for", "from",
    "further", "had", "has", "have", "having", "he", "her", "here", "hers",
    "herself", "him", "himself", "his", "how", "i", "if", "in", "into", "is",
    "it", "its", "itself", "just", "me", "more", "most", "my", "myself", "no",
    "nor", "not", "now", "of", "off", "on", "once", "only", "or", "other",
    "our", "ours", "ourselves", "out", "over", "own", "same", "she", "should",
    "so", "some", "such", "than", "that", "the", "their", "theirs", "them",
    "themselves", "then", "there", "these", "they", "this", "those", "through",
    "to", "too", "under", "until", "up", "very", "was", "we", "were", "what",
    "when", "where", "which", "while", "who", "whom", "why", "will", "with",
    "would", "you", "your", "yours", "yourself", "yourselves",
}

TOKEN_PATTERN = re.compile(r"\b[a-z0-9]+(?:[.\-][a-z0-9]+)*\b")

# Sparse indices must fit a signed 32-bit integer
MAX_TERM_INDEX = 0x7FFFFFFF


def normalize_text(text: str) -> str:
    """Normalize text: lowercase, remove accents, clean whitespace"""
    text = text.lower()

    text = unicodedata.normalize('NFD', text)
    text = ''.join(c for c in text if unicodedata.category(c) != 'Mn')

    text = ' '.join(text.split())

    return text


def tokenize(text: str, remove_stopwords: bool = True) -> list[str]:
    """
    Simple lexical tokenizer
    - Lowercase, accents stripped
    - Punctuation removed (numbers and IDs like 3.14 or ISO-9001 kept)
    - Optionally remove stopwords
    """
    tokens = TOKEN_PATTERN.findall(normalize_text(text))

    if remove_stopwords:
        return [t for t in tokens if len(t) > 1 and t not in EN_STOPWORDS]
    return [t for t in tokens if len(t) > 1]


def term_index(token: str) -> int:
    """Stable (process-independent) hash of a token into the sparse index space"""
    digest = hashlib.md5(token.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") & MAX_TERM_INDEX


def truncate_text(text: str, max_chars: int) -> str:
    """Hard truncation to at most ``max_chars`` characters"""
    if len(text) <= max_chars:
        return text
    return text[:max_chars]


def preview(text: str, max_chars: int = 200) -> str:
    """Single-line preview of a text, with an ellipsis when cut"""
    flat = re.sub(r"\n+", " ", text)[:max_chars].strip()
    return flat + ("..." if len(text) > max_chars else "")
