"""Keyword, concept and similarity heuristics.

All functions here are pure. The similarity score is deliberately
asymmetric: the keyword boost is computed from one side's keywords only,
so calculate_similarity(a, b, keywords_of_a) can differ from the
reverse comparison.
"""

import re
from collections import Counter

STOP_WORDS = frozenset(
    {
        "the",
        "and",
        "or",
        "but",
        "in",
        "on",
        "at",
        "to",
        "for",
        "of",
        "with",
        "by",
        "this",
        "that",
        "these",
        "those",
        "from",
        "into",
        "over",
        "under",
        "above",
        "below",
    }
)

MARKDOWN_PUNCTUATION = re.compile(r"[#*_`\[\]()]")
CONCEPT_PATTERN = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")
KEYWORD_BOOST = 0.3


def extract_keywords(content: str, limit: int = 20) -> list[str]:
    """Extract the most frequent meaningful words.

    Markdown punctuation becomes whitespace, words are lower-cased and
    anything of three characters or fewer (or a stop word) is dropped.
    Ties keep first-appearance order.

    Examples:
        >>> extract_keywords("Graph theory and graph databases")
        ['graph', 'theory', 'databases']
    """
    words = MARKDOWN_PUNCTUATION.sub(" ", content).lower().split()
    filtered = [w for w in words if len(w) > 3 and w not in STOP_WORDS]
    return [word for word, _ in Counter(filtered).most_common(limit)]


def extract_concepts(content: str) -> Counter[str]:
    """Count capitalised words and multi-word capitalised phrases.

    Examples:
        >>> extract_concepts("Machine Learning is fun. Machine Learning again.")
        Counter({'Machine Learning': 2})
    """
    return Counter(m.group(0) for m in CONCEPT_PATTERN.finditer(content) if len(m.group(0)) > 2)


def calculate_similarity(content1: str, content2: str, keywords: list[str]) -> float:
    """Heuristic similarity of content2 to content1.

    Jaccard similarity of the lower-cased whitespace word sets, plus
    0.3 times the fraction of `keywords` found in content2, capped at 1.

    Returns:
        Score in [0, 1]
    """
    words1 = set(content1.lower().split())
    words2 = set(content2.lower().split())
    union = words1 | words2
    similarity = len(words1 & words2) / len(union) if union else 0.0

    if keywords:
        lowered = content2.lower()
        present = sum(1 for k in keywords if k in lowered)
        similarity += KEYWORD_BOOST * present / len(keywords)

    return min(1.0, similarity)


def relevant_context(content: str, keywords: list[str], max_length: int = 100) -> str:
    """Snippet around the first keyword found, or the start of the content."""
    lowered = content.lower()
    for keyword in keywords:
        index = lowered.find(keyword)
        if index != -1:
            start = max(0, index - max_length // 2)
            end = min(len(content), index + max_length // 2)
            return content[start:end].strip()
    return content[:max_length].strip()


def find_mentions(content: str, name: str) -> list[tuple[int, int]]:
    """Case-insensitive whole-word occurrences of a note name."""
    if not name.strip():
        return []
    pattern = re.compile(rf"(?<!\w){re.escape(name)}(?!\w)", re.IGNORECASE)
    return [m.span() for m in pattern.finditer(content)]


def context_around(content: str, position: int, window: int) -> str:
    start = max(0, position - window // 2)
    end = min(len(content), position + window // 2)
    return content[start:end].strip()


def normalize_tag_name(text: str) -> str | None:
    """Turn free text into a '#tag', or None if the result is too short or long.

    Examples:
        >>> normalize_tag_name("Machine Learning")
        '#machine-learning'
        >>> normalize_tag_name("AI") is None
        True
    """
    normalized = re.sub(r"[^a-z0-9\s-]", "", text.lower())
    normalized = re.sub(r"\s+", "-", normalized).strip("-")
    if 2 < len(normalized) < 30:
        return f"#{normalized}"
    return None


def concept_importance(concept: str, frequency: int, related_notes: int) -> float:
    """Weighted score from frequency, connectivity and phrase length."""
    frequency_score = min(frequency / 10, 1)
    connectivity_score = min(related_notes / 5, 1)
    length_bonus = 0.2 if len(concept) > 10 else 0
    return (frequency_score * 0.4 + connectivity_score * 0.5 + length_bonus) * 100
