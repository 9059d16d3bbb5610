from collections.abc import Iterable


def topic_matches(pattern: str, routing_key: str) -> bool:
    """Topic-exchange matching: `*` is exactly one word, `#` is zero or more."""
    return _match(pattern.split("."), routing_key.split("."))


def _match(pattern: list[str], words: list[str]) -> bool:
    if not pattern:
        return not words
    head, rest = pattern[0], pattern[1:]
    if head == "#":
        return any(_match(rest, words[index:]) for index in range(len(words) + 1))
    if not words:
        return False
    if head == "*" or head == words[0]:
        return _match(rest, words[1:])
    return False


def matches_any(patterns: Iterable[str], routing_key: str) -> bool:
    return any(topic_matches(pattern, routing_key) for pattern in patterns)
