"""Present-participle labels for work items ("Fix bug" -> "Fixing bug")."""

from __future__ import annotations

VOWELS = frozenset("aeiou")
# Final consonants that are never doubled (show -> showing, fix -> fixing)
_UNDOUBLED = frozenset("wxy")


def _ends_in_short_syllable(word: str) -> bool:
    """True for a single vowel followed by a single consonant at the end."""
    if len(word) < 2:
        return False
    last, vowel = word[-1], word[-2]
    if not last.isalpha() or last in VOWELS or last in _UNDOUBLED:
        return False
    if vowel not in VOWELS:
        return False
    # "read" and "need" have a vowel pair, not a single vowel
    return len(word) < 3 or word[-3] not in VOWELS


def to_present_participle(verb: str) -> str:
    """Lower-case present participle of an imperative verb."""
    verb = verb.lower()
    if _ends_in_short_syllable(verb):
        return verb + verb[-1] + "ing"
    if verb.endswith("e"):
        return verb[:-1] + "ing"
    return verb + "ing"


def derive_active_form(subject: str) -> str:
    """Turn an imperative subject into its in-progress label.

    Only the first word changes; the rest of the subject is kept as is.

        >>> derive_active_form("Run tests")
        'Running tests'
        >>> derive_active_form("Write docs")
        'Writing docs'
    """
    words = subject.split(" ")
    if not words[0]:
        return subject

    participle = to_present_participle(words[0])
    participle = participle[0].upper() + participle[1:]
    return " ".join([participle, *words[1:]])
