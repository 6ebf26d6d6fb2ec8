import re
import unicodedata
from functools import lru_cache

_WHITESPACE = re.compile(r"\s+")
_LEADING_INT = re.compile(r"^\s*(\d+)(?![.,]?\d)")


def normalize_text(text):
    """Lowercase, drop punctuation and symbols, collapse whitespace.

    Apostrophes are removed outright so "can't" becomes "cant"; every other
    punctuation or symbol character becomes a space. Combining marks are kept,
    which matters for Bengali, Tamil and Burmese script.
    """
    text = unicodedata.normalize("NFKC", text or "").lower()
    text = text.replace("'", "").replace("’", "")
    chars = [
        " " if unicodedata.category(ch)[0] in ("P", "S") else ch
        for ch in text
    ]
    return _WHITESPACE.sub(" ", "".join(chars)).strip()


@lru_cache(maxsize=2048)
def _phrase_pattern(phrase):
    return re.compile(rf"(?<!\w){re.escape(phrase)}(?!\w)")


def phrase_in_text(phrase, normalized_text):
    """Match a phrase against already-normalized text.

    ASCII phrases must stand as whole words ("hi" does not match "this");
    other scripts are matched as substrings since they are not space-delimited.
    """
    phrase = normalize_text(phrase)
    if not phrase:
        return False
    if phrase.isascii():
        return bool(_phrase_pattern(phrase).search(normalized_text))
    return phrase in normalized_text


def any_phrase(phrases, normalized_text):
    return any(phrase_in_text(p, normalized_text) for p in phrases)


def parse_leading_int(text):
    """Return the integer a reply starts with, or None ("2 - More than half" -> 2).

    A decimal such as "2.9" or "3,5" is not an integer reply and gives None.
    """
    match = _LEADING_INT.match(text or "")
    return int(match.group(1)) if match else None
