from __future__ import annotations

import difflib
import re
from typing import Iterable, List, Optional, Set, Tuple

# ----------------------------
# Regex helpers
# ----------------------------
# Punctuation to spaces (keep letters/numbers/spaces)
_PUNCT_RE = re.compile(r"[^\w\s]+")

_WORD_NUMBERS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}
_NUM = r"(\d+|" + "|".join(_WORD_NUMBERS) + r")"

# "<int> <item>" / "2x <item>" / "2 x <item>", anchored to the end of the text before the item
_QTY_BEFORE_RE = re.compile(r"(?:^|\s)" + _NUM + r"\s*(?:x\s*)?$")
# "<item> <int>" / "<item> x2", anchored to the start of the text after the item
_QTY_AFTER_RE = re.compile(r"^\s*(?:x\s*)?" + _NUM + r"(?!\w)")

# Customer name, in priority order. First acceptable match wins.
_NAME_PATTERNS = [
    re.compile(r"\b(?:for\s+|name\s+is\s+|name\s*:\s*)([A-Za-z][A-Za-z']*(?:\s+[A-Za-z][A-Za-z']*)?)", re.IGNORECASE),
    re.compile(r"^\s*([A-Za-z][A-Za-z']*(?:\s+[A-Za-z][A-Za-z']*)?)\s*[-:]"),
]

# Words that follow "for" in orders but are never names
_NOT_NAMES = {
    "a", "an", "and", "the", "me", "my", "us", "you", "here", "there", "now", "today",
    "later", "pickup", "pick", "takeaway", "delivery", "to", "go", "table", "tbl",
    "please", "pls", "plz", "thanks", "thank", "order", "with", "x", "one", "two",
}

# Table number, in priority order. First match wins.
_TABLE_PATTERNS = [
    re.compile(r"\btable\s*(\d+)", re.IGNORECASE),
    re.compile(r"#(\d+)"),
    re.compile(r"\b(?:table|tbl)\s*([a-z]?\d+[a-z]?)\b", re.IGNORECASE),
]

# Tokens never worth fuzzy matching
FUZZY_STOPWORDS = {"and", "the", "for", "please", "thanks", "with", "can", "get", "have", "want"}


# ----------------------------
# Canonicalization
# ----------------------------
def basic_normalize(s: str) -> str:
    """
    Basic cleanup:
    - lower
    - replace & with 'and'
    - strip punctuation to spaces
    - collapse whitespace
    """
    s = (s or "").strip().lower()
    s = s.replace("&", " and ")
    s = _PUNCT_RE.sub(" ", s)
    return re.sub(r"\s+", " ", s).strip()


def normalize_order_text(s: str) -> str:
    """Like basic_normalize, but commas survive as separators so a quantity
    never jumps across them ("coffee, 2 bagel")."""
    s = (s or "").strip().lower()
    s = s.replace("&", " and ")
    s = re.sub(r"[^\w\s,]+", " ", s)
    s = s.replace(",", " , ")
    return re.sub(r"\s+", " ", s).strip()


def singularize(word: str) -> str:
    w = word or ""
    if len(w) > 4 and w.endswith("ies"):
        return w[:-3] + "y"
    if len(w) > 3 and w.endswith("es") and w[:-2].endswith(("s", "x", "ch", "sh")):
        return w[:-2]
    if len(w) > 3 and w.endswith("s") and not w.endswith("ss"):
        return w[:-1]
    return w


def singularize_phrase(phrase: str) -> str:
    return " ".join(singularize(w) for w in (phrase or "").split())


# ----------------------------
# Name + table extraction
# ----------------------------
def _clean_name(candidate: str, blocked: Set[str]) -> Optional[str]:
    kept: List[str] = []
    for word in candidate.split():
        low = word.lower()
        if low in _NOT_NAMES or low in blocked or singularize(low) in blocked:
            break
        kept.append(word)
    return " ".join(kept) or None


def extract_customer_name(text: str, menu_names: Iterable[str] = ()) -> Optional[str]:
    """Pull a customer name out of the message as typed (case preserved).

    Candidates that are filler words or menu words are not names, so
    "coffee: 2" or "2 coffee for here" yield nothing.
    """
    blocked: Set[str] = set()
    for name in menu_names:
        blocked.update(basic_normalize(name).split())

    for pattern in _NAME_PATTERNS:
        for m in pattern.finditer(text or ""):
            name = _clean_name(m.group(1), blocked)
            if name:
                return name
    return None


def find_table_number(text: str) -> Optional[Tuple[str, Tuple[int, int]]]:
    """Returns (table, span of the whole match) or None."""
    for pattern in _TABLE_PATTERNS:
        m = pattern.search(text or "")
        if m:
            return m.group(1), m.span()
    return None


def extract_table_number(text: str) -> Optional[str]:
    found = find_table_number(text)
    return found[0] if found else None


# ----------------------------
# Quantities
# ----------------------------
def number_value(token: str) -> Optional[int]:
    tok = (token or "").strip().lower()
    if tok.isdigit():
        return int(tok)
    return _WORD_NUMBERS.get(tok)


def qty_before(text: str) -> Optional[Tuple[int, Tuple[int, int]]]:
    """Quantity immediately before an item: (value, span of the number in `text`)."""
    m = _QTY_BEFORE_RE.search(text or "")
    if not m:
        return None
    return number_value(m.group(1)) or 0, m.span(1)


def qty_after(text: str) -> Optional[Tuple[int, Tuple[int, int]]]:
    """Quantity immediately after an item: (value, span of the number in `text`)."""
    m = _QTY_AFTER_RE.search(text or "")
    if not m:
        return None
    return number_value(m.group(1)) or 0, m.span(1)


# ----------------------------
# Fuzzy matching
# ----------------------------
def fuzzy_best_key(keys: List[str], query: str, cutoff: float = 0.8) -> Optional[str]:
    if not query or not keys:
        return None
    q = query.strip().lower()
    if q in keys:
        return q
    matches = difflib.get_close_matches(q, keys, n=1, cutoff=cutoff)
    return matches[0] if matches else None
