from __future__ import annotations

import re
from typing import List, Optional, Set, Tuple

from .nlp import (
    FUZZY_STOPWORDS,
    extract_customer_name,
    find_table_number,
    fuzzy_best_key,
    normalize_order_text,
    number_value,
    qty_after,
    qty_before,
    singularize_phrase,
)
from .types import Menu, ParsedItem, ParsedOrder

Span = Tuple[int, int]
Hit = Tuple[int, int, str]  # start, end, menu key

EMPTY_MESSAGE = (
    "Looks like your message was empty.\n\n"
    'Text your order like "2 coffee, 1 sandwich", or text \'menu\' to see what we have.'
)

HELP_MESSAGE = (
    "I couldn't understand your order. Please use this format:\n\n"
    "[Your Name or Table #] [Quantity] [Item]\n\n"
    "Examples:\n"
    "• John 2 coffee, 1 bagel\n"
    "• Table 5: 1 latte, 2 muffins\n"
    "• Sarah - 3 sandwiches\n\n"
    "Text 'menu' to see available items."
)

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_MODIFICATION_RE = re.compile(
    r"\b(?:(?:no|without|extra|add|light|heavy)\s+[a-z]+|on\s+the\s+side|well\s+done|medium\s+rare)\b"
)


def _assign_quantities(text: str, spans: List[Span]) -> List[int]:
    """Quantity for each item span in `text`.

    "<int> <item>" is claimed for every item first, then items still without
    one may take "<item> <int>". A number used by one item is never reused.
    """
    claimed: Set[Span] = set()
    quantities: List[Optional[int]] = [None] * len(spans)

    for idx, (start, _end) in enumerate(spans):
        before = qty_before(text[:start])
        if before and before[1] not in claimed:
            claimed.add(before[1])
            quantities[idx] = max(1, before[0])

    for idx, (_start, end) in enumerate(spans):
        if quantities[idx] is not None:
            continue
        after = qty_after(text[end:])
        if after:
            span = (after[1][0] + end, after[1][1] + end)
            if span not in claimed:
                claimed.add(span)
                quantities[idx] = max(1, after[0])
                continue
        quantities[idx] = 1
    return [q or 1 for q in quantities]


def _exact_matches(text: str, menu: Menu) -> Tuple[List[Hit], str]:
    """Whole-word hits plus the text with every hit blanked out.

    Longest names first, so "coffee" can't also hit inside "iced coffee".
    """
    masked = text
    hits: List[Hit] = []
    for name in sorted(menu, key=len, reverse=True):
        m = re.search(rf"(?<!\w){re.escape(name)}(?!\w)", masked)
        if not m:
            continue
        hits.append((m.start(), m.end(), name))
        masked = masked[: m.start()] + " " * (m.end() - m.start()) + masked[m.end():]
    return hits, masked


def _skip_token(word: str) -> bool:
    return len(word) < 3 or word.isdigit() or word in FUZZY_STOPWORDS or number_value(word) is not None


def _fuzzy_matches(text: str, menu: Menu, found: Set[str]) -> List[Hit]:
    """Approximate hits (plurals, typos) for menu entries not in `found`."""
    keys = list(menu)
    if not keys:
        return []
    by_singular = {singularize_phrase(k): k for k in keys}
    max_words = max(len(k.split()) for k in keys)
    tokens = [(m.group(0), m.start(), m.end()) for m in _TOKEN_RE.finditer(text)]

    hits: List[Hit] = []
    seen = set(found)
    i = 0
    while i < len(tokens):
        hit: Optional[Tuple[str, int, int, int]] = None
        for n in range(min(max_words, len(tokens) - i), 0, -1):
            words = [w for w, _, _ in tokens[i:i + n]]
            if any(_skip_token(w) for w in words):
                continue
            phrase = " ".join(words)
            key = by_singular.get(singularize_phrase(phrase)) or fuzzy_best_key(keys, phrase)
            if key:
                hit = (key, tokens[i][1], tokens[i + n - 1][2], n)
                break

        if not hit:
            i += 1
            continue

        key, start, end, n = hit
        if key not in seen:
            seen.add(key)
            hits.append((start, end, key))
        i += n
    return hits


def _modifications(text: str, hits: List[Hit], idx: int) -> Tuple[str, ...]:
    """Notes like "no onions" in the item's comma segment.

    Text after the item up to the next item counts; text before it only when
    it is the first item of its segment ("extra cheese burger").
    """
    start, end, _ = hits[idx]
    seg_start = text.rfind(",", 0, start) + 1
    seg_end = text.find(",", end)
    if seg_end == -1:
        seg_end = len(text)

    stop = seg_end
    if idx + 1 < len(hits) and hits[idx + 1][0] < seg_end:
        stop = hits[idx + 1][0]
    window = text[end:stop]
    if idx == 0 or hits[idx - 1][1] <= seg_start:
        window = text[seg_start:start] + " " + window
    return tuple(re.sub(r"\s+", " ", m.group(0)) for m in _MODIFICATION_RE.finditer(window))


def parse_order(message: str, menu: Menu) -> ParsedOrder:
    """Turn one free-text message into a priced candidate order.

    Exact whole-word matches are tried first. Menu entries they miss get an
    approximate pass over the rest of the text (plurals, typos); any item
    found that way flags the result so the caller asks the customer to
    double-check it.
    """
    raw = (message or "").strip()
    if not raw:
        return ParsedOrder(error_message=EMPTY_MESSAGE)

    lowered = raw.lower()
    customer_name = extract_customer_name(raw, menu.keys())

    table_number = None
    found = find_table_number(lowered)
    if found:
        table_number, (start, end) = found
        lowered = lowered[:start] + " " + lowered[end:]

    text = normalize_order_text(lowered)
    exact, masked = _exact_matches(text, menu)
    fuzzy = _fuzzy_matches(masked, menu, {name for _, _, name in exact})

    hits = sorted(exact + fuzzy)
    quantities = _assign_quantities(masked, [(start, end) for start, end, _ in hits])
    items = [
        ParsedItem(name=name, quantity=qty, price=menu[name], modifications=_modifications(masked, hits, idx))
        for idx, ((_, _, name), qty) in enumerate(zip(hits, quantities))
    ]

    parsed = ParsedOrder(
        items=items,
        customer_name=customer_name,
        table_number=table_number,
        has_fuzzy_match=bool(fuzzy),
    )
    if not parsed.is_valid:
        parsed.error_message = HELP_MESSAGE
    return parsed
