"""Question analysis: required terms, phrases, numbers, exclusions and hints."""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

STOPWORDS = frozenset({
    # Dutch
    'de', 'het', 'een', 'en', 'of', 'in', 'op', 'te', 'van', 'voor', 'met', 'zonder',
    'dat', 'die', 'dit', 'is', 'zijn', 'wie', 'wat', 'waar', 'wanneer', 'hoe', 'heeft',
    'heb', 'er', 'om', 'naar', 'bij', 'dan', 'als', 'maar',
    # English
    'the', 'and', 'for', 'with', 'without', 'what', 'who', 'where', 'when', 'how',
    'are', 'was', 'were', 'has', 'have', 'this', 'that', 'from', 'which', 'there',
})

DUTCH_MONTHS: Dict[str, int] = {
    'januari': 1, 'februari': 2, 'maart': 3, 'april': 4, 'mei': 5, 'juni': 6,
    'juli': 7, 'augustus': 8, 'september': 9, 'oktober': 10, 'november': 11, 'december': 12,
}
MONTHS: Dict[str, int] = {
    **DUTCH_MONTHS,
    'january': 1, 'february': 2, 'march': 3, 'may': 5, 'june': 6,
    'july': 7, 'august': 8, 'october': 10,
}
DUTCH_MONTH_NAMES = {number: name for name, number in DUTCH_MONTHS.items()}

MIN_TERM_LENGTH = 3

_TOKEN_SPLIT = re.compile(r'[^\w\-]+')
_PHRASE = re.compile(r'"([^"]+)"')
_NUMBER = re.compile(r'(?:€\s*)?\d[\d.,]*')
_WITHOUT = re.compile(r'\b(?:zonder|without)\s+([\w\-]+)')
_PATH_HINT = re.compile(r'/([a-z0-9\-]+)/')
_TEXT_DATE = re.compile(r'\b(\d{1,2})\s+(' + '|'.join(MONTHS) + r')\s+(\d{4})\b')
_ISO_DATE = re.compile(r'\b(\d{4})-(\d{2})-(\d{2})\b')


@dataclass(frozen=True)
class Constraints:
    must_terms: List[str] = field(default_factory=list)
    must_phrases: List[str] = field(default_factory=list)
    numbers: List[str] = field(default_factory=list)
    anti_terms: List[str] = field(default_factory=list)

    def needles(self) -> List[str]:
        """Lower-cased terms and phrases, de-duplicated, terms first."""
        return list(dict.fromkeys(
            [t for t in self.must_terms if t] + [p.lower() for p in self.must_phrases if p]
        ))


@dataclass(frozen=True)
class DateHint:
    iso: str = ''
    text: str = ''

    def __bool__(self) -> bool:
        return bool(self.iso or self.text)


def tokenize(text: str) -> List[str]:
    text = re.sub(r'\s+', ' ', text or '').strip().lower()
    return [t for t in _TOKEN_SPLIT.split(text) if t and t.strip('-_')]


def build_constraints(question: str) -> Constraints:
    """Derive the lexical constraints of a question.

    ``-word`` and ``zonder word`` / ``without word`` mark exclusions;
    exclusions never count as required terms.
    """
    lowered = (question or '').lower()
    tokens = tokenize(question)

    anti: List[str] = [t.lstrip('-') for t in tokens if t.startswith('-') and len(t.lstrip('-')) >= 2]
    anti += [m.strip('-') for m in _WITHOUT.findall(lowered) if m.strip('-') not in STOPWORDS]
    anti = [a for a in dict.fromkeys(anti) if a]

    must = [
        t for t in tokens
        if len(t) >= MIN_TERM_LENGTH
        and not t.startswith('-')
        and t not in STOPWORDS
        and t not in anti
    ]

    phrases = [p.strip() for p in _PHRASE.findall(question or '') if p.strip()]
    numbers = [n.strip() for n in _NUMBER.findall(question or '') if n.strip()]

    return Constraints(
        must_terms=list(dict.fromkeys(must)),
        must_phrases=phrases,
        numbers=numbers,
        anti_terms=anti,
    )


def infer_category_hint(question: str, synonyms: Mapping[str, str]) -> Optional[str]:
    """First synonym (in table order) found at a word start, else a ``/segment/``."""
    text = (question or '').lower()
    for needle, category in synonyms.items():
        needle = needle.strip().lower()
        hint = (category or '').strip().lower()
        if needle and hint and re.search(r'\b' + re.escape(needle), text):
            return hint

    match = _PATH_HINT.search(text)
    if match:
        return match.group(1)
    return None


def parse_date_hint(question: str) -> DateHint:
    """An explicit date in the question, as ISO prefix and as Dutch/English text."""
    text = (question or '').lower()

    match = _TEXT_DATE.search(text)
    if match:
        day, month_name, year = int(match.group(1)), match.group(2), int(match.group(3))
        month = MONTHS[month_name]
        return DateHint(iso=f'{year:04d}-{month:02d}-{day:02d}', text=f'{day} {month_name} {year}')

    match = _ISO_DATE.search(text)
    if match:
        year, month, day = match.group(1), int(match.group(2)), int(match.group(3))
        name = DUTCH_MONTH_NAMES.get(month, match.group(2))
        return DateHint(iso=match.group(0), text=f'{day} {name} {year}')

    return DateHint()
