"""
Fuzzy name matching used to find existing riders before creating duplicates.

Scores combine Levenshtein similarity with a table of common nicknames, and
tolerate swapped first/last names and punctuation ("O'Callahan").
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, TypeVar

T = TypeVar("T")

# canonical name -> nicknames, all lowercase
NICKNAME_MAP: dict[str, list[str]] = {
    "alexander": ["alex", "alec", "al", "sandy", "xander"],
    "alexandra": ["alex", "alexa", "sandy", "lexi"],
    "andrew": ["andy", "drew"],
    "anthony": ["tony", "ant"],
    "barbara": ["barb", "barbie", "babs"],
    "benjamin": ["ben", "benny", "benji"],
    "catherine": ["cathy", "cat", "kate", "katie"],
    "charles": ["charlie", "chuck", "chas"],
    "christine": ["chris", "chrissy", "tina"],
    "christopher": ["chris", "kit", "topher"],
    "daniel": ["dan", "danny"],
    "david": ["dave", "davey"],
    "deborah": ["deb", "debbie", "debby"],
    "donald": ["don", "donny", "donnie"],
    "dorothy": ["dot", "dotty", "dottie"],
    "edward": ["ed", "eddie", "ted", "teddy", "ned"],
    "elizabeth": ["liz", "lizzy", "beth", "betty", "eliza", "libby", "eli", "ellie"],
    "frederick": ["fred", "freddy", "freddie"],
    "geoffrey": ["geoff", "jeff"],
    "gerald": ["gerry", "jerry"],
    "gregory": ["greg", "gregg"],
    "james": ["jim", "jimmy", "jamie", "jem"],
    "jeffrey": ["jeff", "geoff"],
    "jennifer": ["jen", "jenny", "jenn"],
    "jessica": ["jess", "jessie"],
    "john": ["jack", "johnny", "jon"],
    "jonathan": ["jon", "jonny", "john"],
    "joseph": ["joe", "joey", "jo"],
    "joshua": ["josh"],
    "katherine": ["kate", "kathy", "katie", "katy", "kay", "kit", "kitty"],
    "kenneth": ["ken", "kenny"],
    "lawrence": ["larry", "lars"],
    "leonard": ["leo", "len", "lenny"],
    "margaret": ["maggie", "meg", "peggy", "marge", "margie", "megan"],
    "matthew": ["matt", "matty"],
    "michael": ["mike", "mikey", "mick"],
    "nicholas": ["nick", "nicky"],
    "patricia": ["pat", "patty", "trish", "trisha"],
    "patrick": ["pat", "paddy", "patty"],
    "pete": ["pete"],
    "philip": ["phil"],
    "phillip": ["phil"],
    "raymond": ["ray"],
    "rebecca": ["becky", "becca"],
    "richard": ["rick", "ricky", "dick", "rich", "richie"],
    "robert": ["bob", "bobby", "rob", "robbie", "bert"],
    "ronald": ["ron", "ronny", "ronnie"],
    "samuel": ["sam", "sammy"],
    "sandra": ["sandy"],
    "stephanie": ["steph", "stephy"],
    "stephen": ["steve", "stevie"],
    "steven": ["steve", "stevie"],
    "susan": ["sue", "susie", "suzy"],
    "theodore": ["ted", "teddy", "theo"],
    "thomas": ["tom", "tommy"],
    "timothy": ["tim", "timmy"],
    "victoria": ["vicky", "vicki", "tori"],
    "william": ["bill", "billy", "will", "willy", "liam"],
}

# nickname -> canonical names
NICKNAME_REVERSE: dict[str, list[str]] = {}
for _canonical, _nicks in NICKNAME_MAP.items():
    for _nick in _nicks:
        NICKNAME_REVERSE.setdefault(_nick, []).append(_canonical)

_NON_ALPHA = re.compile(r"[^a-z]")


@dataclass
class FuzzyMatch(Generic[T]):
    item: T
    score: float


def name_variants(name: str) -> list[str]:
    """All spellings worth searching for: "bob" -> robert, bobby, rob, ..."""
    normalized = name.strip().lower()
    variants = [normalized]

    def add(v: str) -> None:
        if v not in variants:
            variants.append(v)

    for nick in NICKNAME_MAP.get(normalized, []):
        add(nick)
    for canonical in NICKNAME_REVERSE.get(normalized, []):
        add(canonical)
        for nick in NICKNAME_MAP.get(canonical, []):
            add(nick)
    return variants


def are_nickname_equivalent(a: str, b: str) -> bool:
    n1 = a.lower()
    n2 = b.lower()
    if n1 == n2:
        return True
    if n2 in NICKNAME_MAP.get(n1, []) or n1 in NICKNAME_MAP.get(n2, []):
        return True
    c1 = NICKNAME_REVERSE.get(n1, [])
    c2 = NICKNAME_REVERSE.get(n2, [])
    if any(c in c2 for c in c1):
        return True
    return n2 in c1 or n1 in c2


def levenshtein(a: str, b: str) -> int:
    a = a.lower()
    b = b.lower()
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1 - levenshtein(a, b) / max_len


def _normalize(s: str) -> str:
    return _NON_ALPHA.sub("", s.strip().lower())


def fuzzy_name_score(search_first: str, search_last: str, candidate_first: str, candidate_last: str) -> float:
    sf = _normalize(search_first)
    sl = _normalize(search_last)
    cf = _normalize(candidate_first)
    cl = _normalize(candidate_last)

    if sf == cf and sl == cl:
        return 1.0

    first_nick = are_nickname_equivalent(sf, cf)
    last_nick = are_nickname_equivalent(sl, cl)
    if first_nick and (sl == cl or last_nick):
        return 1.0

    direct = ((1.0 if first_nick else similarity(sf, cf)) + (1.0 if last_nick else similarity(sl, cl))) / 2

    # names entered in the wrong order
    swapped_first = 1.0 if are_nickname_equivalent(sf, cl) else similarity(sf, cl)
    swapped_last = 1.0 if are_nickname_equivalent(sl, cf) else similarity(sl, cf)
    swapped = (swapped_first + swapped_last) / 2

    return max(direct, swapped)


def find_fuzzy_name_matches(
    first: str,
    last: str,
    candidates: Iterable[T],
    get_first: Callable[[T], str],
    get_last: Callable[[T], str],
    threshold: float = 0.5,
    max_results: int = 10,
) -> list[FuzzyMatch[T]]:
    scored = [
        FuzzyMatch(item=c, score=fuzzy_name_score(first, last, get_first(c), get_last(c)))
        for c in candidates
    ]
    scored = [m for m in scored if m.score >= threshold]
    scored.sort(key=lambda m: m.score, reverse=True)
    return scored[:max_results]
