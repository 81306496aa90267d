"""
Light intent parsing for free-text place search.

Pulls "near me", a trailing US state and an "in <city>" / "near <city>" clause
out of queries like "pizza in hoboken NJ" so they can become index filters
instead of noise in the text match.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from domain.models import InvalidQueryError

MAX_QUERY_LENGTH = 200
NEAR_ME_RADIUS_KM = 25.0

US_STATES = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
    "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
    "vermont": "VT", "virginia": "VA", "washington": "WA", "west virginia": "WV",
    "wisconsin": "WI", "wyoming": "WY",
}
US_STATE_CODES = set(US_STATES.values()) | {"DC"}
# longest first so "west virginia" wins over "virginia"
_STATE_NAMES_BY_LENGTH = sorted(US_STATES, key=len, reverse=True)

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
_NEAR_ME_RE = re.compile(r"\bnear\s+me\b", re.IGNORECASE)
_TRAILING_CODE_RE = re.compile(r"^(.+?)(\s*,\s*|\s+)([A-Za-z]{2})$")
_CITY_CLAUSE_RE = re.compile(r"^(.+?)\s+(?:in|near)\s+(.+)$", re.IGNORECASE)
_DANGLING_PREPOSITION_RE = re.compile(r"\s+(?:in|near)$", re.IGNORECASE)


@dataclass(frozen=True)
class ParsedIntent:
    clean_query: str
    near_me: bool = False
    locality: Optional[str] = None
    region: Optional[str] = None


def sanitize_query(raw: Optional[str]) -> str:
    """Strip control characters and surrounding whitespace; reject huge input."""
    text = _CONTROL_CHARS_RE.sub("", raw or "").strip()
    if len(text) > MAX_QUERY_LENGTH:
        raise InvalidQueryError(f"Query too long (max {MAX_QUERY_LENGTH} chars)")
    return text


def parse_intent(raw: str) -> ParsedIntent:
    q = (raw or "").strip()
    near_me = False
    locality: Optional[str] = None
    region: Optional[str] = None

    if _NEAR_ME_RE.search(q):
        near_me = True
        q = " ".join(_NEAR_ME_RE.sub("", q).split())

    match = _TRAILING_CODE_RE.match(q)
    # lower-case codes only count after a comma: "coffee in" is not Indiana
    if match and match.group(3).upper() in US_STATE_CODES and (
        match.group(3).isupper() or "," in match.group(2)
    ):
        region = match.group(3).upper()
        q = _DANGLING_PREPOSITION_RE.sub("", match.group(1).strip())

    if region is None:
        lower = q.lower()
        for name in _STATE_NAMES_BY_LENGTH:
            if lower.endswith(name) and len(lower) > len(name):
                before = q[: -len(name)]
                if not before[-1:].isspace() and not before.endswith(","):
                    continue
                region = US_STATES[name]
                q = _DANGLING_PREPOSITION_RE.sub("", before.rstrip(" ,"))
                break

    match = _CITY_CLAUSE_RE.match(q)
    if match:
        q = match.group(1).strip()
        locality = match.group(2).strip(" ,") or None

    return ParsedIntent(clean_query=q.strip(), near_me=near_me, locality=locality, region=region)
