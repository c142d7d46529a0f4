"""Ranking of hub index entries against a search query.

Composite score from several signals: exact and prefix name match, phrase
match, BM25F over name/tags/description, tag overlap, and rapidfuzz for
typo tolerance.
"""

import math
import re
from collections import Counter

from rapidfuzz import fuzz

from skillshare.models import HubEntry, SearchResult

SIGNAL_WEIGHTS = {
    "exact": 30.0,
    "prefix": 20.0,
    "phrase": 15.0,
    "bm25f": 15.0,
    "tags": 10.0,
    "fuzzy_name": 7.0,
    "fuzzy_desc": 3.0,
}
_TOTAL_WEIGHT = sum(SIGNAL_WEIGHTS.values())

_K1 = 1.2
_B = 0.3  # short documents, weak length normalization
_FIELD_BOOSTS = {"name": 3.0, "tags": 2.0, "description": 1.0}


def tokenize(text: str) -> list[str]:
    return re.findall(r"[a-z0-9]+", text.lower())


class BM25FIndex:
    """BM25F over the name, tags and description fields of a small corpus."""

    def __init__(self, entries: list[HubEntry]):
        self.n = len(entries)
        self.fields: dict[str, list[list[str]]] = {f: [] for f in _FIELD_BOOSTS}
        self.df: Counter = Counter()

        for entry in entries:
            tokens = {
                "name": tokenize(entry.name),
                "tags": tokenize(" ".join(entry.tags)),
                "description": tokenize(entry.description),
            }
            for field, toks in tokens.items():
                self.fields[field].append(toks)
            self.df.update(set(tokens["name"] + tokens["tags"] + tokens["description"]))

        self.avg_len = {
            field: sum(len(d) for d in docs) / max(self.n, 1)
            for field, docs in self.fields.items()
        }

    def score(self, query_tokens: list[str], idx: int) -> float:
        total = 0.0
        for term in query_tokens:
            df = self.df.get(term)
            if not df:
                continue
            idf = math.log(1 + (self.n - df + 0.5) / (df + 0.5))
            tf = 0.0
            for field, boost in _FIELD_BOOSTS.items():
                doc = self.fields[field][idx]
                avg = max(self.avg_len[field], 1.0)
                tf += boost * doc.count(term) / (1 - _B + _B * len(doc) / avg)
            total += idf * tf / (_K1 + tf)
        return total


def score_entry(entry: HubEntry, query: str, index: BM25FIndex, idx: int) -> float:
    """Normalized 0.0-1.0 relevance of one entry."""
    q = query.lower().strip()
    q_tokens = tokenize(query)
    if not q_tokens:
        return 0.0

    name = entry.name.lower()
    desc = entry.description.lower()
    tag_tokens = set(tokenize(" ".join(entry.tags)))
    q_set = set(q_tokens)

    signals = {
        "exact": 1.0 if q == name else 0.0,
        "prefix": 1.0 if name.startswith(q) else 0.7 if q in name else 0.5 if name in q else 0.0,
        "phrase": 1.0 if q in f"{name} {' '.join(entry.tags).lower()} {desc}" else 0.0,
        "bm25f": min(index.score(q_tokens, idx) / 5.0, 1.0),
        "tags": len(q_set & tag_tokens) / len(q_set | tag_tokens) if tag_tokens else 0.0,
        "fuzzy_name": fuzz.ratio(q, name) / 100.0,
        "fuzzy_desc": fuzz.partial_ratio(q, desc) / 100.0 if desc else 0.0,
    }
    return round(sum(SIGNAL_WEIGHTS[k] * v for k, v in signals.items()) / _TOTAL_WEIGHT, 4)


def rank_entries(entries: list[HubEntry], query: str, limit: int = 20, threshold: float = 0.05) -> list[SearchResult]:
    """Entries above threshold, best first. An empty query lists everything."""
    if not query.strip():
        return [
            SearchResult(name=e.name, description=e.description, source=e.source, tags=e.tags)
            for e in entries[:limit]
        ]

    index = BM25FIndex(entries)
    results = []
    for idx, entry in enumerate(entries):
        score = score_entry(entry, query, index, idx)
        if score >= threshold:
            results.append(SearchResult(
                name=entry.name,
                description=entry.description,
                source=entry.source,
                relevance=round(score, 3),
                tags=entry.tags,
            ))
    results.sort(key=lambda r: r.relevance, reverse=True)
    return results[:limit]
