# storebot/domain/services/fuzzy_search.py

from __future__ import annotations

from rapidfuzz import fuzz, process, utils

from storebot.domain.models.catalog import Product


def _is_name_prefix(query: str, name: str) -> bool:
    """``query`` opens ``name`` and ends on a word boundary."""
    name = name.lower()
    if not name.startswith(query):
        return False
    return len(name) == len(query) or not name[len(query)].isalnum()


class FuzzyMatcher:
    """Resolve free text like ``netflik`` or ``spotify premium`` to a product."""

    def __init__(self, threshold: int = 70):
        self.threshold = threshold

    def match(self, query: str, products: list[Product]) -> Product | None:
        query = (query or "").strip().lower()
        if not query or not products:
            return None

        # Part of an id, or the leading words of a name, wins outright
        # ("net" -> netflix, "youtube premium" -> youtube)
        if len(query) >= 3:
            for product in products:
                if query in product.id or _is_name_prefix(query, product.name):
                    return product

        # Names are scored whole so shared words like "premium" never match
        best: tuple[float, str] | None = None
        for choices, scorer in (
            ({p.id: p.id for p in products}, fuzz.WRatio),
            ({p.id: p.name.lower() for p in products}, fuzz.ratio),
        ):
            result = process.extractOne(
                query,
                choices,
                scorer=scorer,
                processor=utils.default_process,
                score_cutoff=self.threshold,
            )
            if result is not None and (best is None or result[1] > best[0]):
                best = (result[1], result[2])
        if best is None:
            return None
        return next((p for p in products if p.id == best[1]), None)
