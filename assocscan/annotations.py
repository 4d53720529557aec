from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Mapping, Protocol, Sequence

from assocscan.cache import LookupCache, stable_hash
from assocscan.config import AnnotationCategories
from assocscan.errors import UnsupportedCategory
from assocscan.results import AnnotationTerm


class AnnotationSource(Protocol):
    def lookup_terms(self, category: str, universe: Iterable[str]) -> Sequence[AnnotationTerm]: ...


def check_category(category: str) -> None:
    if category not in AnnotationCategories.FILTERS:
        raise UnsupportedCategory([category], detail=f"supported: {', '.join(sorted(AnnotationCategories.FILTERS))}")


def matches_category(term: AnnotationTerm, category: str) -> bool:
    return category == AnnotationCategories.ALL or term.category == category


class InMemoryAnnotationStore:
    """
    Term store held in memory. Lookups are scoped to terms that touch the universe;
    callers still intersect each term with the universe themselves.
    """

    def __init__(self, terms: Iterable[AnnotationTerm]) -> None:
        self._terms: dict[str, AnnotationTerm] = {}
        for t in terms:
            if t.term_id in self._terms:
                raise ValueError(f"duplicate term id {t.term_id!r}")
            self._terms[t.term_id] = t

    def __len__(self) -> int:
        return len(self._terms)

    @property
    def terms(self) -> list[AnnotationTerm]:
        return list(self._terms.values())

    def lookup_terms(self, category: str, universe: Iterable[str]) -> list[AnnotationTerm]:
        check_category(category)
        u = set(universe)
        return [t for t in self._terms.values() if matches_category(t, category) and not t.features.isdisjoint(u)]

    @classmethod
    def from_gene_sets(
        cls,
        gene_sets: Mapping[str, Iterable[str]],
        *,
        category: str,
        descriptions: Mapping[str, str] | None = None,
    ) -> "InMemoryAnnotationStore":
        descriptions = descriptions or {}
        terms = [
            AnnotationTerm(
                term_id=str(term_id),
                description=str(descriptions.get(term_id, term_id)),
                category=category,
                features=frozenset(str(g) for g in genes if str(g)),
            )
            for term_id, genes in gene_sets.items()
        ]
        return cls(terms)

    @classmethod
    def from_gmt(cls, path: Path | str, *, category: str) -> "InMemoryAnnotationStore":
        """
        Load a GMT gene set library (term<TAB>description<TAB>genes...) via gseapy's parser.
        """
        from gseapy.parser import read_gmt

        gene_sets = read_gmt(str(path))
        logging.getLogger(__name__).info("loaded %d gene sets from %s (%s)", len(gene_sets), path, category)
        return cls.from_gene_sets(gene_sets, category=category)


class CachedAnnotationSource:
    """
    Wraps an annotation source so each (category, universe) lookup hits it once per run.
    """

    def __init__(self, source: AnnotationSource) -> None:
        self.source = source
        self._cache: LookupCache[tuple[AnnotationTerm, ...]] = LookupCache()

    @property
    def cache(self) -> LookupCache[tuple[AnnotationTerm, ...]]:
        return self._cache

    def lookup_terms(self, category: str, universe: Iterable[str]) -> tuple[AnnotationTerm, ...]:
        check_category(category)
        u = sorted({str(i) for i in universe})
        key = (category, len(u), stable_hash(u))
        return self._cache.get_or_load(key, lambda: tuple(self.source.lookup_terms(category, u)))
