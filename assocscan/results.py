from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Iterable, Iterator, Sequence

import numpy as np
import pandas as pd

from assocscan.config import AnnotationCategories
from assocscan.errors import UnsupportedCategory


@dataclass(frozen=True)
class RegressionResult:
    feature: str
    slope: float | None
    p: float | None
    se: float | None = None
    n_obs: int = 0
    failure: str | None = None

    @property
    def defined(self) -> bool:
        return self.slope is not None and self.p is not None

    @property
    def hazard_ratio(self) -> float | None:
        # Only meaningful for Cox scans, where slope is the log hazard ratio.
        if self.slope is None:
            return None
        return float(np.exp(self.slope))


@dataclass(frozen=True)
class AdjustedResult(RegressionResult):
    q: float | None = None


@dataclass(frozen=True)
class FitFailure:
    feature: str
    reason: str
    message: str = ""
    n_obs: int = 0

    def as_result(self) -> RegressionResult:
        return RegressionResult(
            feature=self.feature, slope=None, p=None, se=None, n_obs=self.n_obs, failure=self.reason
        )


def results_to_frame(results: Sequence[RegressionResult]) -> pd.DataFrame:
    """
    Tabulate results in input order with a stable column order.
    Undefined values become NaN.
    """
    cols = [f.name for f in fields(AdjustedResult)]
    rows = [asdict(r) for r in results]
    out = pd.DataFrame(rows, columns=cols)
    if not any(isinstance(r, AdjustedResult) for r in results):
        out = out.drop(columns=["q"])
    for c in ("slope", "p", "se", "q"):
        if c in out.columns:
            out[c] = pd.to_numeric(out[c], errors="coerce")
    return out


@dataclass(frozen=True)
class ScanResult:
    results: tuple[RegressionResult, ...]
    model: str
    n_features: int
    interrupted: bool = False
    failures: dict[str, int] = field(default_factory=dict)

    def __iter__(self) -> Iterator[RegressionResult]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    @property
    def n_failed(self) -> int:
        return int(sum(self.failures.values()))

    def to_frame(self) -> pd.DataFrame:
        return results_to_frame(self.results)


@dataclass(frozen=True)
class GeneSet:
    name: str
    ids: frozenset[str]

    @classmethod
    def of(cls, name: str, ids: Iterable[object]) -> "GeneSet":
        return cls(name=name, ids=frozenset(str(i) for i in ids))

    def __contains__(self, item: object) -> bool:
        return item in self.ids

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.ids))

    def __len__(self) -> int:
        return len(self.ids)


@dataclass(frozen=True)
class AnnotationTerm:
    term_id: str
    description: str
    category: str
    features: frozenset[str]

    def __post_init__(self) -> None:
        if self.category not in AnnotationCategories.TERM_CATEGORIES:
            raise UnsupportedCategory([self.category], detail=f"term {self.term_id}")
        if not isinstance(self.features, frozenset):
            object.__setattr__(self, "features", frozenset(str(f) for f in self.features))


@dataclass(frozen=True)
class EnrichmentResult:
    term_id: str
    description: str
    category: str
    overlap: int
    expected: float
    term_size: int
    fold_enrichment: float
    p: float
    log_p: float
    q: float
    log_q: float
    features: tuple[str, ...]


@dataclass(frozen=True)
class EnrichmentRun:
    results: tuple[EnrichmentResult, ...]
    n_tested: int
    universe_size: int
    foreground_size: int
    interrupted: bool = False

    def __iter__(self) -> Iterator[EnrichmentResult]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    def to_frame(self) -> pd.DataFrame:
        cols = [f.name for f in fields(EnrichmentResult)]
        out = pd.DataFrame([asdict(r) for r in self.results], columns=cols)
        out["features"] = out["features"].apply(lambda x: ";".join(x))
        return out
