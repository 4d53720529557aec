from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from assocscan.errors import InputMismatch

CONTINUOUS = "continuous"
CATEGORICAL = "categorical"


@dataclass(frozen=True, eq=False)
class Covariate:
    """
    Caller-declared adjustment variable.

    values: Series indexed by sample id.
    kind: "continuous" or "categorical"; never inferred from dtype.
    levels: ordered categories for categorical covariates (first = reference). When omitted,
        the sorted observed values are used. Values outside the levels are treated as missing.
    """

    name: str
    values: pd.Series
    kind: str = CONTINUOUS
    levels: tuple[object, ...] | None = field(default=None)

    def __post_init__(self) -> None:
        if self.kind not in {CONTINUOUS, CATEGORICAL}:
            raise ValueError(f"covariate {self.name!r}: unknown kind {self.kind!r}")
        if self.levels is not None and self.kind != CATEGORICAL:
            raise ValueError(f"covariate {self.name!r}: levels only apply to categorical covariates")
        if self.levels is not None:
            object.__setattr__(self, "levels", tuple(self.levels))

    def encode(self, samples: pd.Index) -> pd.DataFrame:
        s = self.values.reindex(samples)
        if self.kind == CONTINUOUS:
            return pd.DataFrame({self.name: pd.to_numeric(s, errors="coerce").astype(float)}, index=samples)

        levels = list(self.levels) if self.levels is not None else sorted(s.dropna().unique().tolist())
        cat = pd.Categorical(s, categories=levels, ordered=True)
        dummies = pd.get_dummies(cat, prefix=self.name, drop_first=True, dtype=float)
        dummies.index = samples
        # get_dummies yields all-zero rows for missing values; restore NaN for complete-case filtering.
        dummies.loc[pd.isna(cat)] = np.nan
        return dummies


def _duplicates(index: pd.Index) -> list[str]:
    return [str(i) for i in index[index.duplicated()].unique()]


def validate_alignment(matrix: pd.DataFrame, samples: pd.Index, *, what: str = "outcome") -> None:
    """
    Require unique feature ids, unique sample ids, and a 1:1 sample correspondence
    (by identifier) between the matrix columns and `samples`.
    """
    dup_features = _duplicates(matrix.index)
    if dup_features:
        raise InputMismatch(dup_features, detail="duplicate feature ids in matrix")
    dup_cols = _duplicates(matrix.columns)
    if dup_cols:
        raise InputMismatch(dup_cols, detail="duplicate sample ids in matrix")
    dup_samples = _duplicates(samples)
    if dup_samples:
        raise InputMismatch(dup_samples, detail=f"duplicate sample ids in {what}")

    cols = set(matrix.columns)
    other = set(samples)
    missing = (cols - other) | (other - cols)
    if missing:
        raise InputMismatch(missing, detail=f"matrix columns vs {what} samples")


def prepare_outcome_table(
    table: pd.DataFrame, *, time_col: str | None = None, event_col: str | None = None
) -> pd.DataFrame:
    """
    Coerce time/event columns to numeric and validate their domains.
    Missing values are kept; fits drop them per feature.
    """
    df = table.copy()
    dups = _duplicates(df.index)
    if dups:
        raise InputMismatch(dups, detail="duplicate sample ids in outcome table")

    if time_col is not None:
        if time_col not in df.columns:
            raise ValueError(f"time column {time_col!r} not found in outcome table")
        df[time_col] = pd.to_numeric(df[time_col], errors="coerce")
        bad = df.index[df[time_col] < 0]
        if len(bad):
            raise ValueError(f"negative times for samples: {', '.join(map(str, bad[:10]))}")
    if event_col is not None:
        if event_col not in df.columns:
            raise ValueError(f"event column {event_col!r} not found in outcome table")
        df[event_col] = pd.to_numeric(df[event_col], errors="coerce")
        ev = df[event_col]
        bad = df.index[ev.notna() & ~ev.isin([0, 1])]
        if len(bad):
            raise ValueError(f"event indicator must be 0/1; offending samples: {', '.join(map(str, bad[:10]))}")
    return df


def covariates_from_table(
    table: pd.DataFrame,
    kinds: Mapping[str, str | Sequence[object]],
) -> list[Covariate]:
    """
    Build Covariate declarations from outcome-table columns.

    kinds maps column -> "continuous" | "categorical" | explicit level list (categorical).
    """
    out: list[Covariate] = []
    for name, kind in kinds.items():
        if name not in table.columns:
            raise ValueError(f"covariate column {name!r} not found in outcome table")
        if isinstance(kind, str):
            out.append(Covariate(name=name, values=table[name], kind=kind))
        else:
            out.append(Covariate(name=name, values=table[name], kind=CATEGORICAL, levels=tuple(kind)))
    return out


def base_design(
    matrix: pd.DataFrame,
    response: Mapping[str, pd.Series],
    covariates: Sequence[Covariate] = (),
) -> pd.DataFrame:
    """
    Shared per-run frame: response columns + encoded covariates, indexed in matrix column order.
    Validates every input for 1:1 identifier correspondence with the matrix.
    """
    samples = pd.Index(matrix.columns)
    parts: list[pd.DataFrame] = []
    for name, s in response.items():
        validate_alignment(matrix, pd.Index(s.index), what=name.lstrip("_"))
        parts.append(pd.to_numeric(s.reindex(samples), errors="coerce").astype(float).rename(name).to_frame())

    seen: set[str] = set(response)
    for cov in covariates:
        if cov.name in seen:
            raise ValueError(f"duplicate covariate name {cov.name!r}")
        seen.add(cov.name)
        validate_alignment(matrix, pd.Index(cov.values.index), what=f"covariate {cov.name}")
        parts.append(cov.encode(samples))

    if not parts:
        return pd.DataFrame(index=samples)
    return pd.concat(parts, axis=1)
