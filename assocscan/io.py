from __future__ import annotations

from pathlib import Path
from typing import Iterable

import pandas as pd


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def write_tsv(df: pd.DataFrame, path: Path) -> None:
    ensure_dir(path.parent)
    df.to_csv(path, sep="\t", index=False)


def write_ids(ids: Iterable[str], path: Path) -> None:
    ensure_dir(path.parent)
    path.write_text("".join(f"{i}\n" for i in ids), encoding="utf-8")


def read_matrix_tsv(path: Path) -> pd.DataFrame:
    """
    Features x samples table; first column holds feature ids, header holds sample ids.
    """
    df = pd.read_csv(path, sep="\t", index_col=0)
    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)
    return df


def read_outcome_tsv(path: Path, *, sample_col: str | None = None) -> pd.DataFrame:
    df = pd.read_csv(path, sep="\t")
    key = sample_col or df.columns[0]
    df[key] = df[key].astype(str)
    return df.set_index(key)
