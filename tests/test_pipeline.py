from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from assocscan.annotations import InMemoryAnnotationStore
from assocscan.config import AnnotationCategories, PipelineParams, ScanConfig
from assocscan.errors import InputMismatch, UniverseViolation
from assocscan.pipeline import run_pipeline


@pytest.fixture
def cohort() -> dict:
    rng = np.random.default_rng(21)
    n = 24
    samples = [f"S{i:02d}" for i in range(n)]
    y = rng.normal(size=n)
    rows = {}
    for i in range(6):
        rows[f"G{i:02d}"] = 0.5 * y + rng.normal(scale=0.02, size=n)
    for i in range(6, 10):
        rows[f"G{i:02d}"] = -0.5 * y + rng.normal(scale=0.02, size=n)
    for i in range(10, 30):
        rows[f"G{i:02d}"] = rng.normal(size=n)
    matrix = pd.DataFrame(rows, index=samples).T

    outcome = pd.DataFrame(
        {
            "response": y,
            "batch": ["b1", "b2"] * (n // 2),
            "time": np.exp(-y + rng.normal(size=n)) + 0.1,
            "event": [1] * (n - 4) + [0] * 4,
        },
        index=samples,
    )
    annotations = InMemoryAnnotationStore.from_gene_sets(
        {
            "UP": [f"G{i:02d}" for i in range(11)],
            "RANDOM": [f"G{i:02d}" for i in range(20, 26)],
        },
        category=AnnotationCategories.HALLMARK,
    )
    return {"matrix": matrix, "outcome": outcome, "annotations": annotations}


def test_regression_pipeline_end_to_end(cohort):
    res = run_pipeline(
        matrix=cohort["matrix"],
        outcome=cohort["outcome"],
        response_col="response",
        covariates={"batch": ["b1", "b2"]},
        annotations=cohort["annotations"],
        params=PipelineParams(effect_threshold=1.0, direction="absolute", q_threshold=0.05),
    )
    assert res.foreground.ids == {f"G{i:02d}" for i in range(10)}
    assert len(res.universe) == 30
    assert len(res.adjusted) == 30
    assert all(r.q is not None for r in res.adjusted)

    assert res.enrichment is not None
    assert [r.term_id for r in res.enrichment] == ["UP"]
    top = res.enrichment.results[0]
    assert top.overlap == 10
    assert top.p < 1e-5
    assert res.enrichment.n_tested == 2
    assert not res.interrupted

    frame = res.scan_frame()
    assert frame["feature"].tolist() == list(cohort["matrix"].index)
    assert "q" in frame.columns


def test_pipeline_directional_foreground(cohort):
    res = run_pipeline(
        matrix=cohort["matrix"],
        outcome=cohort["outcome"],
        response_col="response",
        params=PipelineParams(effect_threshold=1.0, direction="negative", max_q=0.05),
    )
    assert res.foreground.ids == {"G06", "G07", "G08", "G09"}
    assert res.enrichment is None


def test_survival_pipeline_runs(cohort):
    res = run_pipeline(
        matrix=cohort["matrix"],
        outcome=cohort["outcome"],
        time_col="time",
        event_col="event",
        annotations=cohort["annotations"],
        params=PipelineParams(effect_threshold=0.0, direction="absolute", p_threshold=1.0, q_threshold=1.0),
        scan_config=ScanConfig(ties="breslow"),
    )
    assert res.scan.model == "cox"
    assert len(res.scan) == 30
    assert res.enrichment is not None


def test_pipeline_input_mismatch(cohort):
    with pytest.raises(InputMismatch):
        run_pipeline(matrix=cohort["matrix"], outcome=cohort["outcome"].iloc[1:], response_col="response")


def test_pipeline_universe_must_cover_foreground(cohort):
    with pytest.raises(UniverseViolation):
        run_pipeline(
            matrix=cohort["matrix"],
            outcome=cohort["outcome"],
            response_col="response",
            annotations=cohort["annotations"],
            universe=["G00"],
        )


def test_pipeline_requires_an_outcome(cohort):
    with pytest.raises(ValueError):
        run_pipeline(matrix=cohort["matrix"], outcome=cohort["outcome"])
    with pytest.raises(ValueError):
        run_pipeline(matrix=cohort["matrix"], outcome=cohort["outcome"], time_col="time")
