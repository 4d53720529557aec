from __future__ import annotations

from typing import Iterable


def _preview(ids: list[str], limit: int = 10) -> str:
    shown = ", ".join(ids[:limit])
    if len(ids) > limit:
        shown += f", ... (+{len(ids) - limit} more)"
    return shown


class AssocScanError(ValueError):
    pass


class _IdentifierError(AssocScanError):
    """Fatal precondition failure that names the offending identifiers."""

    prefix = "invalid identifiers"

    def __init__(self, ids: Iterable[object], detail: str | None = None) -> None:
        self.ids = sorted({str(i) for i in ids})
        msg = f"{self.prefix}: {_preview(self.ids)}"
        if detail:
            msg = f"{detail}; {msg}"
        super().__init__(msg)


class InputMismatch(_IdentifierError):
    prefix = "identifiers do not correspond between feature matrix and outcome table"


class UniverseViolation(_IdentifierError):
    prefix = "foreground ids missing from universe"


class UnsupportedCategory(_IdentifierError):
    prefix = "unsupported annotation category"


class FitError(AssocScanError):
    """Per-feature fit failure; recovered by the batch runner, never fatal to a scan."""

    reason = "fit_error"


class InsufficientData(FitError):
    reason = "insufficient_data"


class SingularFit(FitError):
    reason = "singular_fit"
