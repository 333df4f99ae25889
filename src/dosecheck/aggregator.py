# src/dosecheck/aggregator.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Union

from core.constraint import Constraint, EvalStatus, Evaluation
from dosecheck.classifier import classify
from dosecheck.config import ALL_SITES
from dosecheck.stores import MeasurementStore, coerce_measurement

# Las medidas pueden venir del store o de un dict plano {id: valor}
Measurements = Union[MeasurementStore, Mapping[str, object]]


@dataclass(frozen=True)
class EvaluatedRow:
    """
    Una fila de la tabla: restricción + medida + evaluación.
    """
    constraint: Constraint
    measured: Optional[float]
    evaluation: Evaluation

    @property
    def status(self) -> EvalStatus:
        return self.evaluation.status

    @property
    def margin(self) -> Optional[float]:
        return self.evaluation.margin


@dataclass(frozen=True)
class StatusSummary:
    """
    Conteos por estado sobre la lista filtrada.
    pass_count + caution + fail + missing == total (siempre).
    """
    pass_count: int = 0
    caution: int = 0
    fail: int = 0
    missing: int = 0

    @property
    def total(self) -> int:
        return self.pass_count + self.caution + self.fail + self.missing

    @property
    def overall_status(self) -> str:
        """
        Estado global para el titular de la UI / CLI:
          FAIL > CAUTION > PASS (todas medidas) > INCOMPLETE; EMPTY sin filas.
        """
        if self.total == 0:
            return "EMPTY"
        if self.fail > 0:
            return "FAIL"
        if self.caution > 0:
            return "CAUTION"
        if self.missing > 0:
            return "INCOMPLETE"
        return "PASS"

    def as_dict(self) -> dict:
        return {
            "pass": self.pass_count,
            "caution": self.caution,
            "fail": self.fail,
            "missing": self.missing,
            "total": self.total,
            "overall_status": self.overall_status,
        }


def _lookup(measurements: Measurements, constraint_id: str):
    if measurements is None:
        return None
    return measurements.get(constraint_id)


def filter_by_site(constraints: Iterable[Constraint], site: Optional[str]) -> List[Constraint]:
    """
    Sublista con el sitio pedido, en el mismo orden.
    "All" (o sitio vacío) → lista completa sin filtrar.
    """
    items = list(constraints)
    if not site or site == ALL_SITES:
        return items
    return [c for c in items if c.site == site]


def evaluate_rows(
    filtered: Iterable[Constraint],
    measurements: Measurements,
    caution_fraction: float,
) -> List[EvaluatedRow]:
    """
    Clasifica cada restricción filtrada con la medida actual.
    Se recalcula siempre desde el estado actual de los stores.
    """
    rows: List[EvaluatedRow] = []
    for c in filtered:
        raw = _lookup(measurements, c.id)
        evaluation = classify(raw, c, caution_fraction)
        measured = coerce_measurement(raw)
        rows.append(
            EvaluatedRow(
                constraint=c,
                measured=measured,
                evaluation=evaluation,
            )
        )
    return rows


def summarize(
    filtered: Iterable[Constraint],
    measurements: Measurements,
    caution_fraction: float,
) -> StatusSummary:
    counts = {status: 0 for status in EvalStatus}
    for row in evaluate_rows(filtered, measurements, caution_fraction):
        counts[row.status] += 1

    return StatusSummary(
        pass_count=counts[EvalStatus.PASS],
        caution=counts[EvalStatus.CAUTION],
        fail=counts[EvalStatus.FAIL],
        missing=counts[EvalStatus.MISSING],
    )
