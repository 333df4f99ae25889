# src/dosecheck/classifier.py

"""
classifier.py
=============

Clasificación de UNA restricción frente a UNA medida:

    classify(measured, constraint, caution_fraction) → Evaluation

Reglas:

  - measured ausente / no finito → MISSING (margin=None). Va antes que todo.
  - margin = limit - measured  (positivo = hay margen).
  - measured <= limit:
        band = |limit| * caution_fraction
        measured >= limit - band → CAUTION
        si no                    → PASS
  - measured > limit → FAIL, sin importar la banda.

Frontera: measured == limit da CAUTION (margin=0 <= band). Solo con
caution_fraction == 0 da PASS.
"""

from __future__ import annotations

from typing import Optional

from core.constraint import Constraint, EvalStatus, Evaluation
from dosecheck.stores import coerce_measurement


def caution_band(limit: float, caution_fraction: float) -> float:
    """Anchura de la banda de caution bajo el límite."""
    return abs(limit) * caution_fraction


def classify(
    measured: Optional[float],
    constraint: Constraint,
    caution_fraction: float = 0.05,
) -> Evaluation:
    if caution_fraction < 0:
        raise ValueError(f"caution_fraction must be >= 0, got {caution_fraction!r}")

    value = coerce_measurement(measured)
    if value is None:
        return Evaluation(status=EvalStatus.MISSING)

    limit = constraint.limit
    margin = limit - value

    if value <= limit:
        band = caution_band(limit, caution_fraction)
        # Con tolerancia cero no hay banda: en el límite exacto es PASS
        if caution_fraction > 0 and value >= limit - band:
            return Evaluation(status=EvalStatus.CAUTION, margin=margin)
        return Evaluation(status=EvalStatus.PASS, margin=margin)

    return Evaluation(status=EvalStatus.FAIL, margin=margin)
