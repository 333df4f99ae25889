# src/core/constraint.py

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import numpy as np


# ---------------------------------------------------------
# Tipos de métrica (Dmax / Dmean / Vx)
# ---------------------------------------------------------

class MetricType(str, Enum):
    """
    Tipo de métrica DVH sobre la que se define la restricción.

    - DMAX : dosis máxima
    - DMEAN: dosis media
    - VX   : volumen que recibe al menos x Gy (requiere `param`)
    """
    DMAX = "Dmax"
    DMEAN = "Dmean"
    VX = "Vx"

    @classmethod
    def parse(cls, value) -> Optional["MetricType"]:
        """
        'Dmax' / 'dmax' / MetricType.DMAX → MetricType.DMAX.
        Devuelve None si no se reconoce.
        """
        if isinstance(value, MetricType):
            return value
        if value is None:
            return None
        key = str(value).strip().lower()
        for mt in cls:
            if mt.value.lower() == key:
                return mt
        return None


# ---------------------------------------------------------
# Estados de evaluación
# ---------------------------------------------------------

class EvalStatus(str, Enum):
    PASS = "pass"
    CAUTION = "caution"
    FAIL = "fail"
    MISSING = "missing"

    @property
    def token(self) -> str:
        """Token en mayúsculas para tablas y reportes (PASS, CAUTION...)."""
        return self.value.upper()


def _is_number(value) -> bool:
    # bool es subclase de int, pero no es un valor numérico válido aquí
    if isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError, OverflowError):
        return False


# ---------------------------------------------------------
# Restricción de dosis (registro inmutable)
# ---------------------------------------------------------

@dataclass(frozen=True)
class Constraint:
    """
    Restricción de dosis para un órgano de riesgo (OAR).

    Attributes
    ----------
    id : str
        Identificador opaco, asignado al crear. No cambia en toda la vida
        de la restricción.
    site : str
        Región anatómica ("Head & Neck", "Thorax"...). Solo se usa para
        filtrar / agrupar.
    organ : str
        Nombre del OAR (texto libre).
    metric_type : MetricType
        Dmax, Dmean o Vx.
    limit : float
        Umbral contra el que se compara la medida.
    unit : str
        Unidad para mostrar ("Gy", "%", "cc"). No entra en la comparación.
    param : float | None
        La "x" de Vx (Gy). None para Dmax / Dmean.
    note : str | None
        Comentario libre (protocolo, institución...).
    """
    id: str
    site: str
    organ: str
    metric_type: MetricType
    limit: float
    unit: str
    param: Optional[float] = None
    note: Optional[str] = None

    @property
    def metric_label(self) -> str:
        return metric_label(self)


def format_number(value: float) -> str:
    """
    Formatea un número como lo haría la UI: 45.0 → '45', 44.5 → '44.5',
    1e-05 → '0.00001' (nunca notación científica).
    """
    v = float(value)
    if v.is_integer():
        return str(int(v))
    return np.format_float_positional(v, trim="-")


def metric_label(c: Constraint) -> str:
    """
    Etiqueta legible de la métrica.

    Dmax → 'Dmax', Dmean → 'Dmean', Vx(param=20, unit='%') → 'V20%'.
    """
    if c.metric_type is MetricType.VX:
        param = format_number(c.param) if c.param is not None else ""
        return f"V{param}{c.unit}"
    return c.metric_type.value


# ---------------------------------------------------------
# Borrador (formulario "Add constraint")
# ---------------------------------------------------------

@dataclass
class ConstraintDraft:
    """
    Borrador mutable de una restricción mientras el usuario rellena el
    formulario. Todos los campos son opcionales; la validación se hace
    solo al final, en ConstraintStore.add().
    """
    site: Optional[str] = "Other"
    organ: Optional[str] = None
    metric_type: Optional[MetricType] = MetricType.DMAX
    param: Optional[float] = None
    limit: Optional[float] = None
    unit: Optional[str] = "Gy"
    note: Optional[str] = None

    def validate(self) -> List[str]:
        """
        Devuelve la lista de problemas del borrador.
        Lista vacía → el borrador es válido para insertar.
        """
        problems: List[str] = []
        if not self.site:
            problems.append("site is required")
        if not self.organ:
            problems.append("organ is required")
        if MetricType.parse(self.metric_type) is None:
            problems.append("metric type must be one of Dmax, Dmean, Vx")
        if self.limit is None or not _is_number(self.limit):
            problems.append("limit must be a finite number")
        if not self.unit:
            problems.append("unit is required")
        if MetricType.parse(self.metric_type) is MetricType.VX:
            if self.param is None or not _is_number(self.param):
                problems.append("Vx constraints need a numeric dose parameter")
        return problems

    def build(self, constraint_id: str) -> Constraint:
        """
        Construye el Constraint definitivo. Asume validate() == [].
        """
        metric = MetricType.parse(self.metric_type)
        return Constraint(
            id=constraint_id,
            site=str(self.site),
            organ=str(self.organ),
            metric_type=metric,
            limit=float(self.limit),
            unit=str(self.unit),
            param=float(self.param) if metric is MetricType.VX else None,
            note=self.note or None,
        )

    def reset_after_add(self) -> "ConstraintDraft":
        """
        Nuevo borrador tras un add: conserva site, tipo y unidad
        (igual que el formulario web), el resto se limpia.
        """
        return ConstraintDraft(
            site=self.site,
            metric_type=self.metric_type,
            unit=self.unit,
        )


# ---------------------------------------------------------
# Resultado de clasificar una restricción
# ---------------------------------------------------------

@dataclass(frozen=True)
class Evaluation:
    """
    - status: pass / caution / fail / missing
    - margin: limit - measured (positivo = dentro del límite);
              None si no hay medida.
    """
    status: EvalStatus
    margin: Optional[float] = None


__all__ = [
    "MetricType",
    "EvalStatus",
    "Constraint",
    "ConstraintDraft",
    "Evaluation",
    "metric_label",
    "format_number",
]
