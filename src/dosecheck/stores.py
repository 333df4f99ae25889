# src/dosecheck/stores.py

"""
stores.py
=========

Los dos almacenes en memoria del motor:

  - ConstraintStore  → lista ordenada de Constraint (add / remove / reset)
  - MeasurementStore → medidas por id de restricción (opcionales)

Ninguno de los dos conoce al otro. El borrado en cascada
(constraint → medida) lo hace el orquestador (dosecheck.engine),
llamando a MeasurementStore.cascade_delete() cuando remove() tuvo éxito.

Nada aquí lanza excepciones por entradas del usuario: un borrador
inválido no se inserta, un id desconocido es un no-op y una medida no
numérica se trata como ausente.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional

import numpy as np

from core.constraint import Constraint, ConstraintDraft, MetricType
from dosecheck.config import ALL_SITES, get_starter_constraints

logger = logging.getLogger(__name__)

IdFactory = Callable[[], str]

# Reintentos si el generador devuelve un id ya usado
_MAX_ID_ATTEMPTS = 100


def default_id_factory() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------
# Coerción de medidas
# ---------------------------------------------------------

def coerce_measurement(value) -> Optional[float]:
    """
    Convierte lo que venga de la UI / CLI en un float finito, o None.

      - None, "" y textos no numéricos → None
      - NaN / ±inf                     → None
      - int que no cabe en un float    → None
      - bool                           → None (no es una medida)
      - "44.5", 44.5, np.float32(44.5) → 44.5
      - 0 → 0.0 (cero es una medida válida, distinta de "sin medida")
    """
    if value is None or isinstance(value, (bool, np.bool_)):
        return None

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None

    if isinstance(value, np.ndarray):
        # Solo escalares (p.ej. el resultado de un np.mean sobre el DVH)
        if value.ndim != 0:
            return None
        value = value.item()

    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None

    if not np.isfinite(number):
        return None
    return number


# ---------------------------------------------------------
# ConstraintStore
# ---------------------------------------------------------

def _drafts_from_starter() -> List[ConstraintDraft]:
    drafts: List[ConstraintDraft] = []
    for item in get_starter_constraints():
        drafts.append(
            ConstraintDraft(
                site=item["site"],
                organ=item["oar"],
                metric_type=MetricType.parse(item["type"]),
                param=item.get("param"),
                limit=item["limit"],
                unit=item["unit"],
                note=item.get("note"),
            )
        )
    return drafts


class ConstraintStore:
    """
    Colección ordenada de restricciones.

    El orden de inserción es el orden por defecto de la tabla y de los
    reportes. Los ids son únicos en todo momento.

    Parameters
    ----------
    id_factory : callable
        Generador de ids opacos (uuid4 por defecto). En tests se inyecta
        uno determinista.
    constraints : iterable de Constraint, opcional
        Contenido inicial. Si es None se carga la semilla de ejemplo.
    """

    def __init__(
        self,
        id_factory: IdFactory = default_id_factory,
        constraints: Optional[Iterable[Constraint]] = None,
    ):
        self._id_factory = id_factory
        self._items: List[Constraint] = []
        if constraints is None:
            self.reset_to_defaults()
        else:
            self.replace_all(constraints)

    # ---------------- lectura ----------------

    def __iter__(self) -> Iterator[Constraint]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, constraint_id: object) -> bool:
        return any(c.id == constraint_id for c in self._items)

    def get(self, constraint_id: str) -> Optional[Constraint]:
        for c in self._items:
            if c.id == constraint_id:
                return c
        return None

    def as_list(self) -> List[Constraint]:
        return list(self._items)

    def list_sites(self) -> List[str]:
        """
        ["All", sitios distintos en orden de primera aparición].
        """
        sites: List[str] = [ALL_SITES]
        for c in self._items:
            if c.site not in sites:
                sites.append(c.site)
        return sites

    # ---------------- mutación ----------------

    def _new_id(self) -> str:
        taken = {c.id for c in self._items}
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = str(self._id_factory())
            if candidate not in taken:
                return candidate
        # Con uuid4 no debería pasar nunca; con un generador roto sí
        raise RuntimeError("id_factory keeps returning ids that are already in use")

    def add(self, draft: ConstraintDraft) -> Optional[Constraint]:
        """
        Valida el borrador y, si es correcto, crea la restricción con un
        id nuevo y la añade al final.

        Devuelve la Constraint creada, o None si el borrador no es válido
        (en ese caso no se modifica nada).
        """
        problems = draft.validate()
        if problems:
            logger.warning("Constraint draft rejected: %s", "; ".join(problems))
            return None

        constraint = draft.build(self._new_id())
        self._items.append(constraint)
        logger.debug("Constraint added: %s (%s)", constraint.id, constraint.organ)
        return constraint

    def remove(self, constraint_id: str) -> bool:
        """
        Elimina la restricción con ese id. Id desconocido → no-op (False).
        """
        for i, c in enumerate(self._items):
            if c.id == constraint_id:
                del self._items[i]
                logger.debug("Constraint removed: %s", constraint_id)
                return True
        logger.debug("remove(%s): id desconocido, no-op", constraint_id)
        return False

    def reset_to_defaults(self) -> None:
        """
        Sustituye toda la colección por la semilla de ejemplo, con ids nuevos.
        """
        self._items = []
        for draft in _drafts_from_starter():
            self._items.append(draft.build(self._new_id()))
        logger.info("Constraint set reset to %d starter constraints", len(self._items))

    def replace_all(self, constraints: Iterable[Constraint]) -> None:
        """
        Sustituye toda la colección (p.ej. al reimportar un JSON).
        Lanza ValueError si hay ids duplicados; en ese caso no toca nada.
        """
        items = list(constraints)
        seen = set()
        for c in items:
            if c.id in seen:
                raise ValueError(f"duplicate constraint id: {c.id!r}")
            seen.add(c.id)
        self._items = items


# ---------------------------------------------------------
# MeasurementStore
# ---------------------------------------------------------

class MeasurementStore:
    """
    Medidas opcionales indexadas por id de restricción.

    Ausente ≠ 0: set(id, None) borra la medida, set(id, 0) guarda 0.0.
    """

    def __init__(self, values: Optional[Mapping[str, object]] = None):
        self._values: Dict[str, float] = {}
        if values:
            self.update(values)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, constraint_id: object) -> bool:
        return constraint_id in self._values

    def get(self, constraint_id: str) -> Optional[float]:
        return self._values.get(constraint_id)

    def set(self, constraint_id: str, value) -> Optional[float]:
        """
        Guarda (o borra, si el valor no es numérico) la medida.
        Devuelve el valor efectivamente guardado.
        """
        number = coerce_measurement(value)
        if number is None:
            self._values.pop(constraint_id, None)
        else:
            self._values[constraint_id] = number
        return number

    def update(self, values: Mapping[str, object]) -> None:
        for constraint_id, value in values.items():
            self.set(constraint_id, value)

    def cascade_delete(self, constraint_id: str) -> None:
        self._values.pop(constraint_id, None)

    def clear(self) -> None:
        self._values.clear()

    def as_dict(self) -> Dict[str, float]:
        return dict(self._values)
