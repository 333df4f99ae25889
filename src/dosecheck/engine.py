# src/dosecheck/engine.py

"""
engine.py
=========

Interfaz de alto nivel del motor DoseCheck.

DoseCheckSession agrupa el estado de UN usuario / pestaña:

  - ConstraintStore + MeasurementStore
  - filtro de sitio activo
  - toggle de banda estrecha (tight)
  - borrador del formulario "Add constraint"

y es quien garantiza el borrado en cascada (constraint → medida).
Todo lo derivado (filas, resumen, reportes) se recalcula en cada
llamada a partir del estado actual; no se cachea nada.

SessionRegistry guarda una sesión aislada por id (cookie en la UI web).
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from core.constraint import Constraint, ConstraintDraft
from dosecheck import reporting
from dosecheck.aggregator import (
    EvaluatedRow,
    StatusSummary,
    evaluate_rows,
    filter_by_site,
    summarize,
)
from dosecheck.config import (
    ALL_SITES,
    get_caution_fraction,
    get_demo_values_config,
    get_session_config,
)
from dosecheck.stores import (
    ConstraintStore,
    IdFactory,
    MeasurementStore,
    default_id_factory,
)

logger = logging.getLogger(__name__)


def demo_measurements(
    constraints: List[Constraint],
    cfg: Optional[Dict[str, Any]] = None,
) -> Dict[str, float]:
    """
    Medidas sintéticas para las primeras N restricciones (ver
    DEMO_VALUES_CONFIG). Devuelve {id: valor}; las reglas None no
    generan entrada.
    """
    cfg = cfg if cfg is not None else get_demo_values_config()
    rules = cfg.get("rules", [])
    max_rows = int(cfg.get("max_rows", len(rules)))

    values: Dict[str, float] = {}
    for c, rule in zip(constraints[:max_rows], rules):
        if rule is None:
            continue
        kind = rule.get("kind")
        if kind == "relative":
            values[c.id] = c.limit + c.limit * float(rule["value"])
        elif kind == "at_limit":
            values[c.id] = c.limit
        elif kind == "below_abs":
            values[c.id] = max(0.0, c.limit - float(rule["value"]))
        else:
            logger.warning("Regla demo desconocida: %r", kind)
    return values


class DoseCheckSession:
    """
    Estado de trabajo de una sesión (ver docstring del módulo).

    Parameters
    ----------
    id_factory : callable
        Generador de ids para nuevas restricciones.
    constraints : iterable de Constraint, opcional
        Contenido inicial; None → semilla de ejemplo.
    tolerance_cfg : dict, opcional
        Config de tolerancia efectiva (con overrides). None → TOLERANCE_CONFIG.
    """

    def __init__(
        self,
        id_factory: IdFactory = default_id_factory,
        constraints=None,
        tolerance_cfg: Optional[Dict[str, Any]] = None,
    ):
        self.constraints = ConstraintStore(id_factory=id_factory, constraints=constraints)
        self.measurements = MeasurementStore()
        self.site_filter: str = ALL_SITES
        self.tight_band: bool = False
        self.draft = ConstraintDraft()
        self._tolerance_cfg = tolerance_cfg

    # ---------------- política de tolerancia ----------------

    @property
    def caution_fraction(self) -> float:
        return get_caution_fraction(self.tight_band, self._tolerance_cfg)

    def set_tight_band(self, tight: bool) -> None:
        self.tight_band = bool(tight)

    # ---------------- filtro ----------------

    def set_site_filter(self, site: Optional[str]) -> None:
        """
        Cambia el filtro. Un sitio que ya no existe en el store vuelve a "All".
        """
        site = site or ALL_SITES
        if site not in self.constraints.list_sites():
            logger.debug("Filtro '%s' sin restricciones; se usa '%s'", site, ALL_SITES)
            site = ALL_SITES
        self.site_filter = site

    def list_sites(self) -> List[str]:
        return self.constraints.list_sites()

    # ---------------- mutaciones ----------------

    def add_constraint(self, draft: Optional[ConstraintDraft] = None) -> Optional[Constraint]:
        """
        Añade el borrador indicado (o el borrador de la sesión).
        Si tiene éxito, el borrador de la sesión se reinicia conservando
        sitio / tipo / unidad.
        """
        draft = draft if draft is not None else self.draft
        created = self.constraints.add(draft)
        if created is not None:
            self.draft = draft.reset_after_add()
        return created

    def remove_constraint(self, constraint_id: str) -> bool:
        """
        Borra la restricción Y su medida. Id desconocido → no-op.
        """
        removed = self.constraints.remove(constraint_id)
        if removed:
            self.measurements.cascade_delete(constraint_id)
            # Si el sitio filtrado se quedó vacío, el filtro vuelve a "All"
            self.set_site_filter(self.site_filter)
        return removed

    def set_measurement(self, constraint_id: str, value) -> Optional[float]:
        """
        Guarda / borra la medida. Id que no está en el store → no-op.
        """
        if constraint_id not in self.constraints:
            logger.debug("set_measurement(%s): id desconocido, no-op", constraint_id)
            return None
        return self.measurements.set(constraint_id, value)

    def reset_to_defaults(self) -> None:
        """
        Vuelve a la semilla: descarta restricciones Y medidas.
        """
        self.constraints.reset_to_defaults()
        self.measurements.clear()
        self.site_filter = ALL_SITES

    def load_demo_values(self) -> Dict[str, float]:
        """
        Rellena medidas sintéticas sobre la vista filtrada actual.
        """
        values = demo_measurements(self.filtered())
        self.measurements.update(values)
        return values

    def import_constraints(self, text: str) -> List[Constraint]:
        """
        Reemplaza todo el set con un JSON exportado previamente.
        Lanza reporting.ConstraintImportError si el JSON no es válido
        (en ese caso el estado no cambia). Las medidas se descartan.
        """
        constraints = reporting.from_json(text)
        self.constraints.replace_all(constraints)
        self.measurements.clear()
        self.site_filter = ALL_SITES
        logger.info("Imported %d constraints", len(constraints))
        return constraints

    # ---------------- vistas derivadas ----------------

    def filtered(self) -> List[Constraint]:
        return filter_by_site(self.constraints, self.site_filter)

    def rows(self) -> List[EvaluatedRow]:
        return evaluate_rows(self.filtered(), self.measurements, self.caution_fraction)

    def summary(self) -> StatusSummary:
        return summarize(self.filtered(), self.measurements, self.caution_fraction)

    # ---------------- exportación ----------------

    def export_json(self) -> str:
        # Siempre el set completo, sin filtrar
        return reporting.to_json(self.constraints)

    def export_markdown(self, cfg: Optional[Dict[str, Any]] = None) -> str:
        return reporting.to_markdown(self.filtered(), self.measurements, self.caution_fraction, cfg)

    def export_csv(self, cfg: Optional[Dict[str, Any]] = None) -> str:
        return reporting.to_csv(self.filtered(), self.measurements, self.caution_fraction, cfg)


class SessionRegistry:
    """
    Una DoseCheckSession aislada por id de sesión.

    Guarda como mucho `max_sessions`; al superarlo se descarta la sesión
    usada hace más tiempo (LRU).
    """

    def __init__(
        self,
        id_factory: IdFactory = default_id_factory,
        tolerance_cfg: Optional[Dict[str, Any]] = None,
        max_sessions: Optional[int] = None,
    ):
        if max_sessions is None:
            max_sessions = get_session_config()["max_sessions"]
        if max_sessions < 1:
            raise ValueError(f"max_sessions must be >= 1, got {max_sessions}")
        self._sessions: "OrderedDict[str, DoseCheckSession]" = OrderedDict()
        self._lock = threading.Lock()
        self._id_factory = id_factory
        self._tolerance_cfg = tolerance_cfg
        self._max_sessions = max_sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get_or_create(self, session_id: Optional[str]) -> tuple[str, DoseCheckSession]:
        with self._lock:
            if session_id and session_id in self._sessions:
                self._sessions.move_to_end(session_id)
                return session_id, self._sessions[session_id]
            new_id = uuid.uuid4().hex
            session = DoseCheckSession(
                id_factory=self._id_factory,
                tolerance_cfg=self._tolerance_cfg,
            )
            self._sessions[new_id] = session
            while len(self._sessions) > self._max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info("DoseCheck session %s evicted (limit %d)", evicted, self._max_sessions)
            logger.info("New DoseCheck session %s", new_id)
            return new_id, session

    def drop(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
