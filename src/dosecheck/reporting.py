# src/dosecheck/reporting.py

"""
reporting.py
============

Exportación del estado de las restricciones:

  - Volcado estructurado (JSON) de TODAS las restricciones, sin filtrar.
    Es el formato canónico de intercambio; se puede reimportar con
    from_json / from_structured_dump sin perder nada.

  - Resumen tabular de la vista filtrada + clasificada:
      * Markdown (con título y una línea de disclaimer al final)
      * CSV (mismas columnas, sin disclaimer)
      * Consola (print_dosecheck_report, con colores por estado)

Todos los textos / glifos vienen de dosecheck.config.get_reporting_config();
se puede pasar un `cfg` explícito (p.ej. la config efectiva con overrides).
"""

from __future__ import annotations

import csv
import io
import json
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from core.constraint import Constraint, EvalStatus, MetricType, format_number, metric_label
from dosecheck.aggregator import (
    EvaluatedRow,
    Measurements,
    StatusSummary,
    evaluate_rows,
    summarize,
)
from dosecheck.config import get_reporting_config


class ConstraintImportError(ValueError):
    """El documento JSON de restricciones no es válido."""


# ------------------------------------------------------------
# Volcado estructurado (JSON)
# ------------------------------------------------------------

def constraint_to_dict(c: Constraint) -> Dict[str, Any]:
    """
    Constraint → dict con las claves del formato de intercambio:
    id, site, organ, metricType, param (solo Vx), limit, unit, note (si hay).
    """
    data: Dict[str, Any] = {
        "id": c.id,
        "site": c.site,
        "organ": c.organ,
        "metricType": c.metric_type.value,
    }
    if c.metric_type is MetricType.VX:
        data["param"] = c.param
    data["limit"] = c.limit
    data["unit"] = c.unit
    if c.note is not None:
        data["note"] = c.note
    return data


def to_structured_dump(constraints: Iterable[Constraint]) -> List[Dict[str, Any]]:
    return [constraint_to_dict(c) for c in constraints]


def to_json(constraints: Iterable[Constraint]) -> str:
    return json.dumps(to_structured_dump(constraints), ensure_ascii=False, indent=2)


def _require_number(item: Dict[str, Any], key: str, index: int) -> float:
    value = item.get(key)
    message = f"item {index}: '{key}' must be a finite number"
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConstraintImportError(message)
    try:
        number = float(value)
    except OverflowError:
        # int demasiado grande para un float
        raise ConstraintImportError(message) from None
    if not math.isfinite(number):
        raise ConstraintImportError(message)
    return number


# Claves antiguas de los dose_constraints.json exportados por la app web
_LEGACY_KEYS = {"organ": "oar", "metricType": "type"}


def _field(item: Dict[str, Any], key: str) -> Any:
    if key in item:
        return item[key]
    return item.get(_LEGACY_KEYS.get(key, key))


def _require_text(item: Dict[str, Any], key: str, index: int) -> str:
    value = _field(item, key)
    if not isinstance(value, str) or not value:
        raise ConstraintImportError(f"item {index}: '{key}' must be a non-empty string")
    return value


def constraint_from_dict(item: Any, index: int = 0) -> Constraint:
    if not isinstance(item, dict):
        raise ConstraintImportError(f"item {index}: expected an object")

    raw_metric = _field(item, "metricType")
    metric = MetricType.parse(raw_metric)
    if metric is None:
        raise ConstraintImportError(f"item {index}: unknown metric type {raw_metric!r}")

    note = item.get("note")
    if note is not None and not isinstance(note, str):
        raise ConstraintImportError(f"item {index}: 'note' must be a string")

    return Constraint(
        id=_require_text(item, "id", index),
        site=_require_text(item, "site", index),
        organ=_require_text(item, "organ", index),
        metric_type=metric,
        limit=_require_number(item, "limit", index),
        unit=_require_text(item, "unit", index),
        param=_require_number(item, "param", index) if metric is MetricType.VX else None,
        note=note,
    )


def from_structured_dump(data: Any) -> List[Constraint]:
    """
    Inverso de to_structured_dump. Lanza ConstraintImportError si el
    documento no es una lista de restricciones válidas o repite ids.
    """
    if not isinstance(data, list):
        raise ConstraintImportError("expected a JSON array of constraints")

    constraints = [constraint_from_dict(item, i) for i, item in enumerate(data)]

    seen = set()
    for c in constraints:
        if c.id in seen:
            raise ConstraintImportError(f"duplicate constraint id: {c.id!r}")
        seen.add(c.id)
    return constraints


def from_json(text: str) -> List[Constraint]:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ConstraintImportError(f"invalid JSON: {exc}") from exc
    return from_structured_dump(data)


# ------------------------------------------------------------
# Resumen tabular
# ------------------------------------------------------------

@dataclass(frozen=True)
class ReportRow:
    site: str
    oar: str
    metric: str
    limit: str
    measured: str
    status: str
    margin: str

    def as_list(self) -> List[str]:
        return [self.site, self.oar, self.metric, self.limit, self.measured, self.status, self.margin]


def _format_row(row: EvaluatedRow, cfg: Dict[str, Any]) -> ReportRow:
    c = row.constraint
    placeholder = cfg.get("placeholder", "—")
    decimals = int(cfg.get("margin_decimals", 2))

    if row.measured is None:
        measured_txt = placeholder
        margin_txt = placeholder
    else:
        measured_txt = f"{format_number(row.measured)} {c.unit}"
        margin_txt = f"{row.margin:.{decimals}f} {c.unit}"

    return ReportRow(
        site=c.site,
        oar=c.organ,
        metric=metric_label(c),
        limit=f"{format_number(c.limit)} {c.unit}",
        measured=measured_txt,
        status=row.status.token,
        margin=margin_txt,
    )


def build_report_rows(
    filtered: Iterable[Constraint],
    measurements: Measurements,
    caution_fraction: float,
    cfg: Optional[Dict[str, Any]] = None,
) -> List[ReportRow]:
    cfg = cfg if cfg is not None else get_reporting_config()
    return [
        _format_row(row, cfg)
        for row in evaluate_rows(filtered, measurements, caution_fraction)
    ]


def to_markdown(
    filtered: Iterable[Constraint],
    measurements: Measurements,
    caution_fraction: float,
    cfg: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Tabla Markdown de la vista filtrada:

        # <título>
        | Site | OAR | Metric | Limit | Measured | Status | Δ (limit–meas) |
        |---|---|...
        | ... una fila por restricción ... |

        > **Note:** <disclaimer>
    """
    cfg = cfg if cfg is not None else get_reporting_config()
    columns = cfg.get("columns", [])

    lines: List[str] = []
    lines.append(f"# {cfg.get('title', '')}")
    lines.append("| " + " | ".join(columns) + " |")
    lines.append("|" + "---|" * len(columns))
    for r in build_report_rows(filtered, measurements, caution_fraction, cfg):
        lines.append("| " + " | ".join(r.as_list()) + " |")
    lines.append("")
    lines.append(f"> **Note:** {cfg.get('disclaimer', '')}")
    return "\n".join(lines)


def to_csv(
    filtered: Iterable[Constraint],
    measurements: Measurements,
    caution_fraction: float,
    cfg: Optional[Dict[str, Any]] = None,
) -> str:
    cfg = cfg if cfg is not None else get_reporting_config()

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(cfg.get("columns", []))
    for r in build_report_rows(filtered, measurements, caution_fraction, cfg):
        writer.writerow(r.as_list())
    return buffer.getvalue()


# ------------------------------------------------------------
# Consola
# ------------------------------------------------------------

_STATUS_COLOR_KEYS = {
    EvalStatus.PASS.token: "color_pass",
    EvalStatus.CAUTION.token: "color_caution",
    EvalStatus.FAIL.token: "color_fail",
    EvalStatus.MISSING.token: "color_missing",
}


def _color(text: str, status: str, cfg: Dict[str, Any]) -> str:
    """
    Aplica color según el status (PASS / CAUTION / FAIL / MISSING)
    si use_colors=True.
    """
    if not cfg.get("use_colors", True):
        return text
    color = cfg.get(_STATUS_COLOR_KEYS.get(status, "color_missing"), "")
    reset = cfg.get("color_reset", "\033[0m")
    return f"{color}{text}{reset}"


def format_summary_line(summary: StatusSummary) -> str:
    return (
        f"Pass: {summary.pass_count}  Caution: {summary.caution}  "
        f"Fail: {summary.fail}  Missing: {summary.missing}"
    )


def render_console_report(
    filtered: List[Constraint],
    measurements: Measurements,
    caution_fraction: float,
    site: str = "All",
    cfg: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Reporte legible para terminal: cabecera, resumen, una línea por
    restricción y el disclaimer al final.
    """
    cfg = cfg if cfg is not None else get_reporting_config()
    width = int(cfg.get("header_width", 70))
    summary = summarize(filtered, measurements, caution_fraction)

    out: List[str] = []
    out.append("=" * width)
    out.append(f" {cfg.get('title', '')}  —  Site: {site}")
    out.append("=" * width)
    out.append(f"Caution band: {caution_fraction * 100:g}%   Overall: {summary.overall_status}")
    out.append(format_summary_line(summary))
    out.append("-" * width)

    for r in build_report_rows(filtered, measurements, caution_fraction, cfg):
        status = _color(f"[{r.status}]", r.status, cfg)
        out.append(f"{status} {r.site} / {r.oar}  {r.metric} <= {r.limit}")
        out.append(f"    measured: {r.measured}   Δ: {r.margin}")

    out.append("=" * width)
    out.append(cfg.get("disclaimer", ""))
    return "\n".join(out)


def print_dosecheck_report(
    filtered: List[Constraint],
    measurements: Measurements,
    caution_fraction: float,
    site: str = "All",
    cfg: Optional[Dict[str, Any]] = None,
) -> None:
    print(render_console_report(filtered, measurements, caution_fraction, site, cfg))
