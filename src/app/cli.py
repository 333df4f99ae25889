# src/app/cli.py

"""
CLI sencilla para RadOnc DoseCheck.

Uso típico desde la raíz del repo:

    python -m app.cli --measurements medidas.json --site Thorax --format markdown

Qué hace:
  1) Carga las restricciones (JSON exportado previamente o la semilla).
  2) Carga las medidas ({id: valor}) y/o aplica valores demo.
  3) Filtra por sitio y clasifica con la banda estándar o estrecha.
  4) Imprime el reporte (consola / markdown / csv) o exporta el JSON.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Dict, List, Optional

# Aseguramos que "src" esté en el path cuando se ejecute desde la raíz del proyecto
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.abspath(os.path.join(THIS_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.append(PROJECT_ROOT)

from dosecheck.config import setup_logging
from dosecheck.config_overrides import get_effective_config
from dosecheck.engine import DoseCheckSession
from dosecheck.reporting import ConstraintImportError, render_console_report

logger = logging.getLogger("app.cli")

FORMATS = ("console", "markdown", "csv", "json")


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _load_measurements(path: str) -> Dict[str, object]:
    """
    Lee {id: valor} desde JSON. Cualquier otra forma es un error de uso.
    """
    data = json.loads(_read_text(path))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: se esperaba un objeto JSON {{id: valor}}")
    return data


def build_session(
    constraints_path: Optional[str],
    measurements_path: Optional[str],
    site: Optional[str],
    tight: bool,
    demo: bool,
    overrides_path: Optional[str] = None,
) -> DoseCheckSession:
    eff = get_effective_config(overrides_path)
    session = DoseCheckSession(tolerance_cfg=eff["tolerance"])

    if constraints_path:
        session.import_constraints(_read_text(constraints_path))

    session.set_tight_band(tight)
    session.set_site_filter(site)
    if site and session.site_filter != site:
        logger.warning("Sitio '%s' no presente; se muestran todos", site)

    if measurements_path:
        for constraint_id, value in _load_measurements(measurements_path).items():
            if constraint_id not in session.constraints:
                logger.warning("Medida para id desconocido '%s' ignorada", constraint_id)
                continue
            session.set_measurement(constraint_id, value)

    if demo:
        session.load_demo_values()

    return session


def render(session: DoseCheckSession, fmt: str, reporting_cfg: Optional[dict] = None) -> str:
    if fmt == "json":
        return session.export_json()
    if fmt == "markdown":
        return session.export_markdown(reporting_cfg)
    if fmt == "csv":
        return session.export_csv(reporting_cfg)
    return render_console_report(
        session.filtered(),
        session.measurements,
        session.caution_fraction,
        site=session.site_filter,
        cfg=reporting_cfg,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="RadOnc DoseCheck – evaluación de restricciones de dosis en OARs."
    )
    parser.add_argument(
        "--constraints",
        type=str,
        default=None,
        help="JSON de restricciones exportado (por defecto, set de ejemplo).",
    )
    parser.add_argument(
        "--measurements",
        type=str,
        default=None,
        help="JSON {id: valor} con las medidas.",
    )
    parser.add_argument("--site", type=str, default="All", help="Filtro de sitio (por defecto All).")
    parser.add_argument("--tight", action="store_true", help="Banda de caution estrecha (±2%%).")
    parser.add_argument("--demo", action="store_true", help="Rellenar valores demo.")
    parser.add_argument("--format", choices=FORMATS, default="console")
    parser.add_argument("--output", type=str, default=None, help="Escribir a fichero en vez de stdout.")
    parser.add_argument("--overrides", type=str, default=None, help="JSON de overrides de config.")
    parser.add_argument("--log-level", type=str, default=None)

    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    eff = get_effective_config(args.overrides)
    reporting_cfg = eff["reporting"]
    if args.output or args.format != "console":
        reporting_cfg = dict(reporting_cfg, use_colors=False)

    try:
        session = build_session(
            constraints_path=args.constraints,
            measurements_path=args.measurements,
            site=args.site,
            tight=args.tight,
            demo=args.demo,
            overrides_path=args.overrides,
        )
    except (OSError, ValueError) as exc:
        # ConstraintImportError es un ValueError
        kind = "import" if isinstance(exc, ConstraintImportError) else "input"
        logger.error("Error de %s: %s", kind, exc)
        return 1

    text = render(session, args.format, reporting_cfg)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(text)
        logger.info("Reporte escrito en %s", args.output)
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
