from __future__ import annotations

import copy
import logging.config
from typing import Any, Dict, List, Optional, TypedDict


# ============================================================
# 1) TOLERANCIA (banda de "caution")
#    - Un único escalar caution_fraction para todas las restricciones
#    - Dos presets: estándar (5%) y estrecho (2%)
# ============================================================

TOLERANCE_CONFIG: Dict[str, Any] = {
    "presets": {
        "standard": 0.05,
        "tight": 0.02,
    },
    "default_preset": "standard",
    # Etiqueta del toggle en la UI
    "tight_label": "Tight caution band (±2%)",
}


def get_tolerance_config() -> Dict[str, Any]:
    return TOLERANCE_CONFIG


def get_caution_fraction(
    tight: bool = False,
    cfg: Optional[Dict[str, Any]] = None,
) -> float:
    """
    Devuelve la fracción de tolerancia a usar en la clasificación.

    - tight=True  → preset "tight"
    - tight=False → preset por defecto ("standard")

    `cfg` permite pasar la config efectiva (base + overrides); si es None
    se usa TOLERANCE_CONFIG tal cual.
    """
    cfg = cfg if cfg is not None else TOLERANCE_CONFIG
    presets = cfg.get("presets", {})
    key = "tight" if tight else cfg.get("default_preset", "standard")
    return float(presets.get(key, 0.05))


# ============================================================
# 2) SITIOS / UNIDADES (opciones del formulario "Add constraint")
# ============================================================

# Valor centinela del filtro: no filtra nada
ALL_SITES = "All"

SITE_OPTIONS: List[str] = ["Head & Neck", "Thorax", "CNS", "Abd/Pelvis", "Other"]

UNIT_OPTIONS: List[str] = ["Gy", "%", "cc"]

METRIC_OPTIONS: List[str] = ["Dmax", "Dmean", "Vx"]


# ============================================================
# 3) RESTRICCIONES SEMILLA
#
# Valores de EJEMPLO (no validados clínicamente). Cubren los tres
# tipos de métrica y dos sitios. El id se genera al cargar.
# ============================================================

class StarterConstraint(TypedDict, total=False):
    site: str
    oar: str
    type: str
    param: float
    limit: float
    unit: str
    note: str


STARTER_CONSTRAINTS: List[StarterConstraint] = [
    {"site": "Head & Neck", "oar": "Spinal cord", "type": "Dmax", "limit": 45, "unit": "Gy", "note": "Example only"},
    {"site": "Head & Neck", "oar": "Brainstem", "type": "Dmax", "limit": 54, "unit": "Gy", "note": "Example only"},
    {"site": "Head & Neck", "oar": "Parotid (mean)", "type": "Dmean", "limit": 26, "unit": "Gy", "note": "Example only"},
    {"site": "Thorax", "oar": "Lung (combined)", "type": "Vx", "param": 20, "limit": 35, "unit": "%", "note": "Example only (V20)"},
    {"site": "Thorax", "oar": "Heart (mean)", "type": "Dmean", "limit": 26, "unit": "Gy", "note": "Example only"},
]


def get_starter_constraints() -> List[StarterConstraint]:
    """
    Copia de la semilla, para que nadie modifique la lista base.
    """
    return copy.deepcopy(STARTER_CONSTRAINTS)


# ============================================================
# 4) VALORES DEMO
#
# "Demo values" rellena las primeras N restricciones filtradas con
# medidas sintéticas que cubren los cuatro estados:
#
#   - offset relativo: measured = limit + limit * rel
#   - "at_limit":      measured = limit
#   - "below_abs":     measured = max(0, limit - abs)
#   - None:            no se toca (queda MISSING)
# ============================================================

DEMO_VALUES_CONFIG: Dict[str, Any] = {
    "max_rows": 6,
    "rules": [
        {"kind": "relative", "value": -0.03},   # caution (con banda 5%)
        {"kind": "relative", "value": -0.20},   # pass
        {"kind": "relative", "value": 0.10},    # fail
        {"kind": "at_limit"},                   # caution (frontera)
        {"kind": "below_abs", "value": 0.5},
        None,                                   # missing
    ],
}


def get_demo_values_config() -> Dict[str, Any]:
    return DEMO_VALUES_CONFIG


# ============================================================
# 5) REPORTING / EXPORT
# ============================================================

REPORTING_CONFIG: Dict[str, Any] = {
    "title": "Plan Review – Dose Constraint Summary",
    "columns": ["Site", "OAR", "Metric", "Limit", "Measured", "Status", "Δ (limit–meas)"],
    # Glifo cuando no hay medida
    "placeholder": "—",
    "margin_decimals": 2,
    "disclaimer": (
        "Educational template. Replace with validated institutional "
        "constraints before any clinical use."
    ),
    "json_filename": "dose_constraints.json",
    "markdown_filename": "dose_constraints.md",
    "csv_filename": "dose_constraints.csv",

    # Consola
    "use_colors": True,
    "header_width": 70,
    "color_pass": "\033[92m",
    "color_caution": "\033[93m",
    "color_fail": "\033[91m",
    "color_missing": "\033[90m",
    "color_reset": "\033[0m",
}


def get_reporting_config() -> Dict[str, Any]:
    """
    Config de la capa de reporting (Markdown / CSV / consola).
    """
    return REPORTING_CONFIG


# ============================================================
# 6) SESIONES (UI web)
#
# Una sesión por cookie. Al pasar de max_sessions se descarta la
# usada hace más tiempo.
# ============================================================

SESSION_CONFIG: Dict[str, Any] = {
    "max_sessions": 256,
}


def get_session_config() -> Dict[str, Any]:
    return SESSION_CONFIG


# ============================================================
# 7) LOGGING CONFIG
#
# Dict estilo logging.config.dictConfig. La CLI y la app web llaman
# a setup_logging() al arrancar; el motor solo crea loggers.
# ============================================================

LOGGING_CONFIG: Dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "root": {
        "level": "WARNING",
        "handlers": ["console"],
    },
    "formatters": {
        "simple": {
            "format": "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
            "level": "DEBUG",
        },
    },
    "loggers": {
        "dosecheck": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "app": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
    },
}


def get_logging_config() -> Dict[str, Any]:
    return LOGGING_CONFIG


def setup_logging(level: Optional[str] = None) -> None:
    """
    Aplica LOGGING_CONFIG con dictConfig.

    `level` (p.ej. "DEBUG") sobreescribe el nivel de los loggers propios
    sin tocar el dict base.
    """
    cfg = copy.deepcopy(get_logging_config())
    if level:
        for logger_cfg in cfg["loggers"].values():
            logger_cfg["level"] = level.upper()
    logging.config.dictConfig(cfg)
