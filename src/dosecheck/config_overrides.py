"""
dosecheck.config_overrides
--------------------------

Capa muy ligera para manejar overrides de configuración
(procedentes de la UI o de un JSON del usuario) sin tocar los
diccionarios base definidos en dosecheck.config.

Schema del JSON (dosecheck_overrides.json):

{
  "tolerance": {
    "presets": {"standard": 0.05, "tight": 0.02},
    "default_preset": "standard"
  },
  "reporting": {
    "use_colors": false,
    "placeholder": "-"
  }
}
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict

from dosecheck import config as dc_config

logger = logging.getLogger(__name__)

# Ruta por defecto (mismo directorio que dosecheck/config.py)
OVERRIDES_FILE = Path(__file__).resolve().parent / "dosecheck_overrides.json"

OVERRIDE_SECTIONS = ("tolerance", "reporting")

DEFAULT_OVERRIDES: Dict[str, Any] = {
    "tolerance": {},
    "reporting": {},
}


# ---------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------

def load_overrides(path: str | Path | None = None) -> Dict[str, Any]:
    """
    Lee el archivo de overrides (JSON) y devuelve un dict
    siempre con claves 'tolerance' y 'reporting'.

    Si no existe o está roto, devuelve DEFAULT_OVERRIDES.
    """
    p = Path(path) if path is not None else OVERRIDES_FILE

    if not p.exists():
        return copy.deepcopy(DEFAULT_OVERRIDES)

    try:
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Overrides ilegibles en %s (%s); se usan defaults.", p, exc)
        return copy.deepcopy(DEFAULT_OVERRIDES)

    if not isinstance(data, dict):
        return copy.deepcopy(DEFAULT_OVERRIDES)

    for section in OVERRIDE_SECTIONS:
        if not isinstance(data.get(section), dict):
            data[section] = {}
    return data


def save_overrides(overrides: Dict[str, Any], path: str | Path | None = None) -> None:
    """
    Guarda el dict de overrides en disco (solo las secciones conocidas).
    """
    p = Path(path) if path is not None else OVERRIDES_FILE

    to_dump = {section: overrides.get(section, {}) for section in OVERRIDE_SECTIONS}

    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump(to_dump, f, ensure_ascii=False, indent=2)


# ---------------------------------------------------------------------
# Aplicar overrides sobre dicts ya clonados
# ---------------------------------------------------------------------

def _merge_in_place(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    # Merge recursivo: los sub-dicts se fusionan, el resto se reemplaza
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge_in_place(base[key], value)
        else:
            base[key] = value


def apply_overrides_to_configs(
    tolerance_cfg: Dict[str, Any],
    reporting_cfg: Dict[str, Any],
    overrides: Dict[str, Any],
) -> None:
    """
    Modifica IN PLACE los dicts (ya clonados) de tolerancia y reporting
    aplicando lo que venga en overrides.

    Un override de tolerancia con fracción negativa se ignora.
    """
    tol_override = copy.deepcopy(overrides.get("tolerance", {}))
    presets = tol_override.get("presets", {})
    if not isinstance(presets, dict):
        logger.warning("'presets' de tolerancia no es un objeto (%r); se ignora.", presets)
        tol_override.pop("presets")
        presets = {}
    for name, value in list(presets.items()):
        try:
            ok = float(value) >= 0.0
        except (TypeError, ValueError, OverflowError):
            ok = False
        if not ok:
            logger.warning("Preset de tolerancia '%s'=%r inválido; se ignora.", name, value)
            presets.pop(name)

    _merge_in_place(tolerance_cfg, tol_override)
    _merge_in_place(reporting_cfg, overrides.get("reporting", {}))


def get_effective_config(path: str | Path | None = None) -> Dict[str, Any]:
    """
    Punto central para obtener la configuración EFECTIVA
    (base + overrides) de tolerancia y reporting.
    """
    tolerance_cfg = copy.deepcopy(dc_config.get_tolerance_config())
    reporting_cfg = copy.deepcopy(dc_config.get_reporting_config())

    overrides = load_overrides(path)
    apply_overrides_to_configs(tolerance_cfg, reporting_cfg, overrides)

    return {
        "tolerance": tolerance_cfg,
        "reporting": reporting_cfg,
        "overrides": overrides,
    }
