# src/dosecheck/__init__.py

"""
Paquete principal de DoseCheck.

La clasificación de una restricción vive en `dosecheck.classifier`.
Los almacenes (restricciones / medidas) están en `dosecheck.stores`.
La sesión de trabajo (orquestador) está en `dosecheck.engine`.
"""

from .classifier import classify  # noqa: F401
from .engine import DoseCheckSession  # noqa: F401
