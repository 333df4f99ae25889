# src/core/__init__.py

"""
Modelo de datos de DoseCheck (restricciones, borradores, evaluaciones).
"""
