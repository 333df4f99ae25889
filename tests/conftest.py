"""
Fixtures compartidas para los tests de DoseCheck.

Los ids se generan con un contador ("c1", "c2", ...) para que los
tests sean deterministas.
"""
import itertools

import pytest

from core.constraint import Constraint, ConstraintDraft, MetricType
from dosecheck.engine import DoseCheckSession
from dosecheck.stores import ConstraintStore, MeasurementStore


@pytest.fixture
def seq_ids():
    """Generador de ids deterministas: c1, c2, c3..."""
    counter = itertools.count(1)
    return lambda: f"c{next(counter)}"


@pytest.fixture
def make_constraint():
    def _make(cid="x1", site="Head & Neck", organ="Spinal cord",
              metric_type=MetricType.DMAX, limit=45.0, unit="Gy",
              param=None, note=None):
        return Constraint(
            id=cid, site=site, organ=organ, metric_type=metric_type,
            limit=limit, unit=unit, param=param, note=note,
        )
    return _make


@pytest.fixture
def cord(make_constraint):
    return make_constraint()


@pytest.fixture
def lung_v20(make_constraint):
    return make_constraint(
        cid="x2", site="Thorax", organ="Lung (combined)",
        metric_type=MetricType.VX, param=20.0, limit=35.0, unit="%",
    )


@pytest.fixture
def valid_draft():
    return ConstraintDraft(
        site="CNS", organ="Optic chiasm", metric_type=MetricType.DMAX,
        limit=54, unit="Gy", note="QUANTEC",
    )


@pytest.fixture
def store(seq_ids):
    return ConstraintStore(id_factory=seq_ids)


@pytest.fixture
def empty_store(seq_ids):
    return ConstraintStore(id_factory=seq_ids, constraints=[])


@pytest.fixture
def measurements():
    return MeasurementStore()


@pytest.fixture
def session(seq_ids):
    return DoseCheckSession(id_factory=seq_ids)
