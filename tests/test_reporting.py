import csv
import io
import json

import pytest

from core.constraint import MetricType, format_number
from dosecheck.config import get_reporting_config
from dosecheck.reporting import (
    ConstraintImportError,
    build_report_rows,
    from_json,
    from_structured_dump,
    print_dosecheck_report,
    render_console_report,
    to_csv,
    to_json,
    to_markdown,
    to_structured_dump,
)

HEADER = "| Site | OAR | Metric | Limit | Measured | Status | Δ (limit–meas) |"
DISCLAIMER = (
    "Educational template. Replace with validated institutional constraints "
    "before any clinical use."
)


class TestStructuredDump:
    def test_keys_and_optional_fields(self, cord, lung_v20):
        dump = to_structured_dump([cord, lung_v20])
        assert dump[0] == {
            "id": "x1", "site": "Head & Neck", "organ": "Spinal cord",
            "metricType": "Dmax", "limit": 45.0, "unit": "Gy",
        }
        assert dump[1]["metricType"] == "Vx"
        assert dump[1]["param"] == 20.0
        assert "note" not in dump[1]

    def test_numbers_stay_numeric(self, lung_v20):
        (item,) = json.loads(to_json([lung_v20]))
        assert isinstance(item["limit"], float)
        assert isinstance(item["param"], float)

    def test_round_trip_preserves_order_and_fields(self, store):
        assert from_json(to_json(store)) == store.as_list()

    def test_round_trip_with_notes_and_unicode(self, make_constraint):
        items = [
            make_constraint(cid="a", note="RTOG 0617 – ≤ 20 Gy"),
            make_constraint(cid="b", metric_type=MetricType.VX, param=5.5, unit="cc"),
        ]
        assert from_structured_dump(to_structured_dump(items)) == items

    def test_integer_values_accepted_on_import(self):
        (c,) = from_structured_dump([
            {"id": "z", "site": "CNS", "organ": "Chiasm", "metricType": "Dmax", "limit": 54, "unit": "Gy"},
        ])
        assert c.limit == 54.0 and c.metric_type is MetricType.DMAX

    def test_legacy_oar_and_type_keys_still_load(self):
        (c,) = from_structured_dump([
            {"id": "z", "site": "Thorax", "oar": "Lung", "type": "Vx", "param": 20, "limit": 35, "unit": "%"},
        ])
        assert c.organ == "Lung"
        assert c.metric_type is MetricType.VX and c.param == 20.0

    def test_huge_integer_limit_rejected(self):
        doc = '[{"id": "a", "site": "X", "organ": "Y", "metricType": "Dmax", "limit": 1' + "0" * 400 + ', "unit": "Gy"}]'
        with pytest.raises(ConstraintImportError, match="'limit' must be a finite number"):
            from_json(doc)

    @pytest.mark.parametrize(
        "doc",
        [
            "not json",
            '{"id": "a"}',
            '[1]',
            '[{"id": "a", "site": "X", "organ": "Y", "metricType": "Dfoo", "limit": 1, "unit": "Gy"}]',
            '[{"id": "a", "site": "X", "organ": "Y", "metricType": "Dmax", "limit": "1", "unit": "Gy"}]',
            '[{"id": "a", "site": "X", "organ": "Y", "metricType": "Vx", "limit": 1, "unit": "%"}]',
            '[{"id": "a", "site": "X", "organ": "Y", "metricType": "Dmax", "limit": 1, "unit": "Gy"},'
            ' {"id": "a", "site": "X", "organ": "Z", "metricType": "Dmax", "limit": 2, "unit": "Gy"}]',
        ],
    )
    def test_malformed_documents(self, doc):
        with pytest.raises(ConstraintImportError):
            from_json(doc)


class TestReportRows:
    def test_measured_row(self, cord):
        (row,) = build_report_rows([cord], {cord.id: 44.5}, 0.05)
        assert row.as_list() == [
            "Head & Neck", "Spinal cord", "Dmax", "45 Gy", "44.5 Gy", "CAUTION", "0.50 Gy",
        ]

    def test_negative_margin(self, cord):
        (row,) = build_report_rows([cord], {cord.id: 46}, 0.05)
        assert row.status == "FAIL"
        assert row.margin == "-1.00 Gy"

    def test_missing_row_uses_placeholder(self, lung_v20):
        (row,) = build_report_rows([lung_v20], {}, 0.05)
        assert row.metric == "V20%"
        assert row.limit == "35 %"
        assert row.measured == "—"
        assert row.margin == "—"
        assert row.status == "MISSING"

    def test_custom_placeholder(self, lung_v20):
        cfg = dict(get_reporting_config(), placeholder="-")
        (row,) = build_report_rows([lung_v20], {}, 0.05, cfg)
        assert row.measured == "-"

    @pytest.mark.parametrize(
        "value, expected",
        [(45.0, "45"), (44.5, "44.5"), (0.00001, "0.00001"), (-0.25, "-0.25"), (1e-7, "0.0000001")],
    )
    def test_numbers_render_positional(self, value, expected):
        assert format_number(value) == expected

    def test_small_measurement_not_in_scientific_notation(self, make_constraint):
        c = make_constraint(cid="t", limit=0.0001, unit="Gy")
        (row,) = build_report_rows([c], {"t": 0.00001}, 0.05)
        assert row.measured == "0.00001 Gy"
        assert row.limit == "0.0001 Gy"


class TestMarkdown:
    def test_layout(self, cord, lung_v20):
        md = to_markdown([cord, lung_v20], {cord.id: 40}, 0.05)
        lines = md.split("\n")
        assert lines[0] == "# Plan Review – Dose Constraint Summary"
        assert lines[1] == HEADER
        assert lines[2] == "|---|---|---|---|---|---|---|"
        assert lines[3] == "| Head & Neck | Spinal cord | Dmax | 45 Gy | 40 Gy | PASS | 5.00 Gy |"
        assert lines[4] == "| Thorax | Lung (combined) | V20% | 35 % | — | MISSING | — |"
        assert lines[5] == ""
        assert lines[6] == f"> **Note:** {DISCLAIMER}"
        assert len(lines) == 7

    def test_disclaimer_once_per_report(self, store, measurements):
        md = to_markdown(store, measurements, 0.05)
        assert md.count(DISCLAIMER) == 1

    def test_empty_report_keeps_header_and_disclaimer(self):
        md = to_markdown([], {}, 0.05)
        assert HEADER in md
        assert md.endswith(DISCLAIMER)


class TestCsvAndConsole:
    def test_csv_rows(self, cord, lung_v20):
        text = to_csv([cord, lung_v20], {cord.id: 46}, 0.05)
        rows = list(csv.reader(io.StringIO(text)))
        assert rows[0] == get_reporting_config()["columns"]
        assert rows[1][5] == "FAIL"
        assert rows[2][4] == "—"
        assert len(rows) == 3

    def test_console_without_colors(self, cord):
        cfg = dict(get_reporting_config(), use_colors=False)
        out = render_console_report([cord], {cord.id: 44.5}, 0.05, site="Head & Neck", cfg=cfg)
        assert "[CAUTION] Head & Neck / Spinal cord" in out
        assert "Pass: 0  Caution: 1  Fail: 0  Missing: 0" in out
        assert "\033[" not in out
        assert out.rstrip().endswith(DISCLAIMER)

    def test_print_report(self, cord, capsys):
        cfg = dict(get_reporting_config(), use_colors=False)
        print_dosecheck_report([cord], {}, 0.05, cfg=cfg)
        out = capsys.readouterr().out
        assert "[MISSING] Head & Neck / Spinal cord" in out
        assert "Overall: INCOMPLETE" in out
