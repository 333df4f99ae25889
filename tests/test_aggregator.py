import pytest

from core.constraint import EvalStatus
from dosecheck.aggregator import StatusSummary, evaluate_rows, filter_by_site, summarize


class TestFilterBySite:
    def test_all_returns_everything_in_order(self, store):
        assert filter_by_site(store, "All") == store.as_list()

    def test_empty_site_means_all(self, store):
        assert filter_by_site(store, None) == store.as_list()
        assert filter_by_site(store, "") == store.as_list()

    def test_single_site(self, store):
        thorax = filter_by_site(store, "Thorax")
        assert [c.organ for c in thorax] == ["Lung (combined)", "Heart (mean)"]

    def test_unknown_site_is_empty(self, store):
        assert filter_by_site(store, "CNS") == []


class TestSummarize:
    def test_thorax_scenario(self, cord, lung_v20):
        constraints = [lung_v20, cord]
        measurements = {lung_v20.id: 30.0, cord.id: 50.0}

        thorax = filter_by_site(constraints, "Thorax")
        assert thorax == [lung_v20]

        summary = summarize(thorax, measurements, 0.05)
        assert summary == StatusSummary(pass_count=1, caution=0, fail=0, missing=0)

    def test_counts_all_four_statuses(self, store, measurements):
        ids = [c.id for c in store]
        measurements.set(ids[0], 30)      # Dmax 45 → pass
        measurements.set(ids[1], 54)      # Dmax 54 → caution (en el límite)
        measurements.set(ids[2], 40)      # Dmean 26 → fail
        measurements.set(ids[3], "")      # V20 → missing
        summary = summarize(store, measurements, 0.05)
        assert (summary.pass_count, summary.caution, summary.fail, summary.missing) == (1, 1, 1, 2)
        assert summary.overall_status == "FAIL"

    @pytest.mark.parametrize("site", ["All", "Head & Neck", "Thorax", "CNS"])
    def test_counts_sum_to_filtered_length(self, store, measurements, site):
        for i, c in enumerate(store):
            if i % 2 == 0:
                measurements.set(c.id, c.limit * (0.5 + 0.2 * i))
        filtered = filter_by_site(store, site)
        assert summarize(filtered, measurements, 0.05).total == len(filtered)

    def test_recomputed_after_measurement_change(self, cord):
        m = {cord.id: 40.0}
        assert summarize([cord], m, 0.05).pass_count == 1
        m[cord.id] = 46.0
        assert summarize([cord], m, 0.05).fail == 1

    def test_tolerance_change_reclassifies(self, cord):
        m = {cord.id: 44.0}
        assert summarize([cord], m, 0.05).caution == 1
        assert summarize([cord], m, 0.02).pass_count == 1


class TestOverallStatus:
    @pytest.mark.parametrize(
        "counts, expected",
        [
            ((0, 0, 0, 0), "EMPTY"),
            ((3, 0, 0, 0), "PASS"),
            ((3, 0, 0, 1), "INCOMPLETE"),
            ((3, 1, 0, 1), "CAUTION"),
            ((0, 1, 1, 0), "FAIL"),
        ],
    )
    def test_overall(self, counts, expected):
        s = StatusSummary(*counts)
        assert s.overall_status == expected
        assert s.as_dict()["total"] == sum(counts)


class TestEvaluateRows:
    def test_rows_follow_filter_order(self, store, measurements):
        rows = evaluate_rows(store, measurements, 0.05)
        assert [r.constraint.id for r in rows] == [c.id for c in store]
        assert all(r.status is EvalStatus.MISSING for r in rows)
        assert all(r.measured is None and r.margin is None for r in rows)

    def test_row_carries_coerced_measurement(self, cord):
        (row,) = evaluate_rows([cord], {cord.id: "44.5"}, 0.05)
        assert row.measured == 44.5
        assert row.status is EvalStatus.CAUTION
        assert row.margin == pytest.approx(0.5)
