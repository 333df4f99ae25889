import json

import pytest

from dosecheck import config as dc_config
from dosecheck.config import get_caution_fraction
from dosecheck.config_overrides import (
    DEFAULT_OVERRIDES,
    get_effective_config,
    load_overrides,
    save_overrides,
)


class TestLoadSave:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_overrides(tmp_path / "nope.json") == DEFAULT_OVERRIDES

    def test_broken_file_gives_defaults(self, tmp_path):
        p = tmp_path / "broken.json"
        p.write_text("{not json", encoding="utf-8")
        assert load_overrides(p) == DEFAULT_OVERRIDES

    def test_non_dict_sections_normalized(self, tmp_path):
        p = tmp_path / "o.json"
        p.write_text(json.dumps({"tolerance": [1, 2]}), encoding="utf-8")
        assert load_overrides(p) == {"tolerance": {}, "reporting": {}}

    def test_save_then_load(self, tmp_path):
        p = tmp_path / "sub" / "o.json"
        save_overrides({"reporting": {"use_colors": False}, "junk": 1}, p)
        data = load_overrides(p)
        assert data["reporting"] == {"use_colors": False}
        assert "junk" not in data


class TestEffectiveConfig:
    def test_overrides_merge_without_touching_base(self, tmp_path):
        p = tmp_path / "o.json"
        save_overrides({"tolerance": {"presets": {"tight": 0.01}}, "reporting": {"placeholder": "-"}}, p)

        eff = get_effective_config(p)
        assert eff["tolerance"]["presets"] == {"standard": 0.05, "tight": 0.01}
        assert eff["reporting"]["placeholder"] == "-"
        assert get_caution_fraction(True, eff["tolerance"]) == pytest.approx(0.01)

        assert dc_config.TOLERANCE_CONFIG["presets"]["tight"] == 0.02
        assert dc_config.REPORTING_CONFIG["placeholder"] == "—"

    def test_negative_preset_ignored(self, tmp_path):
        p = tmp_path / "o.json"
        save_overrides({"tolerance": {"presets": {"standard": -0.5, "tight": "x"}}}, p)
        eff = get_effective_config(p)
        assert eff["tolerance"]["presets"] == {"standard": 0.05, "tight": 0.02}

    @pytest.mark.parametrize("presets", [None, [0.1, 0.2], "tight", 3])
    def test_non_dict_presets_ignored(self, tmp_path, presets):
        p = tmp_path / "o.json"
        save_overrides({"tolerance": {"presets": presets, "tight_label": "Narrow"}}, p)
        eff = get_effective_config(p)
        assert eff["tolerance"]["presets"] == {"standard": 0.05, "tight": 0.02}
        assert eff["tolerance"]["tight_label"] == "Narrow"

    def test_huge_integer_preset_ignored(self, tmp_path):
        p = tmp_path / "o.json"
        save_overrides({"tolerance": {"presets": {"tight": 10**400}}}, p)
        eff = get_effective_config(p)
        assert eff["tolerance"]["presets"]["tight"] == 0.02


class TestCautionFraction:
    def test_presets(self):
        assert get_caution_fraction(False) == pytest.approx(0.05)
        assert get_caution_fraction(True) == pytest.approx(0.02)
