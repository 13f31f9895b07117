#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

import pytest

from occmap import config as cf


def test_load_yaml_strict(tmp_path):
    with pytest.raises(SystemExit):
        cf.load_yaml(tmp_path / "missing.yaml")

    bad = tmp_path / "list.yaml"
    bad.write_text("- a\n- b\n")
    with pytest.raises(SystemExit):
        cf.load_yaml(bad)


def test_sections_and_precedence(tmp_path):
    path = tmp_path / "occmap.yaml"
    path.write_text("density:\n  strategy: linear\n  opacity: 0.5\nregions: []\n")

    section = cf.load_section(path, "density")
    assert section == {"strategy": "linear", "opacity": 0.5}
    assert cf.load_section(path, "occurrences") == {}
    assert cf.load_section(None, "density") == {}
    with pytest.raises(SystemExit):
        cf.load_section(path, "regions")

    assert cf.pick("log", section, "strategy", "x") == "log"
    assert cf.pick(None, section, "strategy", "x") == "linear"
    assert cf.pick(None, section, "color", "darkred") == "darkred"


def test_shipped_config_loads():
    cfg = cf.load_yaml(ROOT / "config" / "occmap.yaml")
    assert set(cfg) == {"regions", "occurrences", "density"}
    assert cf.coerce_range(cfg["density"]["scale_range"]) == (0.0, 0.8)


def test_coerce_bbox():
    assert cf.coerce_bbox([-95.8, 35.9, -89.1, 40.7]) == (-95.8, 35.9, -89.1, 40.7)
    assert cf.coerce_bbox(None) is None
    assert cf.coerce_bbox([1, 2, 3]) is None
    assert cf.coerce_bbox(["a", 2, 3, 4]) is None
    assert cf.coerce_bbox([5, 0, 1, 1]) is None


def test_coerce_range():
    assert cf.coerce_range([0, 0.8]) == (0.0, 0.8)
    assert cf.coerce_range((0.8, 0.0)) is None
    assert cf.coerce_range("0.8") is None


def test_format_bbox():
    assert cf.format_bbox((1, 2, 3, 4), precision=1) == "[1.0, 2.0, 3.0, 4.0]"
