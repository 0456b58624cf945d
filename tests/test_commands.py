"""Tests for the gg_describe command."""

import sys

import pytest
import yaml

from gg_toolkit.commands import describe_plot, gg_describe, load_datasets


@pytest.fixture
def files(tmp_path, cars):
    data = tmp_path / "cars.csv"
    cars.to_csv(data, index=False)
    desc = tmp_path / "plot.yaml"
    desc.write_text(
        "mapping:\n  x: displ\n  y: hwy\n  color: drv\n"
        "layers:\n  - geom: point\n"
        "labels:\n  title: Mileage\n"
    )
    return desc, data


def test_load_datasets_names(tmp_path, cars):
    path = tmp_path / "cars.csv"
    cars.to_csv(path, index=False)
    datasets = load_datasets([str(path), f"other={path}"])
    assert sorted(datasets) == ["cars", "other"]
    assert len(datasets["other"]) == len(cars)


def test_single_csv_becomes_plot_data(files):
    desc, data = files
    summary = describe_plot(str(desc), [str(data)])
    cells = summary["cells"]
    for name in ("panel-1-1", "guide-box-right", "title", "xlab-b"):
        assert name in cells


def test_cli_prints_yaml(files, monkeypatch, capsys):
    desc, data = files
    monkeypatch.setattr(sys, "argv", ["gg_describe", str(desc), str(data)])
    gg_describe()
    printed = yaml.safe_load(capsys.readouterr().out)
    assert "panel-1-1" in printed["cells"]


def test_cli_needs_arguments(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["gg_describe"])
    with pytest.raises(SystemExit):
        gg_describe()
    assert "Requires at least one parameter" in capsys.readouterr().out
