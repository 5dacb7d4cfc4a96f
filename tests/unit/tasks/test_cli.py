# tests/unit/tasks/test_cli.py
# Copyright (c)
# SPDX-License-Identifier: MIT

from __future__ import annotations

import json
from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry
from typer.testing import CliRunner

from esg_engine.tasks.cli import app

runner = CliRunner()

CATALOG = {
    "framework_id": "energy",
    "metrics": [
        {"code": "ENERGY-ELEC", "sort_order": 1, "validation": {"min_value": 0, "is_required": False}},
        {"code": "ENERGY-FUEL", "sort_order": 2, "validation": {"min_value": 0, "is_required": False}},
        {
            "code": "REVENUE",
            "data_type": "currency",
            "sort_order": 3,
            "validation": {"is_required": True},
        },
        {
            "code": "ENERGY-TOTAL",
            "is_calculated": True,
            "formula": "SUM(ENERGY-ELEC, ENERGY-FUEL)",
            "sort_order": 10,
        },
        {
            "code": "ENERGY-INTENSITY",
            "is_calculated": True,
            "formula": "DIVIDE(ENERGY-TOTAL, REVENUE)",
            "sort_order": 11,
        },
    ],
    "dependencies": [
        {"dependent": "ENERGY-TOTAL", "source": "ENERGY-ELEC"},
        {"dependent": "ENERGY-TOTAL", "source": "ENERGY-FUEL"},
        {"dependent": "ENERGY-INTENSITY", "source": "ENERGY-TOTAL"},
        {"dependent": "ENERGY-INTENSITY", "source": "REVENUE"},
    ],
    "industry_variations": [
        {
            "industry_id": "mining",
            "metric": "ENERGY-INTENSITY",
            "override_formula": "ENERGY-TOTAL / REVENUE * 1000",
        }
    ],
}

CYCLIC = {
    "framework_id": "loop",
    "metrics": [
        {"code": "A", "is_calculated": True, "formula": "B + 1"},
        {"code": "B", "is_calculated": True, "formula": "A + 1"},
    ],
}


def _write(tmp_path: Path, name: str, data: object) -> str:
    path = tmp_path / name
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


@pytest.fixture
def catalog_path(tmp_path: Path) -> str:
    return _write(tmp_path, "catalog.json", CATALOG)


@pytest.fixture
def values_path(tmp_path: Path) -> str:
    return _write(
        tmp_path,
        "values.json",
        {
            "entity_id": "acme",
            "period": "2024",
            "values": {"ENERGY-ELEC": 30, "ENERGY-FUEL": 20, "REVENUE": 100},
        },
    )


@pytest.fixture(autouse=True)
def _sequential_engine(monkeypatch: pytest.MonkeyPatch, fresh_registry: CollectorRegistry) -> None:
    monkeypatch.setenv("ESG_ENGINE_MAX_WORKERS", "1")


def test_order_command(catalog_path: str) -> None:
    result = runner.invoke(app, ["order", "--catalog", catalog_path])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["order"] == ["ENERGY-ELEC", "ENERGY-FUEL", "REVENUE", "ENERGY-TOTAL", "ENERGY-INTENSITY"]


def test_calculate_command(catalog_path: str, values_path: str) -> None:
    result = runner.invoke(
        app,
        ["calculate", "--catalog", catalog_path, "--values", values_path, "--industry", "mining"],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["entity_id"] == "acme"
    assert payload["state"] == "COMPLETED"
    values = {o["metric_code"]: o["value"] for o in payload["outcomes"]}
    assert values == {"ENERGY-TOTAL": 50.0, "ENERGY-INTENSITY": 500.0}


def test_calculate_with_target_and_workers(catalog_path: str, values_path: str) -> None:
    result = runner.invoke(
        app,
        [
            "calculate",
            "--catalog",
            catalog_path,
            "--values",
            values_path,
            "--target",
            "ENERGY-TOTAL",
            "--workers",
            "2",
            "--period",
            "2024",
        ],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert [o["metric_code"] for o in payload["outcomes"]] == ["ENERGY-TOTAL"]


def test_calculate_unknown_target_exits_with_error(catalog_path: str, values_path: str) -> None:
    result = runner.invoke(
        app,
        ["calculate", "--catalog", catalog_path, "--values", values_path, "--target", "NOPE"],
    )

    assert result.exit_code == 1
    assert "UNKNOWN_METRIC_REFERENCE" in result.output


def test_calculate_cyclic_catalog_exits_with_error(tmp_path: Path, values_path: str) -> None:
    catalog = _write(tmp_path, "loop.json", CYCLIC)

    result = runner.invoke(app, ["calculate", "--catalog", catalog, "--values", values_path])

    assert result.exit_code == 1
    assert "CYCLE_DETECTED" in result.output


def test_validate_command_reports_failures(tmp_path: Path, catalog_path: str) -> None:
    values = _write(tmp_path, "bad.json", {"values": {"ENERGY-ELEC": -5}})

    result = runner.invoke(app, ["validate", "--catalog", catalog_path, "--values", values])

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert [(f["metric_code"], f["reason"]) for f in payload["failures"]] == [
        ("ENERGY-ELEC", "below_min"),
        ("REVENUE", "required"),
    ]


def test_validate_command_passes(catalog_path: str, values_path: str) -> None:
    result = runner.invoke(app, ["validate", "--catalog", catalog_path, "--values", values_path])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == {"failures": []}


def test_impact_command(catalog_path: str) -> None:
    result = runner.invoke(app, ["impact", "--catalog", catalog_path, "--metric", "REVENUE"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["affected"] == ["ENERGY-INTENSITY"]


def test_describe_command(catalog_path: str) -> None:
    result = runner.invoke(app, ["describe", "--catalog", catalog_path])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["calculation_depth"] == 3
    assert payload["required_metrics"] == 1


def test_check_command(tmp_path: Path, catalog_path: str) -> None:
    clean = runner.invoke(app, ["check", "--catalog", catalog_path])
    assert clean.exit_code == 0, clean.output
    assert json.loads(clean.stdout)["issues"] == []

    cyclic = runner.invoke(app, ["check", "--catalog", _write(tmp_path, "loop.json", CYCLIC)])
    assert cyclic.exit_code == 1
    kinds = {issue["kind"] for issue in json.loads(cyclic.stdout)["issues"]}
    assert kinds == {"cycle", "undeclared_dependency"}


def test_malformed_catalog_exits_with_error(tmp_path: Path) -> None:
    catalog = _write(tmp_path, "bad.json", {"metrics": []})

    result = runner.invoke(app, ["describe", "--catalog", catalog])

    assert result.exit_code == 1
    assert "CATALOG_DOCUMENT_ERROR" in result.output
