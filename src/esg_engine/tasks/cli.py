# src/esg_engine/tasks/cli.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""ESG engine CLI: run the calculation engine over JSON catalog documents.

Commands:
    order       Print the evaluation order of a catalog.
    calculate   Calculate every metric for the values in a values document.
    validate    Validate raw values against the effective validation rules.
    impact      List metrics affected by a change to one metric.
    describe    Print framework statistics (counts, depth, levels).
    check       Report catalog integrity issues.

Environment:
    LOG_LEVEL                       Root log level (default INFO).
    ESG_ENGINE_MAX_WORKERS          Worker threads for the DAG scheduler.
    ESG_ENGINE_PARALLEL_THRESHOLD   Calculated metrics needed before going parallel.
    ESG_ENGINE_LOCK_TIMEOUT_S       Calculation lock wait, in seconds.
    ESG_ENGINE_METRICS_ENABLED      Record Prometheus metrics.

Results are printed to stdout as JSON; logs go to stderr. Domain errors exit
with status 1 and print the error payload.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import typer

from esg_engine.adapters.mappers.catalog_document import (
    load_catalog_file,
    load_values_file,
    values_by_metric_id,
)
from esg_engine.adapters.repositories.in_memory_catalog_repository import (
    InMemoryMetricCatalogRepository,
)
from esg_engine.adapters.repositories.in_memory_raw_value_repository import (
    InMemoryRawValueRepository,
)
from esg_engine.application.schemas.dto.calculation import (
    CalculateRequestDTO,
    ImpactRequestDTO,
    ValidateRequestDTO,
)
from esg_engine.application.services.calculation_locks import CalculationLockRegistry
from esg_engine.application.use_cases.calculation.analyze_impact import AnalyzeImpactUseCase
from esg_engine.application.use_cases.calculation.calculate_metrics import CalculateMetricsUseCase
from esg_engine.application.use_cases.calculation.describe_framework import (
    DescribeFrameworkUseCase,
)
from esg_engine.application.use_cases.calculation.validate_raw_inputs import (
    ValidateRawInputsUseCase,
)
from esg_engine.config.settings import get_settings
from esg_engine.domain.entities.metric_catalog import CatalogSnapshot
from esg_engine.domain.exceptions.base import DomainError
from esg_engine.domain.services.calculation_orchestrator import CalculationOrchestrator
from esg_engine.domain.services.catalog_integrity import CatalogIntegrityChecker
from esg_engine.infrastructure.logging.logger import configure_root_logging, get_json_logger

configure_root_logging()
log = get_json_logger(__name__)

app = typer.Typer(add_completion=False, no_args_is_help=True)

T = TypeVar("T")

_CATALOG_HELP = "Path to a catalog JSON document."
_INDUSTRY_HELP = "Industry id used to resolve industry variations."


def _emit(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, sort_keys=False, default=str))


def _fail(exc: DomainError) -> typer.Exit:
    """Print a domain error as JSON on stderr and return the exit to raise."""
    log.error(
        "cli.failed",
        extra={"extra": {"error_code": exc.code, "error_message": exc.message, "details": exc.details}},
    )
    typer.echo(json.dumps({"error": exc.to_dict()}, indent=2, default=str), err=True)
    return typer.Exit(code=1)


def _run_or_exit(coro: Coroutine[Any, Any, T]) -> T:
    """Run a use case coroutine, exiting with status 1 on domain errors."""
    try:
        return asyncio.run(coro)
    except DomainError as exc:
        raise _fail(exc) from exc


def _load_catalog(path: Path) -> tuple[CatalogSnapshot, InMemoryMetricCatalogRepository]:
    try:
        snapshot = load_catalog_file(path)
    except DomainError as exc:
        raise _fail(exc) from exc
    return snapshot, InMemoryMetricCatalogRepository([snapshot])


def _orchestrator(workers: int | None) -> CalculationOrchestrator:
    settings = get_settings()
    return CalculationOrchestrator(
        max_workers=workers if workers is not None else settings.max_workers,
        parallel_threshold=settings.parallel_threshold,
    )


@app.command("order")
def order(
    catalog: Path = typer.Option(..., exists=True, dir_okay=False, help=_CATALOG_HELP),  # noqa: B008
    industry: str | None = typer.Option(None, help=_INDUSTRY_HELP),  # noqa: B008
) -> None:
    """Print the deterministic evaluation order of every metric."""
    snapshot, _ = _load_catalog(catalog)

    try:
        plan = CalculationOrchestrator().prepare(snapshot, industry)
    except DomainError as exc:
        raise _fail(exc) from exc
    codes = [snapshot.metrics_by_id[mid].code for mid in plan.order_ids]
    _emit({"framework_id": snapshot.framework_id, "order": codes})


@app.command("calculate")
def calculate(
    catalog: Path = typer.Option(..., exists=True, dir_okay=False, help=_CATALOG_HELP),  # noqa: B008
    values: Path = typer.Option(  # noqa: B008
        ..., exists=True, dir_okay=False, help="Path to a values JSON document."
    ),
    industry: str | None = typer.Option(None, help=_INDUSTRY_HELP),  # noqa: B008
    entity: str | None = typer.Option(None, help="Entity id; defaults to the document's."),  # noqa: B008
    period: str | None = typer.Option(None, help="Period label; defaults to the document's."),  # noqa: B008
    target: list[str] | None = typer.Option(  # noqa: B008
        None, help="Restrict the run to these metric codes and their inputs (repeatable)."
    ),
    workers: int | None = typer.Option(  # noqa: B008
        None, min=1, max=64, help="Worker threads; overrides ESG_ENGINE_MAX_WORKERS."
    ),
) -> None:
    """Calculate every metric of the catalog for the supplied raw values."""
    settings = get_settings()
    snapshot, repo = _load_catalog(catalog)
    try:
        doc = load_values_file(values)
    except DomainError as exc:
        raise _fail(exc) from exc

    entity_id = entity or doc.entity_id
    period_label = period or doc.period
    store = InMemoryRawValueRepository()
    store.put_many(entity_id, period_label, values_by_metric_id(snapshot, doc.values))

    uc = CalculateMetricsUseCase(
        catalog=repo,
        values=store,
        orchestrator=_orchestrator(workers),
        locks=CalculationLockRegistry(timeout_s=settings.lock_timeout_s),
        metrics_enabled=settings.metrics_enabled,
    )
    req = CalculateRequestDTO(
        framework_id=snapshot.framework_id,
        industry_id=industry,
        entity_id=entity_id,
        period=period_label,
        targets=list(target) if target else None,
    )
    result = _run_or_exit(uc.execute(req))
    _emit(result.model_dump(mode="json"))


@app.command("validate")
def validate(
    catalog: Path = typer.Option(..., exists=True, dir_okay=False, help=_CATALOG_HELP),  # noqa: B008
    values: Path = typer.Option(  # noqa: B008
        ..., exists=True, dir_okay=False, help="Path to a values JSON document."
    ),
    industry: str | None = typer.Option(None, help=_INDUSTRY_HELP),  # noqa: B008
) -> None:
    """Validate raw values; exits with status 1 when any check fails."""
    settings = get_settings()
    snapshot, repo = _load_catalog(catalog)
    try:
        doc = load_values_file(values)
    except DomainError as exc:
        raise _fail(exc) from exc

    uc = ValidateRawInputsUseCase(catalog=repo, metrics_enabled=settings.metrics_enabled)
    req = ValidateRequestDTO(framework_id=snapshot.framework_id, industry_id=industry, values=doc.values)
    failures = _run_or_exit(uc.execute(req))
    _emit({"failures": [f.model_dump(mode="json") for f in failures]})
    if failures:
        raise typer.Exit(code=1)


@app.command("impact")
def impact(
    catalog: Path = typer.Option(..., exists=True, dir_okay=False, help=_CATALOG_HELP),  # noqa: B008
    metric: str = typer.Option(..., help="Code of the changed metric."),  # noqa: B008
    industry: str | None = typer.Option(None, help=_INDUSTRY_HELP),  # noqa: B008
) -> None:
    """List metrics affected by a change to one metric, in evaluation order."""
    snapshot, repo = _load_catalog(catalog)
    uc = AnalyzeImpactUseCase(catalog=repo)
    req = ImpactRequestDTO(framework_id=snapshot.framework_id, metric_code=metric, industry_id=industry)
    result = _run_or_exit(uc.execute(req))
    _emit(result.model_dump(mode="json"))


@app.command("describe")
def describe(
    catalog: Path = typer.Option(..., exists=True, dir_okay=False, help=_CATALOG_HELP),  # noqa: B008
    industry: str | None = typer.Option(None, help=_INDUSTRY_HELP),  # noqa: B008
) -> None:
    """Print framework statistics."""
    snapshot, repo = _load_catalog(catalog)
    uc = DescribeFrameworkUseCase(catalog=repo)
    result = _run_or_exit(uc.execute(snapshot.framework_id, industry))
    _emit(result.model_dump(mode="json"))


@app.command("check")
def check(
    catalog: Path = typer.Option(..., exists=True, dir_okay=False, help=_CATALOG_HELP),  # noqa: B008
) -> None:
    """Report catalog integrity issues; exits with status 1 when any is found."""
    snapshot, _ = _load_catalog(catalog)
    issues = CatalogIntegrityChecker().check(snapshot)
    log.info(
        "catalog.checked",
        extra={"extra": {"framework_id": snapshot.framework_id, "issues": len(issues)}},
    )
    _emit({"framework_id": snapshot.framework_id, "issues": [i.to_dict() for i in issues]})
    if issues:
        raise typer.Exit(code=1)


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
