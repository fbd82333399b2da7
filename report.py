"""
report.py

Final statistics, the JSON report file and the end-of-run summary log.
"""

import json
import logging
import math
import re
from pathlib import Path
from typing import List, Optional, Tuple

from models import ExecutionReport, ExecutionStatistics

logger = logging.getLogger(__name__)

REPORT_PREFIX = 'report_'
REPORT_NAME_PATTERN = re.compile(rf'^{REPORT_PREFIX}(\d+)\.json$')


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def unfinished_required(report: ExecutionReport) -> List[Tuple[str, str, str]]:
    """(step title, field label, reason) for each required field left incomplete."""
    return [
        (step.title, detail.label, detail.failure_reason or 'No especificada')
        for step in report.steps
        for detail in step.details
        if detail.required and not detail.completed
    ]


def compute_statistics(report: ExecutionReport) -> ExecutionStatistics:
    """Fill report.statistics and settle the success flag and message."""
    total_fields = sum(step.fields_found for step in report.steps)
    completed = sum(1 for step in report.steps for d in step.details if d.completed)
    missing_required = len(unfinished_required(report))
    elapsed = report.total_time_seconds
    steps = len(report.steps)

    if report.validation_errors is not None and report.validation_errors.detected:
        report.success = False
        if not report.message:
            report.message = (f"Formulario enviado con {len(report.validation_errors.missing_fields)} "
                              f"errores de validación")
    elif missing_required > 0:
        report.success = False
        report.message = f"Ejecución completada con {missing_required} campos obligatorios no completados"
    elif total_fields > 0 and completed == total_fields:
        report.success = True
        if not report.message:
            report.message = 'Ejecución completada exitosamente'
    elif report.success and not report.message:
        report.message = 'Ejecución completada exitosamente'

    report.statistics = ExecutionStatistics(
        total_steps=steps,
        total_fields=total_fields,
        completed_fields=completed,
        success_rate=int(round_half_up(completed / total_fields * 100)) if total_fields else 0,
        fields_per_second=round_half_up(completed / elapsed, 2) if elapsed > 0 else 0.0,
        avg_seconds_per_step=int(round_half_up(elapsed / steps)) if steps else 0,
    )
    return report.statistics


class ReportWriter:
    """Writes report_<n>.json files with an increasing id."""

    def __init__(self, report_dir: str = "data/debugg_results"):
        self.report_dir = Path(report_dir)

    def next_report_id(self) -> int:
        if not self.report_dir.is_dir():
            return 1
        ids = [
            int(match.group(1))
            for match in (REPORT_NAME_PATTERN.match(p.name) for p in self.report_dir.iterdir())
            if match
        ]
        return max(ids) + 1 if ids else 1

    def save(self, report: ExecutionReport) -> Optional[Path]:
        try:
            self.report_dir.mkdir(parents=True, exist_ok=True)
            path = self.report_dir / f"{REPORT_PREFIX}{self.next_report_id()}.json"
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(report.to_dict(), f, indent=2, ensure_ascii=False)
            logger.info(f"💾 Report saved: {path}")
            return path
        except OSError as e:
            logger.error(f"❌ Failed to save report: {e}")
            return None


def log_summary(report: ExecutionReport, log: Optional[logging.Logger] = None) -> None:
    log = log or logger
    stats = report.statistics

    log.info("📈 RUN SUMMARY")
    log.info("=" * 40)
    log.info(f"⏱️ Total time: {report.total_time_seconds}s ({report.total_time_seconds / 60:.1f} min)")
    log.info(f"📊 Steps: {stats.total_steps}")
    log.info(f"📝 Fields found: {stats.total_fields}")
    log.info(f"✅ Fields completed: {stats.completed_fields}")
    log.info(f"❌ Fields not completed: {stats.total_fields - stats.completed_fields}")
    log.info(f"🎯 Success rate: {stats.success_rate}%")
    log.info(f"⚡ Speed: {stats.fields_per_second} fields/s")
    log.info(f"{'🎉' if report.success else '⚠️'} {report.message}")

    missing = unfinished_required(report)
    if missing:
        log.warning(f"⚠️ REQUIRED FIELDS NOT COMPLETED: {len(missing)}")
        for index, (step, label, reason) in enumerate(missing, 1):
            log.warning(f"   {index}. [{step}] {label}: {reason}")

    if report.validation_errors is not None and report.validation_errors.detected:
        log.error(f"❌ VALIDATION ERRORS ON SUBMIT: {len(report.validation_errors.missing_fields)}")
        for index, field_name in enumerate(report.validation_errors.missing_fields, 1):
            log.error(f"   {index}. {field_name}")
        if report.validation_errors.screenshot_path:
            log.error(f"📸 Screenshot: {report.validation_errors.screenshot_path}")

    if report.errors:
        log.error(f"❌ OTHER ERRORS: {len(report.errors)}")
        for index, error in enumerate(report.errors, 1):
            log.error(f"   {index}. {error}")
