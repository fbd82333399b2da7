"""Tests for PerformanceMonitor timings and the decorator."""

import json

import pytest

from performance_monitor import PerformanceMonitor, performance_monitor


class Worker:
    def __init__(self, monitor):
        self.performance_monitor = monitor

    @performance_monitor("work")
    async def work(self, fail: bool = False):
        if fail:
            raise RuntimeError("boom")
        return 42


@pytest.mark.asyncio
async def test_decorator_records_operations():
    monitor = PerformanceMonitor(enable_monitoring=True)
    worker = Worker(monitor)

    assert await worker.work() == 42
    with pytest.raises(RuntimeError):
        await worker.work(fail=True)

    names = [(m.operation_name, m.success) for m in monitor.operation_metrics]
    assert names == [("work", True), ("work", False)]
    assert monitor.operation_metrics[1].error_message == "boom"
    assert monitor.get_performance_summary()['success_rate'] == 50


def test_decorator_rejects_sync_functions():
    with pytest.raises(TypeError):
        @performance_monitor("sync")
        def not_async():
            return None


@pytest.mark.asyncio
async def test_disabled_monitor_records_nothing():
    monitor = PerformanceMonitor(enable_monitoring=False)
    async with monitor.measure_async_operation("noop"):
        pass
    monitor.start_step_monitoring(1, "Paso 1")
    monitor.end_step_monitoring(True, 3)

    assert monitor.operation_metrics == []
    assert monitor.step_data == []


def test_step_phases_and_dialog_retries():
    monitor = PerformanceMonitor(enable_monitoring=True)
    monitor.start_step_monitoring(2, "Antecedentes")
    monitor.record_step_phase('completion', 1.5)
    monitor.record_step_phase('completion', 0.5)
    monitor.record_step_phase('navigation', 2.0)
    monitor.record_step_phase('unknown', 9.0)
    monitor.increment_modal_iterations()
    monitor.end_step_monitoring(True, fields_processed=4)

    step = monitor.step_data[0]
    assert step.completion_time == 2.0
    assert step.navigation_time == 2.0
    assert step.modal_iterations == 1
    assert step.fields_processed == 4


def test_report_requires_a_started_run():
    with pytest.raises(ValueError):
        PerformanceMonitor().generate_performance_report("run_1")


def test_report_is_saved(temp_dir):
    monitor = PerformanceMonitor(enable_monitoring=True)
    monitor.start_run_monitoring("run_1")
    monitor.start_step_monitoring(1, "Paso 1")
    for _ in range(4):
        monitor.increment_modal_iterations()
    monitor.end_step_monitoring(False)
    monitor.stop_run_monitoring()

    report = monitor.generate_performance_report("run_1")
    path = temp_dir / "perf.json"

    assert monitor.save_performance_report(report, str(path))
    data = json.loads(path.read_text(encoding='utf-8'))
    assert data['steps_processed'] == 1
    assert data['steps_successful'] == 0
    assert any('missing fields' in s for s in data['suggestions'])
