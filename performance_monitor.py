#!/usr/bin/env python3
"""
Performance monitoring for form agent runs

Tracks:
- Timing of run phases (login, form location, each wizard step)
- Per-step split between extraction, completion and navigation
- Process memory and CPU sampled in a background thread (psutil)
- A JSON performance report written next to the execution reports
"""

import asyncio
import json
import logging
import threading
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from functools import wraps
from typing import Any, Dict, List, Optional

import psutil

logger = logging.getLogger(__name__)

SLOW_OPERATION_SECONDS = 5.0
SLOW_STEP_SECONDS = 60.0
HIGH_MEMORY_MB = 500
HIGH_CPU_PERCENT = 80


@dataclass
class OperationMetrics:
    """Timing and resource use of one measured operation"""
    operation_name: str
    start_time: float
    end_time: float
    duration: float
    memory_before: float
    memory_after: float
    memory_delta: float
    success: bool
    error_message: Optional[str] = None
    additional_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StepPerformanceData:
    """Timing for one wizard step"""
    step_number: int
    step_title: str
    total_duration: float = 0.0
    extraction_time: float = 0.0
    completion_time: float = 0.0
    navigation_time: float = 0.0
    modal_iterations: int = 0
    fields_processed: int = 0
    memory_peak: float = 0.0
    success: bool = False
    timestamp: float = field(default_factory=time.time)


@dataclass
class RunPerformanceReport:
    run_id: str
    start_time: float
    end_time: float
    total_duration: float
    steps_processed: int
    steps_successful: int
    memory_peak: float
    memory_average: float
    cpu_peak: float
    cpu_average: float
    steps: List[StepPerformanceData]
    operations: List[OperationMetrics]
    suggestions: List[str]


class PerformanceMonitor:
    """Collects run, step and operation timings plus sampled resource usage."""

    def __init__(self, enable_monitoring: bool = True, log_interval: int = 30):
        self.enable_monitoring = enable_monitoring
        self.log_interval = log_interval

        self.operation_metrics: List[OperationMetrics] = []
        self.step_data: List[StepPerformanceData] = []
        self.current_step: Optional[StepPerformanceData] = None
        self._step_started_at: float = 0.0

        self.memory_samples: deque = deque(maxlen=1000)
        self.cpu_samples: deque = deque(maxlen=1000)
        self._sampler: Optional[threading.Thread] = None
        self._sampling = False

        self.run_start_time: Optional[float] = None
        self.run_end_time: Optional[float] = None

    def start_run_monitoring(self, run_id: str):
        if not self.enable_monitoring:
            return

        self.run_start_time = time.time()
        self.run_end_time = None
        self.operation_metrics.clear()
        self.step_data.clear()
        self.memory_samples.clear()
        self.cpu_samples.clear()
        self._start_sampling()
        logger.info(f"📊 Performance monitoring started for run {run_id}")

    def stop_run_monitoring(self):
        if not self.enable_monitoring:
            return
        self.run_end_time = time.time()
        self._stop_sampling()

    def _start_sampling(self):
        if self._sampling:
            return
        self._sampling = True
        self._sampler = threading.Thread(target=self._sample_resources, daemon=True)
        self._sampler.start()

    def _stop_sampling(self):
        self._sampling = False
        if self._sampler and self._sampler.is_alive():
            self._sampler.join(timeout=5)

    def _sample_resources(self):
        process = psutil.Process()
        last_log = time.time()
        while self._sampling:
            try:
                memory_mb = process.memory_info().rss / 1024 / 1024
                self.memory_samples.append(memory_mb)
                self.cpu_samples.append(process.cpu_percent())

                if time.time() - last_log >= self.log_interval:
                    logger.debug(f"Resource sample: {memory_mb:.1f}MB, cpu {self.cpu_samples[-1]:.1f}%")
                    last_log = time.time()
                time.sleep(1)
            except psutil.Error as e:
                logger.warning(f"Error sampling resources: {e}")
                time.sleep(5)

    def _current_memory(self) -> float:
        try:
            return psutil.Process().memory_info().rss / 1024 / 1024
        except psutil.Error:
            return 0.0

    @asynccontextmanager
    async def measure_async_operation(self, operation_name: str, additional_data: Dict[str, Any] = None):
        """Time an awaited block; exceptions are recorded and re-raised."""
        if not self.enable_monitoring:
            yield
            return

        start_time = time.time()
        memory_before = self._current_memory()
        success = True
        error_message = None
        try:
            yield
        except BaseException as e:
            success = False
            error_message = str(e)
            raise
        finally:
            end_time = time.time()
            memory_after = self._current_memory()
            metric = OperationMetrics(
                operation_name=operation_name,
                start_time=start_time,
                end_time=end_time,
                duration=end_time - start_time,
                memory_before=memory_before,
                memory_after=memory_after,
                memory_delta=memory_after - memory_before,
                success=success,
                error_message=error_message,
                additional_data=additional_data or {},
            )
            self.operation_metrics.append(metric)
            if metric.duration > SLOW_OPERATION_SECONDS:
                logger.info(f"⏱️ {operation_name} took {metric.duration:.2f}s "
                            f"(memory delta {metric.memory_delta:.2f}MB)")

    def start_step_monitoring(self, step_number: int, step_title: str):
        if not self.enable_monitoring:
            return
        self.current_step = StepPerformanceData(step_number=step_number, step_title=step_title)
        self._step_started_at = time.time()

    def record_step_phase(self, phase: str, duration: float):
        """Accumulate extraction, completion or navigation time for the current step."""
        if not self.enable_monitoring or not self.current_step:
            return
        attribute = f"{phase}_time"
        if hasattr(self.current_step, attribute):
            setattr(self.current_step, attribute, getattr(self.current_step, attribute) + duration)

    def increment_modal_iterations(self):
        if self.current_step:
            self.current_step.modal_iterations += 1

    def end_step_monitoring(self, success: bool, fields_processed: int = 0):
        if not self.enable_monitoring or not self.current_step:
            return

        step = self.current_step
        step.total_duration = time.time() - self._step_started_at
        step.success = success
        step.fields_processed = fields_processed
        step.memory_peak = max(self.memory_samples) if self.memory_samples else self._current_memory()
        self.step_data.append(step)
        self.current_step = None

        logger.info(f"⏱️ Step {step.step_number} took {step.total_duration:.2f}s "
                    f"({step.modal_iterations} dialog retries)")

    def get_performance_summary(self) -> Dict[str, Any]:
        if not self.operation_metrics:
            return {}

        total = len(self.operation_metrics)
        successful = sum(1 for m in self.operation_metrics if m.success)
        duration = sum(m.duration for m in self.operation_metrics)
        return {
            'total_operations': total,
            'successful_operations': successful,
            'success_rate': successful / total * 100,
            'total_duration': duration,
            'average_duration': duration / total,
            'memory_peak_mb': max(self.memory_samples) if self.memory_samples else 0,
            'cpu_peak_percent': max(self.cpu_samples) if self.cpu_samples else 0,
        }

    def generate_performance_report(self, run_id: str) -> RunPerformanceReport:
        if not self.run_start_time:
            raise ValueError("Run monitoring not started")

        end_time = self.run_end_time or time.time()
        memory = list(self.memory_samples)
        cpu = list(self.cpu_samples)
        return RunPerformanceReport(
            run_id=run_id,
            start_time=self.run_start_time,
            end_time=end_time,
            total_duration=end_time - self.run_start_time,
            steps_processed=len(self.step_data),
            steps_successful=sum(1 for s in self.step_data if s.success),
            memory_peak=max(memory) if memory else 0,
            memory_average=sum(memory) / len(memory) if memory else 0,
            cpu_peak=max(cpu) if cpu else 0,
            cpu_average=sum(cpu) / len(cpu) if cpu else 0,
            steps=list(self.step_data),
            operations=list(self.operation_metrics),
            suggestions=self._suggestions(memory, cpu),
        )

    def _suggestions(self, memory: List[float], cpu: List[float]) -> List[str]:
        suggestions = []
        slow_steps = [s for s in self.step_data if s.total_duration > SLOW_STEP_SECONDS]
        if slow_steps:
            suggestions.append(f"{len(slow_steps)} steps took longer than {SLOW_STEP_SECONDS:.0f}s")

        capped = [s for s in self.step_data if s.modal_iterations > 3]
        if capped:
            suggestions.append(f"{len(capped)} steps kept reporting missing fields; review their synthetic values")

        if memory and max(memory) > HIGH_MEMORY_MB:
            suggestions.append("High memory usage detected")
        if cpu and max(cpu) > HIGH_CPU_PERCENT:
            suggestions.append("High CPU usage detected")
        return suggestions

    def save_performance_report(self, report: RunPerformanceReport, file_path: str = None) -> bool:
        try:
            if not file_path:
                file_path = f"performance_report_{int(time.time())}.json"
            with open(file_path, 'w', encoding='utf-8') as f:
                json.dump(asdict(report), f, indent=2, default=str)
            logger.info(f"📊 Performance report saved to: {file_path}")
            return True
        except (OSError, TypeError) as e:
            logger.error(f"Error saving performance report: {e}")
            return False


def performance_monitor(operation_name: str = None, additional_data: Dict[str, Any] = None):
    """
    Decorator for coroutine methods of objects exposing a `performance_monitor` attribute
    Usage: @performance_monitor("agent_run")
    """
    def decorator(func):
        if not asyncio.iscoroutinefunction(func):
            raise TypeError("performance_monitor only decorates coroutine functions")

        @wraps(func)
        async def wrapper(*args, **kwargs):
            monitor = next(
                (arg.performance_monitor for arg in args if hasattr(arg, 'performance_monitor')),
                None
            )
            if monitor is None:
                return await func(*args, **kwargs)
            async with monitor.measure_async_operation(operation_name or func.__name__, additional_data):
                return await func(*args, **kwargs)

        return wrapper

    return decorator
