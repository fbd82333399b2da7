#!/usr/bin/env python3
"""
CORFO form agent - main orchestrator
Description:
Drives one unattended run over a CORFO application wizard: launch the
browser, log in, reach the form, then complete and advance every step until
the confirmation page, where the application is submitted and the outcome is
recorded in an ExecutionReport.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from playwright.async_api import Page, async_playwright

from base_exceptions import ExecutionCancelled, LoginError
from config_manager import GrantAgentConfig
from detection import StructureDetector
from extraction import FieldExtractor
from filling import FieldCompleter
from login import LoginService
from modals import ModalInterpreter
from models import (
    FORCE, PROBE, SELECT, SUBMIT_SUCCESS, SUBMIT_VALIDATION_ERROR,
    CompletionOutcome, ExecutionReport, NavigationOutcome, PageStructure, StepResult
)
from navigation import Navigator
from performance_monitor import PerformanceMonitor, performance_monitor
from report import ReportWriter, compute_statistics, log_summary
from waits import wait_for_condition, wait_for_form_ready, wait_for_network_idle, wait_for_page_stability

logger = logging.getLogger(__name__)

CONFIRMATION_TITLE = 'Confirmación Final'
NOT_AVAILABLE = 'No disponible'

BUDGET_ADD_SELECTOR = '#btnAgregar_item'
DIALOG_OPEN_SELECTOR = '.modal:visible, [role="dialog"]:visible, .swal2-container'

ACTIVATE_TAB_SCRIPT = """account => {
    const tab = document.querySelector(`a[data-toggle="tab"][data-cuenta="${account}"]`);
    if (!tab) return false;
    tab.click();
    return true;
}"""

PROJECT_INFO_SCRIPT = """() => {
    const textOf = selector => {
        const el = document.querySelector(selector);
        return el ? (el.textContent || '').trim() : '';
    };
    return { title: textOf('#Titulo'), code: textOf('#SubTitulo') };
}"""


class ErrorHandler:
    """
    Logs errors with the current step context and keeps per-operation counts.
    Retries awaited operations with exponential backoff.
    """

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.ErrorHandler")
        self.error_counts: Dict[str, int] = {}
        self.recovery_attempts: Dict[str, int] = {}
        self.step_context: Dict[str, Any] = {}
        self.last_error: Optional[Exception] = None

    def set_step_context(self, step_title: str, step_url: str = None, step_number: int = None):
        self.step_context = {
            'step_title': step_title,
            'step_url': step_url,
            'step_number': step_number,
            'timestamp': time.time(),
        }
        self.logger.debug(f"Step context set: {self.step_context}")

    def log_error(self, error: Exception, operation: str, severity: str = "ERROR"):
        context_info = ""
        if self.step_context:
            context_info = (
                f" | Step: {self.step_context.get('step_title', 'Unknown')} "
                f"(#{self.step_context.get('step_number', 'N/A')}) "
                f"| URL: {self.step_context.get('step_url', 'N/A')}"
            )

        message = f"{operation} failed: {error}{context_info}"
        if severity == "ERROR":
            self.logger.error(message)
        elif severity == "WARNING":
            self.logger.warning(message)
        else:
            self.logger.info(message)

        error_key = f"{operation}:{type(error).__name__}"
        self.error_counts[error_key] = self.error_counts.get(error_key, 0) + 1

    async def retry_with_backoff(self, operation: Callable, max_retries: int = 3,
                                 base_delay: float = 1, operation_name: str = "unknown") -> bool:
        """True once operation() completes; False after max_retries failures (see last_error)."""
        for attempt in range(max_retries):
            self.recovery_attempts[operation_name] = self.recovery_attempts.get(operation_name, 0) + 1
            try:
                self.logger.info(f"Attempting {operation_name} (attempt {attempt + 1}/{max_retries})")
                await operation()
                return True
            except Exception as e:
                self.last_error = e
                last_attempt = attempt == max_retries - 1
                self.log_error(e, f"{operation_name} (attempt {attempt + 1})", "ERROR" if last_attempt else "WARNING")
                if not last_attempt:
                    wait_time = base_delay * (2 ** attempt)
                    self.logger.info(f"Retrying {operation_name} in {wait_time:.1f}s...")
                    await asyncio.sleep(wait_time)

        self.logger.error(f"All {max_retries} attempts failed for {operation_name}")
        return False

    def get_error_summary(self) -> Dict[str, Any]:
        return {
            'error_counts': self.error_counts.copy(),
            'recovery_attempts': self.recovery_attempts.copy(),
            'current_step_context': self.step_context.copy(),
            'total_errors': sum(self.error_counts.values()),
            'total_recovery_attempts': sum(self.recovery_attempts.values()),
        }

    def reset_error_tracking(self):
        self.error_counts.clear()
        self.recovery_attempts.clear()
        self.step_context.clear()
        self.last_error = None


class GrantApplicationAgent:
    """Runs the application wizard end to end and produces an ExecutionReport."""

    def __init__(self, config: GrantAgentConfig, logger: Optional[logging.Logger] = None,
                 progress_callback: Optional[Callable[[int, int, str], None]] = None,
                 components: Optional[Dict[str, Any]] = None):
        self.config = config
        self.logger = logger or logging.getLogger(f"{__name__}.GrantApplicationAgent")
        self.progress_callback = progress_callback
        self._components = components or {}

        self.error_handler = ErrorHandler()
        self.performance_monitor = PerformanceMonitor(
            enable_monitoring=config.agent.enable_performance_monitoring,
            log_interval=config.agent.performance_log_interval,
        )
        self.report_writer = ReportWriter(config.portal.report_dir)
        self.report = ExecutionReport()

        self._cancelled = False
        self._playwright = None
        self.browser = None
        self.context = None
        self.page: Optional[Page] = None
        self._cleanup_task: Optional[asyncio.Task] = None
        self._released = False
        self.total_steps = 1

    def attach(self, page: Page, **components):
        """Bind the page and build any component not supplied."""
        parts = {**self._components, **components}
        self.page = page
        self.modals = parts.get('modals') or ModalInterpreter(page, self.config)
        self.detector = parts.get('detector') or StructureDetector(page)
        self.extractor = parts.get('extractor') or FieldExtractor(page, self.config.agent)
        self.completer = parts.get('completer') or FieldCompleter(page, self.config)
        self.navigator = parts.get('navigator') or Navigator(page, self.modals, self.config)
        self.login_service = parts.get('login') or LoginService(
            page, self.config.portal.username, self.config.portal.password
        )

    def stop(self):
        """
        Request cancellation. The run halts at the next loop boundary; an open
        browser is closed right away so in-flight page calls fail fast.
        """
        self.logger.warning("🛑 Stop requested")
        self._cancelled = True
        if self.browser is None and self._playwright is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._cleanup_task = loop.create_task(self._cleanup())
        self._cleanup_task.add_done_callback(self._on_cleanup_done)

    def _on_cleanup_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.warning(f"⚠️ Cleanup after stop failed: {error}")

    def _check_cancelled(self):
        if self._cancelled:
            raise ExecutionCancelled()

    def _emit_progress(self, step: int, message: str):
        percent = min(100, int(step / max(self.total_steps, 1) * 100))
        self.logger.info(f"📊 Progress: step {step}/{self.total_steps} ({percent}%) {message}")
        if self.progress_callback:
            try:
                self.progress_callback(step, self.total_steps, message)
            except Exception as e:
                self.logger.debug(f"Progress callback failed: {e}")

    @performance_monitor("agent_run")
    async def run(self) -> Optional[ExecutionReport]:
        """
        Full run. Returns the report, or None when the run was cancelled.
        Browser resources are released on every exit path.
        """
        run_id = f"corfo_run_{int(time.time())}"
        self.performance_monitor.start_run_monitoring(run_id)
        self.error_handler.reset_error_tracking()
        self.report = ExecutionReport()
        started = time.monotonic()
        self._released = False
        self._cleanup_task = None

        try:
            async with self.performance_monitor.measure_async_operation("browser_launch"):
                await self._launch()
            async with self.performance_monitor.measure_async_operation("login"):
                await self._login_and_locate_form()
            async with self.performance_monitor.measure_async_operation("form_processing"):
                await self.process_form()
        except ExecutionCancelled:
            self.logger.warning("🛑 Run cancelled")
        except LoginError as e:
            self.error_handler.log_error(e, "login")
            self.report.success = False
            self.report.message = e.message
            self.report.errors.append(e.message)
        except Exception as e:
            self.error_handler.log_error(e, "run")
            if not self._cancelled:
                self.report.success = False
                self.report.message = f"Error en la ejecución: {e}"
                self.report.errors.append(str(e))
                await self._capture_failure()
        finally:
            self.performance_monitor.stop_run_monitoring()
            if self._cleanup_task is not None:
                await asyncio.gather(self._cleanup_task, return_exceptions=True)
            await self._cleanup()

        if self._cancelled:
            return None

        self.report.total_time_seconds = round(time.monotonic() - started)
        compute_statistics(self.report)
        if self.config.agent.save_report:
            self.report_writer.save(self.report)
        log_summary(self.report, self.logger)

        summary = self.error_handler.get_error_summary()
        if summary['total_errors']:
            self.logger.info(f"Error summary: {summary['error_counts']}")

        if self.config.agent.enable_performance_monitoring:
            perf_report = self.performance_monitor.generate_performance_report(run_id)
            perf_dir = Path(self.config.portal.report_dir)
            perf_dir.mkdir(parents=True, exist_ok=True)
            self.performance_monitor.save_performance_report(perf_report, str(perf_dir / f"{run_id}_performance.json"))

        return self.report

    async def _launch(self):
        browser_config = self.config.browser
        self.logger.info(f"🚀 Launching Chromium (headless={browser_config.headless})")
        self._playwright = await async_playwright().start()
        self.browser = await self._playwright.chromium.launch(
            headless=browser_config.headless,
            slow_mo=browser_config.slow_motion,
            args=browser_config.browser_args,
        )
        self.context = await self.browser.new_context(
            viewport={'width': browser_config.viewport_width, 'height': browser_config.viewport_height}
        )
        self.context.set_default_timeout(browser_config.timeout)
        self.context.set_default_navigation_timeout(browser_config.navigation_timeout)
        self.attach(await self.context.new_page())

    async def _cleanup(self):
        if self._released:
            return
        self._released = True
        for name in ('context', 'browser'):
            resource = getattr(self, name)
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                self.logger.debug(f"Error closing {name}: {e}")
            setattr(self, name, None)

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                self.logger.debug(f"Error stopping Playwright: {e}")
            self._playwright = None
        self.logger.info("🧹 Browser resources released")

    async def _capture_failure(self):
        if not self.config.browser.screenshot_on_failure or self.page is None:
            return
        folder = Path(self.config.portal.screenshot_dir)
        try:
            folder.mkdir(parents=True, exist_ok=True)
            path = folder / f"failure_{int(time.time())}.png"
            await self.page.screenshot(path=str(path), full_page=True)
            self.logger.info(f"📸 Failure screenshot: {path}")
        except Exception as e:
            self.logger.debug(f"Could not capture failure screenshot: {e}")

    async def _login_and_locate_form(self):
        url = self.config.portal.form_url
        self.logger.info(f"🌐 Opening {url}")
        await self.page.goto(url, wait_until='domcontentloaded')
        await wait_for_page_stability(self.page, self.config.agent.network_idle_timeout_ms)

        if await self.login_service.is_login_page():
            logged_in = await self.error_handler.retry_with_backoff(
                self.login_service.login,
                max_retries=self.config.agent.login_attempts,
                operation_name="login",
            )
            if not logged_in:
                last = self.error_handler.last_error
                raise last if isinstance(last, LoginError) else LoginError(str(last))
        else:
            self.logger.info("ℹ️ No login form, session already active")

        self._check_cancelled()
        if not await self.login_service.is_login_page():
            await self.navigator.navigate_to(url)

    async def _read_project_info(self):
        try:
            info = await self.page.evaluate(PROJECT_INFO_SCRIPT) or {}
        except Exception as e:
            self.logger.debug(f"Could not read project info: {e}")
            info = {}
        self.report.project_title = info.get('title') or NOT_AVAILABLE
        self.report.project_code = info.get('code') or NOT_AVAILABLE

    async def process_form(self):
        """Step loop over the wizard. Requires attach() to have been called."""
        structure = await self.detector.detect()
        if structure.is_draft_list:
            await self.navigator.open_form_from_drafts()
        else:
            await wait_for_form_ready(self.page, self.config.agent.form_ready_timeout_ms)

        self.report.initial_url = self.page.url
        self.report.title = await self.page.title()
        self.logger.info(f"📋 Form reached: {self.report.title} ({self.report.initial_url})")

        await asyncio.gather(
            self._read_project_info(),
            wait_for_network_idle(self.page, self.config.agent.network_idle_timeout_ms),
            self.extractor.activate_dynamic_content(),
        )

        structure = await self.detector.detect()
        self.total_steps = structure.total_steps
        step_number = structure.current_step
        self.logger.info(f"📊 {self.total_steps} steps detected ({structure.detection}, "
                         f"{structure.confidence}% confidence)")

        while True:
            self._check_cancelled()
            if structure.is_draft_list:
                self.logger.info("📁 Draft list reached, stopping")
                break

            self._emit_progress(step_number, f"Procesando paso {step_number} de {self.total_steps}")
            try:
                result, advanced = await self._process_step(step_number, structure)
                self.report.steps.append(result)
            except ExecutionCancelled:
                raise
            except Exception as e:
                self.error_handler.log_error(e, f"step {step_number}")
                self.report.errors.append(f"Paso {step_number}: {e}")
                advanced = (await self._safe_advance(FORCE)).advanced

            if structure.is_confirmation:
                await self.submit_application()
                break

            if not advanced:
                self.report.errors.append(f"Paso {step_number}: no se pudo avanzar al siguiente paso")
                break

            step_number += 1
            if step_number > self.config.agent.max_steps:
                self.logger.warning(f"⚠️ Step limit {self.config.agent.max_steps} reached")
                break

            await self.page.wait_for_timeout(self.config.agent.step_settle_ms)
            structure = await self.detector.detect()
            self.total_steps = max(self.total_steps, structure.total_steps)
            if step_number > self.total_steps and not structure.is_confirmation:
                break

        self.logger.info(f"✅ Processed {len(self.report.steps)} steps")

    async def _safe_advance(self, mode: str) -> NavigationOutcome:
        try:
            return await self.navigator.advance(mode)
        except Exception as e:
            self.error_handler.log_error(e, f"advance ({mode})", "WARNING")
            return NavigationOutcome()

    async def _process_step(self, number: int, structure: PageStructure) -> Tuple[StepResult, bool]:
        started = time.monotonic()
        if structure.is_confirmation:
            title = CONFIRMATION_TITLE
        else:
            title = await self.navigator.get_step_title(f"Paso {number}")
        self.error_handler.set_step_context(title, self.page.url, number)
        self.performance_monitor.start_step_monitoring(number, title)
        self.completer.reset_step()
        self.logger.info(f"🔍 STEP {number}/{self.total_steps}: {title}")

        special = structure.is_confirmation or structure.is_budget_step or structure.is_add_entry_step
        if structure.is_confirmation:
            self.logger.info(f"   📋 Confirmation page: {structure.required_ok} required ok, "
                             f"{structure.required_failed} required failed")
            details, advanced = [], False
        elif structure.is_budget_step:
            details, advanced = await self._process_budget_step(structure)
        elif structure.is_add_entry_step:
            details, advanced = await self._process_add_entry_step()
        else:
            details, advanced = await self._process_regular_step()

        result = StepResult.build(number, title, details, round(time.monotonic() - started), forced_success=special)
        self.performance_monitor.end_step_monitoring(result.success, len(details))
        self.logger.info(f"   📊 {result.fields_completed}/{result.fields_found} fields completed")
        return result, advanced

    async def _process_regular_step(self) -> Tuple[List[CompletionOutcome], bool]:
        """
        Complete the step, then probe the advance. While the dialog reports
        missing fields, complete again; after max_modal_iterations probes the
        advance is forced.
        """
        processed: Dict[str, CompletionOutcome] = {}
        await self._extract_and_complete(processed)

        cap = self.config.agent.max_modal_iterations
        advanced = False
        for iteration in range(1, cap + 1):
            self._check_cancelled()
            nav_started = time.monotonic()
            outcome = await self._safe_advance(PROBE)
            self.performance_monitor.record_step_phase('navigation', time.monotonic() - nav_started)

            if not outcome.advanced:
                break
            if not outcome.missing_fields:
                advanced = True
                break

            self.performance_monitor.increment_modal_iterations()
            self.logger.info(f"   🔄 Missing required fields ({iteration}/{cap})")
            if iteration == cap:
                break
            await wait_for_page_stability(self.page, 2000)
            await self._extract_and_complete(processed)

        if not advanced:
            self.logger.warning("   ⚠️ Forcing advance with known deficiencies")
            advanced = (await self._safe_advance(FORCE)).advanced

        return list(processed.values()), advanced

    async def _extract_and_complete(self, processed: Dict[str, CompletionOutcome]) -> int:
        """Up to max_extraction_passes passes; stops when a pass finds nothing new."""
        started = time.monotonic()
        await self.extractor.scroll_progressively()
        passes = self.config.agent.max_extraction_passes
        added = 0

        for pass_number in range(1, passes + 1):
            self._check_cancelled()
            new_in_pass = 0
            for control in await self.extractor.list_fields():
                descriptor = await self.extractor.describe(control)
                if descriptor is None or descriptor.identity_key in processed:
                    continue

                outcome = await self.completer.complete(control, descriptor)
                if outcome is None:
                    continue

                processed[descriptor.identity_key] = outcome
                new_in_pass += 1
                if descriptor.type == SELECT and outcome.completed:
                    await self.extractor.wait_for_dynamic_fields()
                await self.page.wait_for_timeout(self.config.agent.field_delay_ms)

            added += new_in_pass
            self.logger.debug(f"   Pass {pass_number}: {new_in_pass} new fields")
            if new_in_pass == 0:
                break
            if pass_number < passes:
                await self.page.wait_for_timeout(1000)

        self.performance_monitor.record_step_phase('completion', time.monotonic() - started)
        return added

    async def _dialog_open(self) -> bool:
        return await self.page.query_selector(DIALOG_OPEN_SELECTOR) is not None

    async def _process_add_entry_step(self) -> Tuple[List[CompletionOutcome], bool]:
        processed: Dict[str, CompletionOutcome] = {}
        add_button = await self.modals.find_button(['AGREGAR +', 'Agregar +'])
        if add_button is None:
            self.logger.warning("   ⚠️ AGREGAR+ control not found")
        else:
            self.logger.info("   ➕ Opening AGREGAR+ dialog")
            await add_button.click()
            await wait_for_condition(self.page, self._dialog_open, 2000)
            await self._extract_and_complete(processed)

            send = await self.modals.find_button(['Enviar', 'ENVIAR', 'Guardar'])
            if send is not None:
                await send.click()
                await self.page.wait_for_timeout(2000)
                await self.modals.close_confirmation(['Aceptar', 'ACEPTAR'])

        await self.page.wait_for_timeout(1500)
        outcome = await self._safe_advance(PROBE)
        return list(processed.values()), outcome.advanced

    async def _process_budget_step(self, structure: PageStructure) -> Tuple[List[CompletionOutcome], bool]:
        details: List[CompletionOutcome] = []
        for tab in structure.budget_tabs:
            self._check_cancelled()
            self.logger.info(f"   💰 Budget tab: {tab.title}")
            await self.page.evaluate(ACTIVATE_TAB_SCRIPT, tab.account)
            await self.page.wait_for_timeout(1000)

            add_button = await self.page.query_selector(BUDGET_ADD_SELECTOR)
            if add_button is None or not await add_button.is_visible():
                self.logger.warning(f"   ⚠️ No add control on tab {tab.title}")
                continue
            await add_button.click()
            await wait_for_condition(self.page, self._dialog_open, 2000)

            processed: Dict[str, CompletionOutcome] = {}
            self.completer.reset_step()
            await self._extract_and_complete(processed)
            details.extend(processed.values())

            save = await self.modals.find_button(['Guardar', 'GUARDAR'])
            if save is not None and await save.is_enabled():
                await save.click()
                await self.page.wait_for_timeout(2000)
                await self.modals.close_confirmation(['Aceptar', 'ACEPTAR'])
                await self.page.wait_for_timeout(1000)
            else:
                pending = [o.label for o in processed.values() if not o.completed]
                self.logger.warning(f"   ⚠️ Save disabled on tab {tab.title}; incomplete: {pending}")

        outcome = await self._safe_advance(PROBE)
        return details, outcome.advanced

    async def submit_application(self):
        """Submit from the confirmation page and record the portal's verdict."""
        try:
            if not await self.navigator.click_submit():
                self.report.errors.append("Botón Enviar no disponible")
                return

            await self.page.wait_for_timeout(self.config.agent.submit_response_wait_ms)
            result = await self.modals.interpret_submit_result()

            if result.kind == SUBMIT_VALIDATION_ERROR:
                errors = result.validation_errors
                self.report.success = False
                self.report.validation_errors = errors
                self.report.message = f"Formulario enviado con {len(errors.missing_fields)} errores de validación"
                self.report.errors.extend(f"Campo faltante: {name}" for name in errors.missing_fields)
                ok = await self.modals.find_button(['OK', 'Aceptar', 'ACEPTAR'])
                if ok is not None:
                    await ok.click()
                return

            if result.kind != SUBMIT_SUCCESS:
                self.logger.info("ℹ️ No result dialog after submit")
                return

            self.report.success = True
            self.report.message = 'Formulario enviado exitosamente'
            accept = await self.modals.find_button(['Aceptar', 'ACEPTAR', 'OK'])
            if accept is not None:
                await accept.click()
                await self.page.wait_for_timeout(2000)

            await self.modals.dismiss_survey()
            self.report.submitted_url = await self.navigator.go_back()
            self.logger.info(f"🎉 Application submitted: {self.report.submitted_url}")

        except Exception as e:
            self.error_handler.log_error(e, "submit")
            self.report.success = False
            self.report.errors.append(f"Error al enviar formulario: {e}")
