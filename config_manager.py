#!/usr/bin/env python3
"""
Configuration Manager for the CORFO form agent
Description:
Handles configuration loading from JSON files and environment variables,
validation, default values, and browser mode settings.
"""

import os
import json
import logging
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field, asdict
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


@dataclass
class BrowserConfig:
    """Configuration for the browser session"""
    headless: bool = True
    slow_motion: int = 0  # milliseconds
    timeout: int = 30000  # milliseconds
    navigation_timeout: int = 45000  # milliseconds
    viewport_width: int = 1920
    viewport_height: int = 1080
    screenshot_on_failure: bool = True
    browser_args: List[str] = field(default_factory=lambda: ['--no-sandbox'])


@dataclass
class AgentConfig:
    """Iteration caps, waits and run switches"""
    max_extraction_passes: int = 3
    max_modal_iterations: int = 7
    max_steps: int = 60
    field_delay_ms: int = 300
    step_settle_ms: int = 1000
    after_click_timeout_ms: int = 5000
    modal_settle_ms: int = 1000
    submit_response_wait_ms: int = 5000
    form_ready_timeout_ms: int = 7000
    network_idle_timeout_ms: int = 10000
    dynamic_field_wait_ms: int = 2000
    login_attempts: int = 2
    log_level: str = "INFO"
    enable_performance_monitoring: bool = True
    performance_log_interval: int = 30
    save_report: bool = True


@dataclass
class PortalConfig:
    """Target portal, credentials and artifact locations"""
    form_url: str = ""
    username: str = ""
    password: str = ""
    test_files_dir: str = "archivos_prueba"
    report_dir: str = "data/debugg_results"
    screenshot_dir: str = "data/screenshots"


@dataclass
class GrantAgentConfig:
    """Complete configuration for one agent run"""
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    portal: PortalConfig = field(default_factory=PortalConfig)


class ConfigurationManager:
    """
    Manages configuration loading, validation, and default values
    """

    def __init__(self, config_dir: str = "config"):
        self.config_dir = Path(config_dir)
        self.logger = logging.getLogger(f"{__name__}.ConfigurationManager")

        self.main_config_file = self.config_dir / "agent_config.json"

    def load_configuration(self, config_file: Optional[str] = None, validate: bool = True) -> GrantAgentConfig:
        """
        Load configuration from a JSON file, then let environment variables override it.
        Raises ValueError when validation fails.
        """
        self.logger.info("Loading configuration from JSON files and environment variables")

        if config_file:
            config = self._load_from_json_file(config_file)
        else:
            config = self._load_from_json_file(str(self.main_config_file))

        config = self._load_from_environment(config)

        if validate:
            self._validate_configuration(config)

        config = self._apply_default_values(config)

        self.logger.info("Configuration loaded successfully")
        return config

    def _load_from_json_file(self, config_file: str) -> GrantAgentConfig:
        """Load configuration from a single JSON file"""
        config_path = Path(config_file)

        if not config_path.exists():
            self.logger.debug(f"Configuration file not found: {config_file}, using defaults")
            return GrantAgentConfig()

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)

            return self._parse_config_data(config_data)

        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in configuration file {config_file}: {e}")
            return GrantAgentConfig()
        except OSError as e:
            self.logger.error(f"Error reading configuration file {config_file}: {e}")
            return GrantAgentConfig()

    def _parse_config_data(self, config_data: Dict[str, Any]) -> GrantAgentConfig:
        """Parse configuration data from JSON, ignoring unknown keys"""
        config = GrantAgentConfig()

        if 'browser' in config_data:
            config.browser = BrowserConfig(**{
                k: v for k, v in config_data['browser'].items()
                if k in BrowserConfig.__dataclass_fields__
            })

        if 'agent' in config_data:
            config.agent = AgentConfig(**{
                k: v for k, v in config_data['agent'].items()
                if k in AgentConfig.__dataclass_fields__
            })

        if 'portal' in config_data:
            config.portal = PortalConfig(**{
                k: v for k, v in config_data['portal'].items()
                if k in PortalConfig.__dataclass_fields__
            })

        return config

    def _load_from_environment(self, config: GrantAgentConfig) -> GrantAgentConfig:
        """Override configuration with environment variables"""
        # Browser settings
        config.browser.headless = self._get_env_bool('AGENT_HEADLESS', config.browser.headless)
        config.browser.slow_motion = self._get_env_int('AGENT_SLOW_MOTION', config.browser.slow_motion)
        config.browser.timeout = self._get_env_int('AGENT_TIMEOUT', config.browser.timeout)
        config.browser.screenshot_on_failure = self._get_env_bool('AGENT_SCREENSHOT_ON_FAILURE', config.browser.screenshot_on_failure)

        # Agent settings
        config.agent.max_extraction_passes = self._get_env_int('AGENT_MAX_EXTRACTION_PASSES', config.agent.max_extraction_passes)
        config.agent.max_modal_iterations = self._get_env_int('AGENT_MAX_MODAL_ITERATIONS', config.agent.max_modal_iterations)
        config.agent.max_steps = self._get_env_int('AGENT_MAX_STEPS', config.agent.max_steps)
        config.agent.field_delay_ms = self._get_env_int('AGENT_FIELD_DELAY_MS', config.agent.field_delay_ms)
        config.agent.log_level = os.getenv('AGENT_LOG_LEVEL', config.agent.log_level).upper()
        config.agent.save_report = self._get_env_bool('AGENT_SAVE_REPORT', config.agent.save_report)

        # Portal settings
        config.portal.form_url = os.getenv('CORFO_URL', config.portal.form_url)
        config.portal.username = os.getenv('CORFO_USER', config.portal.username)
        config.portal.password = os.getenv('CORFO_PASS', config.portal.password)
        config.portal.test_files_dir = os.getenv('AGENT_TEST_FILES_DIR', config.portal.test_files_dir)
        config.portal.report_dir = os.getenv('AGENT_REPORT_DIR', config.portal.report_dir)

        return config

    def _validate_configuration(self, config: GrantAgentConfig) -> None:
        """
        Validate configuration and raise errors for critical missing values
        """
        errors = []

        if not config.portal.form_url:
            errors.append("CORFO_URL is required")
        if not config.portal.username:
            errors.append("CORFO_USER is required")
        if not config.portal.password:
            errors.append("CORFO_PASS is required")

        if config.browser.timeout < 1000:
            errors.append("AGENT_TIMEOUT must be at least 1000ms")

        if config.agent.max_extraction_passes < 1:
            errors.append("AGENT_MAX_EXTRACTION_PASSES must be at least 1")
        if config.agent.max_modal_iterations < 1:
            errors.append("AGENT_MAX_MODAL_ITERATIONS must be at least 1")
        if config.agent.max_steps < 1:
            errors.append("AGENT_MAX_STEPS must be at least 1")
        if config.agent.field_delay_ms < 0:
            errors.append("AGENT_FIELD_DELAY_MS must be non-negative")

        if config.agent.log_level not in VALID_LOG_LEVELS:
            errors.append(f"AGENT_LOG_LEVEL must be one of: {', '.join(VALID_LOG_LEVELS)}")

        if errors:
            error_message = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            self.logger.error(error_message)
            raise ValueError(error_message)

        self.logger.info("Configuration validation passed")

    def _apply_default_values(self, config: GrantAgentConfig) -> GrantAgentConfig:
        """Apply default values where configuration is missing"""
        if config.browser.timeout == 0:
            config.browser.timeout = 30000
        if not config.browser.browser_args:
            config.browser.browser_args = ['--no-sandbox']
        if not config.portal.test_files_dir:
            config.portal.test_files_dir = "archivos_prueba"

        self.logger.debug("Default values applied to configuration")
        return config

    def _get_env_bool(self, key: str, default: bool) -> bool:
        """Get boolean value from environment variable"""
        value = os.getenv(key, str(default)).lower()
        return value in ('true', '1', 'yes', 'on')

    def _get_env_int(self, key: str, default: int) -> int:
        """Get integer value from environment variable"""
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            self.logger.warning(f"Invalid integer value for {key}, using default: {default}")
            return default

    def save_configuration(self, config: GrantAgentConfig, config_file: Optional[str] = None,
                           include_secrets: bool = False) -> bool:
        """Save configuration to JSON file. Credentials are blanked unless include_secrets is set."""
        try:
            output_file = Path(config_file) if config_file else self.main_config_file

            config_dict = asdict(config)
            if not include_secrets:
                config_dict['portal']['password'] = ""

            output_file.parent.mkdir(parents=True, exist_ok=True)

            with open(output_file, 'w', encoding='utf-8') as f:
                json.dump(config_dict, f, indent=2, ensure_ascii=False)

            self.logger.info(f"Configuration saved to {output_file}")
            return True

        except OSError as e:
            self.logger.error(f"Failed to save configuration: {e}")
            return False

    def create_example_configuration_file(self) -> bool:
        """Write agent_config.example.json next to the main configuration file"""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            example_file = self.config_dir / "agent_config.example.json"

            example = asdict(GrantAgentConfig())
            example['portal'].update({
                "form_url": "https://ejemplo.corfo.cl/Postulador.aspx?id=0000",
                "username": "11111111-1",
                "password": "",
            })

            with open(example_file, 'w', encoding='utf-8') as f:
                json.dump(example, f, indent=2, ensure_ascii=False)

            self.logger.info(f"Example configuration written to {example_file}")
            return True

        except OSError as e:
            self.logger.error(f"Failed to create example configuration file: {e}")
            return False
