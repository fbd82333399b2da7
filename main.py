#!/usr/bin/env python3
"""
CORFO Form Agent
Description:
Fills and submits a CORFO grant application without supervision.
Credentials and the form URL come from the environment (.env) or
config/agent_config.json; a URL passed on the command line wins.

Usage: python main.py [FORM_URL]
"""

import asyncio
import logging
import os
import sys
from typing import List, Optional

from config_manager import ConfigurationManager
from orchestrator import GrantApplicationAgent

LOG_FILE = 'corfo_agent.log'

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_file: str = LOG_FILE):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler()
        ]
    )


async def main(argv: Optional[List[str]] = None) -> int:
    """Run the agent once. Returns the process exit code."""
    argv = sys.argv[1:] if argv is None else argv
    manager = ConfigurationManager()

    if argv:
        os.environ["CORFO_URL"] = argv[0]

    try:
        config = manager.load_configuration()
    except ValueError as config_error:
        setup_logging()
        logger.error(f"❌ Configuration error: {config_error}")
        logger.error("💡 Check your .env file: CORFO_URL, CORFO_USER and CORFO_PASS are required")
        return 1

    setup_logging(config.agent.log_level)
    logger.info("🚀 Starting CORFO form agent")
    logger.info(f"🎯 Form: {config.portal.form_url}")

    agent = GrantApplicationAgent(config)
    report = await agent.run()

    if report is None:
        logger.warning("🛑 Run cancelled, no report produced")
        return 1
    if report.success:
        logger.info("✅ Application completed successfully")
        return 0
    logger.error(f"❌ Application not completed: {report.message}")
    return 1


def cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
