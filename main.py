#!/usr/bin/env python3
"""Unified entry point for the Medication Reminder Service backend.

Starts the API server, the MCP server (SSE transport) and the escalation
worker as subprocesses and stops all of them when one dies or a shutdown
signal arrives. Reminder clients are started separately, one per user
(see reminder_client.py).
"""

import os
import signal
import subprocess
import sys
import time
from typing import Dict, List, Optional

from config import settings
from logger_config import setup_logger

logger = setup_logger(__name__, 'main.log')

# (name, script, extra environment)
SERVICES = [
    ("API server", "api_server.py", {}),
    ("MCP server", "mcp_server.py", {"MCP_TRANSPORT": "sse"}),
    ("Escalation worker", "background_worker.py", {}),
]

processes: List[subprocess.Popen] = []
shutdown_requested = False


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    global shutdown_requested
    if shutdown_requested:
        logger.warning("Force shutdown requested")
        sys.exit(1)

    shutdown_requested = True
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    shutdown_services()


def shutdown_services(exit_code: int = 0):
    """Stop all running services."""
    logger.info("Stopping all services...")
    for process in processes:
        if process.poll() is None:
            logger.info(f"Terminating process (PID: {process.pid})")
            process.terminate()

    for process in processes:
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            logger.warning(f"Force killing process (PID: {process.pid})")
            process.kill()
            process.wait()

    logger.info("All services stopped")
    sys.exit(exit_code)


def start_service(name: str, script: str, extra_env: Optional[Dict[str, str]], cwd: str) -> subprocess.Popen:
    """Start one service script as a child process.

    The child shares this process's stdout and stderr; its own logs also go
    to rotating files under LOG_DIR.
    """
    logger.info(f"Starting {name}...")
    env = os.environ.copy()
    env.update(extra_env or {})
    process = subprocess.Popen(
        [sys.executable, script],
        cwd=cwd,
        env=env
    )
    processes.append(process)
    return process


def main():
    """Main entry point - start all services."""
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info("=" * 60)
    logger.info("Medication Reminder Service - Unified Startup")
    logger.info("=" * 60)

    current_dir = os.path.dirname(os.path.abspath(__file__))

    try:
        for name, script, extra_env in SERVICES:
            start_service(name, script, extra_env, current_dir)
            time.sleep(2)

        logger.info("=" * 60)
        logger.info("All services started successfully!")
        logger.info(f"  - API Server: http://{settings.API_HOST}:{settings.API_PORT}")
        logger.info(f"  - API Docs: http://{settings.API_HOST}:{settings.API_PORT}/docs")
        logger.info(f"  - MCP Server: http://{settings.MCP_HOST}:{settings.MCP_PORT}/sse")
        logger.info(f"  - Escalation Worker: every {settings.ESCALATION_SWEEP_INTERVAL}s")
        logger.info("=" * 60)

        while not shutdown_requested:
            for (name, _, _), process in zip(SERVICES, processes):
                if process.poll() is not None:
                    logger.error(f"{name} (PID: {process.pid}) has stopped unexpectedly!")
                    shutdown_services(exit_code=1)
            time.sleep(5)

    except OSError as e:
        logger.error(f"Error starting services: {e}")
        shutdown_services(exit_code=1)


if __name__ == "__main__":
    main()
