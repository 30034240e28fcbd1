"""Medication Reminder Service - timed medicine reminders with family SMS escalation.

This package provides a REST API and an MCP server over a shared medication
schedule, a per-user reminder client, and a background escalation worker.

Features:
- Daily/weekly medicine schedules generated 30 days ahead
- Client-side due-medicine detection with voice, notification and alarm
- Take / snooze / dismiss decisions with per-dose missed counters
- Instant family SMS on dismiss, batched SMS when a missed threshold is reached
- Twilio SMS delivery with every attempt logged

Components:
- config: Application settings
- database: SQLAlchemy models and session management
- schemas: Pydantic validation schemas
- crud: Database CRUD operations
- escalation / sms_gateway: Family SMS escalation over Twilio
- api_server: FastAPI REST API
- mcp_server: MCP server with tools for AI agents
- background_worker: Periodic threshold sweep
- detector / presenter / session / reminder_client: The reminder client

Usage:
    # Start API, MCP server and worker
    python main.py

    # Start a reminder client for one user
    python reminder_client.py <user_id>
"""

__version__ = "1.0.0"
__author__ = "Mayur"
__description__ = "Medication reminder service with family SMS escalation"
