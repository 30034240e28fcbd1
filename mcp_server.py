"""MCP Server for the Medication Reminder Service.

This module provides MCP tools for AI agents to inspect medication schedules
and drive the family escalation. Uses the same database as the REST API for
data consistency.

Transport Support:
- stdio: Standard input/output (local process communication)
- sse: Server-Sent Events over HTTP (network access, scalable)
"""

from mcp.server.fastmcp import FastMCP
import os
import crud
import database
import escalation
import sms_gateway
from schemas import as_utc
from config import settings
from logger_config import setup_logger

logger = setup_logger(__name__, 'mcp.log')
logger.info("MCP Server initialized")

# Create FastMCP server with host and port from settings
mcp = FastMCP(
    "MedicationReminderService",
    host=settings.MCP_HOST,
    port=settings.MCP_PORT
)


@mcp.tool()
def list_today_schedule(user_id: str) -> str:
    """List today's medicine doses for a user.

    Args:
        user_id: User ID

    Returns:
        Today's doses with time and status, or a message if there are none
    """
    db = database.SessionLocal()
    try:
        items = crud.list_today_schedule(db, user_id)

        if not items:
            return "No medicines scheduled for today."

        result = [f"Today's schedule ({len(items)} dose(s)):\n"]
        for item in items:
            time_str = as_utc(item.scheduled_time).strftime("%H:%M UTC")
            result.append(
                f"\n• {item.medicine_name} ({item.dosage})\n"
                f"  ID: {item.id}\n"
                f"  Time: {time_str}\n"
                f"  Status: {item.status.value}"
            )

        return "\n".join(result)
    finally:
        db.close()


@mcp.tool()
def get_missed_reminders(user_id: str, threshold: int = 3) -> str:
    """List doses whose missed count is at or above a threshold.

    Args:
        user_id: User ID
        threshold: Minimum missed count (default: 3)

    Returns:
        Matching doses with their missed counts
    """
    db = database.SessionLocal()
    try:
        missed = crud.get_missed_reminders(db, user_id, threshold)

        if not missed:
            return f"No doses missed {threshold} or more times."

        result = [f"Found {len(missed)} dose(s) missed {threshold}+ times:\n"]
        for m in missed:
            result.append(
                f"\n• {m['medicine_name']}\n"
                f"  Schedule ID: {m['schedule_id']}\n"
                f"  Missed: {m['missed_count']}"
            )

        return "\n".join(result)
    finally:
        db.close()


@mcp.tool()
def send_instant_sms(user_id: str, medicine_name: str, dosage: str) -> str:
    """Text a user's family contacts that a medicine reminder was dismissed.

    Args:
        user_id: User ID
        medicine_name: Medicine name (e.g., "Metformin")
        dosage: Dosage (e.g., "500mg")

    Returns:
        Delivery summary or the reason nothing was sent
    """
    db = database.SessionLocal()
    try:
        logger.info(f"📨 Instant SMS requested for user {user_id}: {medicine_name}")
        result = escalation.send_instant_sms(db, sms_gateway.get_sms_gateway(), user_id, medicine_name, dosage)

        if result.status == "skipped":
            return f"No SMS sent ({result.reason})."
        return (
            f"✓ Family notified\n"
            f"Sent: {result.sent}\n"
            f"Failed: {result.failed}"
        )
    except Exception as e:
        return f"✗ Error sending SMS: {str(e)}"
    finally:
        db.close()


@mcp.tool()
def run_escalation_sweep() -> str:
    """Run one missed-dose threshold sweep across all SMS-enabled users.

    Returns:
        Sweep summary
    """
    db = database.SessionLocal()
    try:
        result = escalation.run_escalation_sweep(db, sms_gateway.get_sms_gateway())
        return (
            f"✓ Sweep complete\n"
            f"Users scanned: {result.users_scanned}\n"
            f"Breaches: {result.breaches}\n"
            f"SMS sent: {result.sent}\n"
            f"SMS failed: {result.failed}\n"
            f"Duplicates skipped: {result.duplicates_skipped}"
        )
    except Exception as e:
        return f"✗ Error running sweep: {str(e)}"
    finally:
        db.close()


@mcp.tool()
def list_sms_logs(user_id: str, limit: int = 20) -> str:
    """List recent family SMS for a user, newest first.

    Args:
        user_id: User ID
        limit: Maximum number of entries (default: 20)

    Returns:
        SMS log entries or a message if there are none
    """
    db = database.SessionLocal()
    try:
        logs = crud.get_sms_logs(db, user_id, limit)

        if not logs:
            return "No SMS sent yet."

        result = [f"Last {len(logs)} SMS:\n"]
        for log in logs:
            sent_at = as_utc(log.created_at).strftime("%Y-%m-%d %H:%M")
            result.append(
                f"\n• [{log.status.value}] {log.family_sms_type or 'sms'} to {log.to_phone}\n"
                f"  At: {sent_at}\n"
                f"  Message: {log.message}"
            )

        return "\n".join(result)
    finally:
        db.close()


if __name__ == "__main__":
    # Get transport from environment or config
    transport = os.getenv("MCP_TRANSPORT", settings.MCP_TRANSPORT).lower()

    if transport == "sse":
        host = settings.MCP_HOST
        port = settings.MCP_PORT

        print(f"Starting MCP server with SSE transport on {host}:{port}")
        print(f"SSE endpoint: http://{host}:{port}/sse")

        mcp.run(transport="sse")
    else:
        print("Starting MCP server with stdio transport")
        mcp.run(transport="stdio")
