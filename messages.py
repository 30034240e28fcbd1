"""User-facing reminder texts (English)."""

MESSAGES = {
    "take_medicine": "Time to take {medicine}, {dosage}",
    "medicine_taken": "Great! You've taken your {medicine}",
    "medicine_dismissed": "{medicine} reminder dismissed",
    "snooze_message": "I'll remind you again in {seconds} seconds",
    "reminder_title": "Medicine Reminder",
    "reminder_body": "Time to take {medicine} - {dosage}",
    "action_error": "Something went wrong. Please try again.",
}


def format_message(key: str, **values) -> str:
    return MESSAGES[key].format(**values)
