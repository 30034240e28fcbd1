"""Configuration module for the Medication Reminder Service.

This module provides configuration settings using Pydantic Settings.
Environment variables can be used to override default values.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings for the Medication Reminder Service.

    All settings can be overridden via environment variables.
    Example: export TWILIO_PHONE_NUMBER="+15550001111"
    """

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./medication_reminders.db"
    """Database connection URL. Default: SQLite file in current directory"""

    # API Server Configuration
    API_HOST: str = "0.0.0.0"
    """API server host address"""

    API_PORT: int = 8005
    """API server port"""

    # MCP Server Configuration
    MCP_HOST: str = "127.0.0.1"
    MCP_PORT: int = 8006
    MCP_TRANSPORT: str = "sse"
    """MCP transport type: 'stdio' for local, 'sse' for network access"""

    # General Configuration
    TIMEZONE: str = "UTC"
    """Timezone that defines the user's calendar day ("today")"""

    SCHEDULE_DAYS_AHEAD: int = 30
    """How many days of schedule items are generated for a new medicine"""

    MAX_CONTACTS_PER_USER: int = 2

    # Reminder session (client) configuration
    DETECTOR_TICK_INTERVAL: int = 60
    """Seconds between due-medicine polls"""

    CLOCK_TICK_INTERVAL: int = 1

    PRE_WINDOW_MINUTES: int = 1
    """Heads-up announcement this many minutes before the scheduled time"""

    DUE_WINDOW_MINUTES: int = 5
    """Active reminding lasts this many minutes after the scheduled time"""

    MAX_ANNOUNCEMENTS: int = 3
    """Due-window announcements per item before the reminder goes silent"""

    SNOOZE_DELAY_SECONDS: float = 30
    MAX_SNOOZE_REPROMPTS: Optional[int] = None
    """Consecutive snooze re-prompts per item; None keeps nagging forever"""

    REMINDER_API_URL: str = "http://127.0.0.1:8005"
    """Base URL the reminder client uses to reach the API server"""

    CLIENT_USER_ID: Optional[str] = None

    # Client audio (gTTS speech, pygame playback)
    AUDIO_ENABLED: bool = True
    """False renders speech and sounds to the terminal instead"""
    SPEECH_LANGUAGE: str = "en"
    SOUND_ASSET_DIR: Optional[str] = None
    """Directory holding alarm-sound.mp3, success-sound.mp3 and beep.wav. Default: sounds/ next to the source"""

    # Escalation configuration
    DEFAULT_MISSED_THRESHOLD: int = 3
    SWEEP_WINDOW_MINUTES: int = 5

    ESCALATION_DEDUPE_ENABLED: bool = False
    """Skip sweep alerts already sent for the same (schedule item, missed count)"""

    # Background Worker Configuration
    WORKER_ENABLED: bool = True
    """Enable/disable the background escalation sweep"""

    ESCALATION_SWEEP_INTERVAL: int = 300
    """Interval in seconds between escalation sweeps (default: 5 minutes)"""

    # Twilio Configuration
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None
    """Directory for rotating log files. Default: logs/ next to the source"""

    class Config:
        """Pydantic config"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
