#!/usr/bin/env python3
"""Console reminder client.

Runs one reminder session for a user against the API server. Reminders are
spoken with gTTS and sounds played through pygame; without an audio device
(or with AUDIO_ENABLED=false) speech and sounds are rendered to the terminal.
Notifications always go to the terminal. The user answers an active reminder
by typing a command and pressing Enter:

    t  take      s  snooze      d  dismiss      q  quit

Usage:
    python reminder_client.py <user_id>
    CLIENT_USER_ID=<user_id> python reminder_client.py
"""

import asyncio
import sys
from typing import Optional, Tuple

import audio
from config import settings
from logger_config import setup_logger
from presenter import ReminderCommand
from services import (
    AlarmService, NotificationService, Notifier, SoundPlayer, SpeechEngine, VoiceService
)
from session import ReminderSession
from store_client import ReminderBackendClient

logger = setup_logger(__name__, 'client.log')

KEY_COMMANDS = {
    "t": ReminderCommand.TAKE,
    "s": ReminderCommand.SNOOZE,
    "d": ReminderCommand.DISMISS,
}


class ConsoleSpeechEngine(SpeechEngine):
    """Prints utterances; used when no audio device is available. Never busy."""

    def say(self, text: str) -> None:
        print(f"🔊 {text}", flush=True)


class ConsoleNotifier(Notifier):
    def toast(self, message: str, kind: str) -> None:
        marker = "✓" if kind == "success" else "✗"
        print(f"{marker} {message}", flush=True)

    def system(self, title: str, body: str, tag: str) -> None:
        print(f"🔔 {title}: {body}", flush=True)


class TerminalBellPlayer(SoundPlayer):
    """Rings the terminal bell for any asset; used when no audio device is available."""

    def play(self, asset: str) -> None:
        sys.stdout.write("\a")
        sys.stdout.flush()
        logger.debug(f"Played {asset}")


def build_audio() -> Tuple[SpeechEngine, SoundPlayer]:
    """gTTS speech and pygame sounds, or terminal stand-ins without audio output."""
    if settings.AUDIO_ENABLED and audio.init_mixer():
        return audio.GttsSpeechEngine(), audio.PygameSoundPlayer()
    logger.warning("Audio output unavailable, rendering speech and sounds to the terminal")
    return ConsoleSpeechEngine(), TerminalBellPlayer()


async def read_commands(session: ReminderSession) -> None:
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            return
        key = line.strip().lower()
        if key == "q":
            return
        if key not in KEY_COMMANDS:
            print("Commands: t=take, s=snooze, d=dismiss, q=quit", flush=True)
            continue
        if session.active_reminder is None:
            print("No active reminder.", flush=True)
            continue
        await session.execute(KEY_COMMANDS[key])


async def run(user_id: str) -> None:
    backend = ReminderBackendClient(user_id, base_url=settings.REMINDER_API_URL)
    speech, player = build_audio()
    session = ReminderSession(
        user_id,
        backend,
        VoiceService(speech),
        NotificationService(ConsoleNotifier()),
        AlarmService(player)
    )
    try:
        async with session:
            print(f"Watching reminders for {user_id}. Commands: t=take, s=snooze, d=dismiss, q=quit", flush=True)
            await read_commands(session)
    finally:
        await backend.aclose()


def main(argv: Optional[list] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    user_id = argv[0] if argv else settings.CLIENT_USER_ID
    if not user_id:
        print("Usage: python reminder_client.py <user_id>  (or set CLIENT_USER_ID)", file=sys.stderr)
        return 2

    logger.info(f"Reminder client starting for user {user_id} against {settings.REMINDER_API_URL}")
    try:
        asyncio.run(run(user_id))
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    return 0


if __name__ == "__main__":
    sys.exit(main())
