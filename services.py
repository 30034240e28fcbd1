"""Side-effect services used by a reminder session: voice, notifications, sounds.

Each service wraps a backend supplied by the host (a speech engine, a
notifier, a sound player), so the detector and presenter never talk to
devices directly and tests can swap in recorders.
"""

from typing import Optional

from logger_config import setup_logger

logger = setup_logger(__name__, 'presenter.log')

ALARM_SOUND = "alarm-sound.mp3"
SUCCESS_SOUND = "success-sound.mp3"
BEEP_SOUND = "beep.wav"


class SoundUnavailableError(Exception):
    """Raised by a SoundPlayer when an asset is missing or cannot be played."""


class SpeechEngine:
    """Text-to-speech backend interface."""

    @property
    def is_speaking(self) -> bool:
        return False

    def is_available(self) -> bool:
        return True

    def say(self, text: str) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        pass


class Notifier:
    """Host notification backend: transient toasts and system notifications."""

    system_notifications_allowed = True

    def toast(self, message: str, kind: str) -> None:
        raise NotImplementedError

    def system(self, title: str, body: str, tag: str) -> None:
        raise NotImplementedError


class SoundPlayer:
    def play(self, asset: str) -> None:
        raise NotImplementedError


class VoiceService:
    """Speaks reminder texts, never interrupting speech already in progress.

    Engine support is checked once, at construction. Without a usable engine
    every speak() is a no-op.
    """

    def __init__(self, engine: Optional[SpeechEngine] = None):
        self.engine = engine
        self.is_supported = engine is not None and engine.is_available()
        self.last_spoken: Optional[str] = None
        if not self.is_supported:
            logger.warning("Speech engine unavailable; voice reminders are disabled")

    @property
    def is_speaking(self) -> bool:
        return self.is_supported and self.engine.is_speaking

    def speak(self, text: str, key: Optional[str] = None) -> bool:
        """Speak text unless the engine is busy.

        With a key, the utterance is also skipped when the key equals the last
        one spoken. Returns True if the text was handed to the engine.
        """
        if not self.is_supported:
            return False
        if self.is_speaking:
            logger.debug(f"Voice busy, suppressed: {text}")
            return False
        if key is not None and key == self.last_spoken:
            return False

        self.engine.say(text)
        self.last_spoken = key if key is not None else text
        return True

    def close(self) -> None:
        if self.is_supported:
            self.engine.stop()


class NotificationService:
    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    def show(self, message: str, kind: str = "success") -> None:
        """Transient toast/banner; kind is "success" or "error"."""
        self.notifier.toast(message, kind)

    def notify_system(self, title: str, body: str, tag: str) -> bool:
        """System notification, only when the host has permission."""
        if not self.notifier.system_notifications_allowed:
            return False
        self.notifier.system(title, body, tag)
        return True


class AlarmService:
    def __init__(self, player: Optional[SoundPlayer] = None):
        self.player = player

    def _play(self, asset: str) -> None:
        if self.player is None:
            raise SoundUnavailableError("no sound player")
        self.player.play(asset)

    def play_alarm(self) -> bool:
        try:
            self._play(ALARM_SOUND)
        except SoundUnavailableError as e:
            logger.error(f"Error playing alarm sound: {e}")
            return False
        return True

    def play_success(self) -> bool:
        """Success chime, falling back to a plain beep when the asset is missing."""
        try:
            self._play(SUCCESS_SOUND)
            return True
        except SoundUnavailableError:
            logger.info("Sound file not found, using beep fallback")

        try:
            self._play(BEEP_SOUND)
        except SoundUnavailableError:
            logger.info("Beep failed")
            return False
        return True
