"""Audio backends for the reminder client: gTTS speech and pygame playback.

Speech is synthesized by Google Text-to-Speech into an in-memory MP3 and
played on pygame's music channel, so "is speaking" is simply whether that
channel is busy. Alarm, success and beep sounds are files under
SOUND_ASSET_DIR played as pygame Sounds, which use their own channels and
never cut off speech.
"""

import io
import os
from typing import Optional

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

import pygame
from gtts import gTTS, gTTSError

from config import settings
from logger_config import setup_logger
from services import SoundPlayer, SoundUnavailableError, SpeechEngine

logger = setup_logger(__name__, 'client.log')

DEFAULT_SOUND_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'sounds')


def init_mixer() -> bool:
    """Initialize pygame's mixer once. Returns False when there is no audio device."""
    if pygame.mixer.get_init():
        return True
    try:
        pygame.mixer.init()
    except pygame.error as e:
        logger.warning(f"Audio initialization failed: {e}")
        return False
    logger.info("Audio system initialized")
    return True


class GttsSpeechEngine(SpeechEngine):
    def __init__(self, lang: Optional[str] = None, slow: bool = False):
        self.lang = lang or settings.SPEECH_LANGUAGE
        self.slow = slow

    @property
    def is_speaking(self) -> bool:
        return bool(pygame.mixer.get_init()) and pygame.mixer.music.get_busy()

    def is_available(self) -> bool:
        return init_mixer()

    def say(self, text: str) -> None:
        """Synthesize and start playing text; returns without waiting for the end.

        A synthesis failure (gTTS needs network access) or a playback error is
        logged and the utterance dropped.
        """
        try:
            buffer = io.BytesIO()
            gTTS(text=text, lang=self.lang, slow=self.slow).write_to_fp(buffer)
            buffer.seek(0)
            pygame.mixer.music.load(buffer, "mp3")
            pygame.mixer.music.play()
        except (gTTSError, pygame.error) as e:
            logger.error(f"Error speaking '{text}': {e}")

    def stop(self) -> None:
        if pygame.mixer.get_init():
            pygame.mixer.music.stop()


class PygameSoundPlayer(SoundPlayer):
    """Plays sound assets by file name from a directory."""

    def __init__(self, asset_dir: Optional[str] = None):
        self.asset_dir = asset_dir or settings.SOUND_ASSET_DIR or DEFAULT_SOUND_DIR

    def play(self, asset: str) -> None:
        path = os.path.join(self.asset_dir, asset)
        if not os.path.isfile(path):
            raise SoundUnavailableError(f"{asset} not found in {self.asset_dir}")
        if not init_mixer():
            raise SoundUnavailableError("no audio device")

        try:
            pygame.mixer.Sound(path).play()
        except pygame.error as e:
            raise SoundUnavailableError(f"Cannot play {asset}: {e}") from e
