"""gTTS speech and pygame sounds, with the audio device stubbed out."""

import os
from types import SimpleNamespace

import pygame
import pytest
from gtts import gTTSError

import audio
import reminder_client
from services import ALARM_SOUND, BEEP_SOUND, AlarmService, SoundUnavailableError, VoiceService

TEXT = "Time to take Metformin, 500mg"


class RecordingSound:
    played = []

    def __init__(self, path):
        self.path = path

    def play(self):
        RecordingSound.played.append(os.path.basename(self.path))


class FakeTTS:
    created = []

    def __init__(self, text, lang, slow):
        FakeTTS.created.append((text, lang, slow))

    def write_to_fp(self, fp):
        fp.write(b"ID3 synthesized")


class OfflineTTS(FakeTTS):
    def write_to_fp(self, fp):
        raise gTTSError("Failed to connect")


@pytest.fixture
def mixer(monkeypatch):
    """An initialized mixer whose music channel and sounds only record calls."""
    music = SimpleNamespace(busy=False, loaded=[], plays=0, stopped=False)

    def load(fileobj, namehint=""):
        music.loaded.append(fileobj.read())

    def play():
        music.plays += 1

    def stop():
        music.stopped = True

    monkeypatch.setattr(pygame.mixer, "get_init", lambda: (44100, -16, 2))
    monkeypatch.setattr(pygame.mixer.music, "get_busy", lambda: music.busy)
    monkeypatch.setattr(pygame.mixer.music, "load", load)
    monkeypatch.setattr(pygame.mixer.music, "play", play)
    monkeypatch.setattr(pygame.mixer.music, "stop", stop)
    monkeypatch.setattr(pygame.mixer, "Sound", RecordingSound)
    RecordingSound.played = []
    FakeTTS.created = []
    return music


def test_say_plays_synthesized_speech(mixer, monkeypatch):
    monkeypatch.setattr(audio, "gTTS", FakeTTS)
    voice = VoiceService(audio.GttsSpeechEngine(lang="en"))

    assert voice.speak(TEXT) is True

    assert FakeTTS.created == [(TEXT, "en", False)]
    assert mixer.loaded == [b"ID3 synthesized"]
    assert mixer.plays == 1


def test_busy_music_channel_suppresses_speech(mixer, monkeypatch):
    monkeypatch.setattr(audio, "gTTS", FakeTTS)
    voice = VoiceService(audio.GttsSpeechEngine())
    mixer.busy = True

    assert voice.is_speaking is True
    assert voice.speak(TEXT) is False
    assert FakeTTS.created == []


def test_synthesis_failure_drops_the_utterance(mixer, monkeypatch):
    monkeypatch.setattr(audio, "gTTS", OfflineTTS)
    engine = audio.GttsSpeechEngine()

    engine.say(TEXT)

    assert mixer.plays == 0


def test_close_stops_speech(mixer):
    voice = VoiceService(audio.GttsSpeechEngine())

    voice.close()

    assert mixer.stopped is True


def test_no_audio_device_disables_voice(monkeypatch):
    def no_device():
        raise pygame.error("No available audio device")

    monkeypatch.setattr(pygame.mixer, "get_init", lambda: None)
    monkeypatch.setattr(pygame.mixer, "init", no_device)

    assert VoiceService(audio.GttsSpeechEngine()).is_supported is False


def test_missing_asset_raises(mixer, tmp_path):
    with pytest.raises(SoundUnavailableError):
        audio.PygameSoundPlayer(str(tmp_path)).play(ALARM_SOUND)


def test_success_sound_falls_back_to_bundled_beep(mixer):
    alarm = AlarmService(audio.PygameSoundPlayer(audio.DEFAULT_SOUND_DIR))

    assert alarm.play_success() is True
    assert RecordingSound.played == [BEEP_SOUND]


def test_missing_alarm_is_reported(mixer, tmp_path):
    assert AlarmService(audio.PygameSoundPlayer(str(tmp_path))).play_alarm() is False
    assert RecordingSound.played == []


def test_playback_error_raises_sound_unavailable(mixer, tmp_path, monkeypatch):
    (tmp_path / ALARM_SOUND).write_bytes(b"not really an mp3")

    def broken_sound(path):
        raise pygame.error("Unrecognized audio format")

    monkeypatch.setattr(pygame.mixer, "Sound", broken_sound)

    with pytest.raises(SoundUnavailableError):
        audio.PygameSoundPlayer(str(tmp_path)).play(ALARM_SOUND)


def test_client_uses_audio_when_available(monkeypatch):
    monkeypatch.setattr(reminder_client.settings, "AUDIO_ENABLED", True)
    monkeypatch.setattr(audio, "init_mixer", lambda: True)

    speech, player = reminder_client.build_audio()

    assert isinstance(speech, audio.GttsSpeechEngine)
    assert isinstance(player, audio.PygameSoundPlayer)


def test_client_falls_back_to_terminal_without_audio(monkeypatch):
    monkeypatch.setattr(reminder_client.settings, "AUDIO_ENABLED", True)
    monkeypatch.setattr(audio, "init_mixer", lambda: False)

    speech, player = reminder_client.build_audio()

    assert isinstance(speech, reminder_client.ConsoleSpeechEngine)
    assert isinstance(player, reminder_client.TerminalBellPlayer)
