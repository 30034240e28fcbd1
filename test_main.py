"""Unified startup: child services and their output."""

import subprocess

import main


class RecordingPopen:
    calls = []

    def __init__(self, args, **kwargs):
        RecordingPopen.calls.append((args, kwargs))
        self.pid = 4242


def test_children_do_not_write_into_an_unread_pipe(monkeypatch):
    RecordingPopen.calls = []
    monkeypatch.setattr(main.subprocess, "Popen", RecordingPopen)
    monkeypatch.setattr(main, "processes", [])

    process = main.start_service("Escalation worker", "background_worker.py", {"WORKER_ENABLED": "false"}, ".")

    (args, kwargs), = RecordingPopen.calls
    assert args[-1] == "background_worker.py"
    assert kwargs.get("stdout") is not subprocess.PIPE
    assert kwargs.get("stderr") is not subprocess.PIPE
    assert kwargs["env"]["WORKER_ENABLED"] == "false"
    assert main.processes == [process]
