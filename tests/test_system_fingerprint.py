"""Tests for capture_environment()."""

import json
import subprocess

import numpy as np

from optibench import environment
from optibench.environment import capture_environment


class TestCaptureEnvironment:
    def test_expected_keys(self):
        env = capture_environment()

        assert set(env) == {
            "timestamp",
            "git_commit",
            "python_version",
            "python_implementation",
            "numpy_version",
            "os",
            "cpu",
            "memory",
        }
        assert set(env["os"]) == {"system", "release", "machine", "processor"}
        assert set(env["cpu"]) == {"physical_cores", "logical_cores", "frequency_mhz"}
        assert set(env["memory"]) == {"total_bytes", "available_bytes"}

    def test_values(self):
        env = capture_environment()

        assert env["numpy_version"] == np.__version__
        assert env["cpu"]["logical_cores"] >= 1
        assert env["memory"]["total_bytes"] > 0
        assert "T" in env["timestamp"]

    def test_json_serializable(self):
        json.dumps(capture_environment())


class TestGitCommit:
    def test_unknown_outside_repository(self, monkeypatch):
        def fail(*args, **kwargs):
            raise subprocess.CalledProcessError(128, "git")

        monkeypatch.setattr(environment.subprocess, "check_output", fail)

        assert environment._get_git_commit() == "unknown"

    def test_unknown_without_git(self, monkeypatch):
        def missing(*args, **kwargs):
            raise FileNotFoundError("git")

        monkeypatch.setattr(environment.subprocess, "check_output", missing)

        assert environment._get_git_commit() == "unknown"

    def test_strips_hash(self, monkeypatch):
        monkeypatch.setattr(
            environment.subprocess, "check_output", lambda *a, **k: b"abc123\n"
        )

        assert environment._get_git_commit() == "abc123"


class TestCpuFrequency:
    def test_unsupported_platform(self, monkeypatch):
        def unsupported():
            raise NotImplementedError

        monkeypatch.setattr(environment.psutil, "cpu_freq", unsupported)

        assert environment._get_cpu_frequency() is None

    def test_no_reading(self, monkeypatch):
        monkeypatch.setattr(environment.psutil, "cpu_freq", lambda: None)

        assert environment._get_cpu_frequency() is None
