"""Subprocess, file and checksum helpers."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from phm.utils import CommandError, safe_run, sha256sum, verify_checksum, write_atomic


def test_safe_run_captures_output() -> None:
    code, out, _ = safe_run(["sh", "-c", "echo hello"])
    assert code == 0
    assert out.strip() == "hello"


def test_safe_run_failure() -> None:
    with pytest.raises(CommandError) as exc:
        safe_run(["sh", "-c", "echo boom >&2; exit 3"])
    assert exc.value.returncode == 3
    assert "boom" in str(exc.value)
    assert safe_run(["sh", "-c", "exit 3"], check=False)[0] == 3


def test_missing_binary() -> None:
    with pytest.raises(CommandError) as exc:
        safe_run(["phm-no-such-binary"])
    assert exc.value.returncode == 127


def test_write_atomic_and_checksum(tmp_path: Path) -> None:
    target = tmp_path / "sub" / "data.bin"
    write_atomic(target, b"payload")
    write_atomic(target, "text")
    assert target.read_text() == "text"
    assert list(target.parent.iterdir()) == [target]

    digest = hashlib.sha256(b"text").hexdigest()
    assert sha256sum(target) == digest
    assert verify_checksum(target, f"sha256:{digest.upper()}")
    assert not verify_checksum(target, "0" * 64)
