from __future__ import annotations
import os
import signal
import uuid
from typing import Optional


def new_job_id() -> str:
    return uuid.uuid4().hex


def signal_name(returncode: Optional[int]) -> Optional[str]:
    """asyncio reports death-by-signal as a negative return code."""
    if returncode is None or returncode >= 0:
        return None
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


def binary_suffix() -> str:
    return ".exe" if os.name == "nt" else ""
