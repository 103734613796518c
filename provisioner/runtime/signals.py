"""Classification of external command output into structured signals.

Installer output is inspected once, here, so callers branch on a
``Signal`` value instead of re-matching text.

Known limitation: trust errors are recognised by substrings that apt and gpg
print today (``NO_PUBKEY``, ``is not signed`` ...). Unrelated failures whose
output happens to contain these phrases are classified as trust errors too.
"""
from __future__ import annotations

from enum import Enum

# Exit codes used for failures that never produced a process.
EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124

TRUST_ERROR_MARKERS: tuple[str, ...] = (
    "NO_PUBKEY",
    "not signed",
    "EXPKEYSIG",
    "BADSIG",
    "signatures couldn't be verified",
    "signatures were invalid",
)

ALREADY_PRESENT_MARKERS: tuple[str, ...] = (
    "is already the newest version",
    "already installed",
)

NOT_FOUND_MARKERS: tuple[str, ...] = (
    "Unable to locate package",
    "command not found",
)


class Signal(str, Enum):
    ok = "ok"
    trust_error = "trust_error"
    already_present = "already_present"
    not_found = "not_found"
    timeout = "timeout"
    failed = "failed"


def classify(exit_code: int, output: str) -> Signal:
    """Map an exit status and combined output to a single signal."""
    if exit_code == EXIT_TIMEOUT:
        return Signal.timeout
    if any(marker in output for marker in TRUST_ERROR_MARKERS):
        return Signal.trust_error
    if exit_code == EXIT_NOT_FOUND:
        return Signal.not_found
    if exit_code == 0:
        if any(marker in output for marker in ALREADY_PRESENT_MARKERS):
            return Signal.already_present
        return Signal.ok
    if any(marker in output for marker in NOT_FOUND_MARKERS):
        return Signal.not_found
    return Signal.failed
