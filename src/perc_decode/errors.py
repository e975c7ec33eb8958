"""Typed decode failures.

Every failure is local and recoverable by the caller. ``TooShort`` is often
transient (a partial fetch) and worth a re-fetch; ``BadSignature`` and
``UnsupportedVersion`` are terminal for the given bytes.
"""
from __future__ import annotations

from .const import ERRORS


class LayoutError(ValueError):
    code = ""

    def __init__(self, detail: str = ""):
        self.detail = detail
        msg = ERRORS.get(self.code, "Layout error")
        super().__init__(f"{msg}: {detail}" if detail else msg)

    def as_dict(self) -> dict:
        return {"code": self.code, "message": ERRORS.get(self.code, ""), "detail": self.detail}


class TooShort(LayoutError):
    code = "E_TOO_SHORT"

    def __init__(self, section: str, have: int, need: int):
        self.section = section
        self.have = have
        self.need = need
        super().__init__(f"{section} needs {need} bytes, buffer has {have}")


class BadSignature(LayoutError):
    code = "E_BAD_SIGNATURE"

    def __init__(self, expected: int, found: int):
        self.expected = expected
        self.found = found
        super().__init__(f"expected {expected:#018x}, got {found:#018x}")


class UnsupportedVersion(LayoutError):
    code = "E_UNSUPPORTED_VERSION"

    def __init__(self, version: int, supported):
        self.version = version
        self.supported = tuple(sorted(supported))
        super().__init__(f"version {version} (supported: {list(self.supported)})")


class IndexOutOfRange(LayoutError):
    code = "E_INDEX_RANGE"

    def __init__(self, idx: int, max_idx: int):
        self.idx = idx
        self.max_idx = max_idx
        super().__init__(f"index {idx} not in [0, {max_idx})")


def require_len(buf, need: int, section: str) -> None:
    if len(buf) < need:
        raise TooShort(section, len(buf), need)
