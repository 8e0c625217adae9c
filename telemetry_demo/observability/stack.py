"""Stack-trace text helpers: render exceptions, locate the failing app frame."""

from __future__ import annotations

import re
import sysconfig
import traceback
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from telemetry_demo.errors import error_kind

# Directory holding the telemetry_demo package (the project root in a checkout).
DEFAULT_APP_ROOT = str(Path(__file__).absolute().parents[2])

DEFAULT_LIBRARY_MARKERS: tuple[str, ...] = (
    "site-packages",
    "dist-packages",
    "node_modules",
    "<frozen ",
    sysconfig.get_paths()["stdlib"],
)

# "at handler (app/routes/users.py:45:10)"
_NAMED_FRAME = re.compile(r"at\s+(.+?)\s+\((.+):(\d+):(\d+)\)")
# "at app/routes/users.py:45:10"
_ANONYMOUS_FRAME = re.compile(r"at\s+(.+):(\d+):(\d+)")


@dataclass(frozen=True)
class ErrorLocation:
    file: str
    line: int
    function: str

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ErrorDetail:
    type: str
    message: str
    stack_trace: str
    location: ErrorLocation | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "message": self.message,
            "stack_trace": self.stack_trace,
        }
        if self.location is not None:
            data["location"] = self.location.as_dict()
        return data


def parse_frame(line: str) -> tuple[str, str, int] | None:
    """Return ``(function, file, line)`` for one frame line, or None."""

    match = _NAMED_FRAME.search(line)
    if match:
        function, file_path, line_no = match.group(1).strip(), match.group(2), int(match.group(3))
    else:
        match = _ANONYMOUS_FRAME.search(line)
        if not match:
            return None
        function, file_path, line_no = "anonymous", match.group(1).strip(), int(match.group(2))

    if line_no <= 0:
        return None
    return function, file_path, line_no


class ErrorLocationResolver:
    """Finds the newest frame of a stack trace that belongs to the application."""

    def __init__(
        self,
        root_marker: str = "app",
        library_markers: Iterable[str] = DEFAULT_LIBRARY_MARKERS,
        root_path: str | None = DEFAULT_APP_ROOT,
    ) -> None:
        self.root_marker = root_marker
        self.library_markers = tuple(m for m in library_markers if m)
        self.root_path = root_path.rstrip("/\\") if root_path else None

    def is_library_path(self, file_path: str) -> bool:
        return any(marker in file_path for marker in self.library_markers)

    def relative_path(self, file_path: str) -> str:
        """Path below ``root_path`` when inside it, else below the first ``root_marker`` segment."""

        if self.root_path:
            for sep in ("/", "\\"):
                if file_path.startswith(self.root_path + sep):
                    return file_path[len(self.root_path) + 1 :]
        if not self.root_marker:
            return file_path
        for sep in ("/", "\\"):
            segment = f"{sep}{self.root_marker}{sep}"
            if file_path.startswith(segment[1:]):
                return file_path[len(segment) - 1 :]
            if segment in file_path:
                return file_path.split(segment, 1)[1]
        return file_path

    def resolve(self, stack_trace: str | None) -> ErrorLocation | None:
        if not stack_trace or not isinstance(stack_trace, str):
            return None

        # First line is the "Kind: message" header.
        for line in stack_trace.splitlines()[1:]:
            frame = parse_frame(line)
            if frame is None:
                continue
            function, file_path, line_no = frame
            if self.is_library_path(file_path):
                continue
            return ErrorLocation(file=self.relative_path(file_path), line=line_no, function=function)

        return None


def _render_frame(frame: traceback.FrameSummary) -> str:
    column = (frame.colno or 0) + 1
    return f"    at {frame.name} ({frame.filename}:{frame.lineno}:{column})"


def format_stack_trace(error: BaseException, skip_files: Iterable[str] = ()) -> str:
    """Render ``error`` as a header line followed by newest-first frames.

    An exception that was never raised has no traceback; the current call
    stack is used instead, minus frames from ``skip_files`` and this module.
    """

    header = f"{error_kind(error)}: {error}"
    if error.__traceback__ is not None:
        frames = list(traceback.extract_tb(error.__traceback__))
    else:
        skipped = {__file__, *skip_files}
        frames = [f for f in traceback.extract_stack() if f.filename not in skipped]

    lines = [header]
    lines.extend(_render_frame(frame) for frame in reversed(frames) if frame.lineno)
    return "\n".join(lines)
