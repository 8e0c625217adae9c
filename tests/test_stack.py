from telemetry_demo.errors import NotFoundError
from telemetry_demo.observability.stack import (
    ErrorLocation,
    ErrorLocationResolver,
    format_stack_trace,
    parse_frame,
)

EXPRESS_TRACE = "\n".join(
    [
        "Error: boom",
        "    at Layer.handle (/srv/node_modules/express/lib/router/layer.js:95:5)",
        "    at next (/srv/node_modules/express/lib/router/route.js:137:13)",
        "    at handler (app/routes/users.js:45:10)",
        "    at main (app/server.js:12:3)",
    ]
)


def test_resolve_skips_dependency_frames() -> None:
    location = ErrorLocationResolver().resolve(EXPRESS_TRACE)

    assert location == ErrorLocation(file="routes/users.js", line=45, function="handler")
    assert location.as_dict() == {"file": "routes/users.js", "line": 45, "function": "handler"}


def test_resolve_returns_none_when_every_frame_is_a_dependency() -> None:
    trace = "\n".join(
        [
            "ValueError: nope",
            "    at decode (/usr/lib/python3/site-packages/json/decoder.py:10:1)",
            "    at load (/opt/venv/lib/python3.12/dist-packages/lib.py:3:1)",
        ]
    )
    assert ErrorLocationResolver().resolve(trace) is None


def test_resolve_handles_malformed_input() -> None:
    resolver = ErrorLocationResolver()

    assert resolver.resolve(None) is None
    assert resolver.resolve("") is None
    assert resolver.resolve("Error: only a header") is None
    assert resolver.resolve("Error: x\n    nothing to see here\n    at broken (file.py:0:1)") is None
    assert resolver.resolve(12345) is None  # type: ignore[arg-type]


def test_resolve_ignores_the_header_line() -> None:
    trace = "at fake (app/header.py:1:1)\n    at real (app/body.py:7:2)"
    assert ErrorLocationResolver().resolve(trace) == ErrorLocation("body.py", 7, "real")


def test_anonymous_frame_and_root_marker_stripping() -> None:
    resolver = ErrorLocationResolver()
    trace = "Error: x\n    at /srv/app/src/app/jobs.py:12:3"

    # Only the first root segment is removed.
    assert resolver.resolve(trace) == ErrorLocation("src/app/jobs.py", 12, "anonymous")


def test_windows_paths_are_made_relative() -> None:
    trace = "Error: x\n    at handler (C:\\work\\app\\routes\\users.py:7:1)"
    assert ErrorLocationResolver().resolve(trace) == ErrorLocation("routes\\users.py", 7, "handler")


def test_custom_root_marker_and_library_markers() -> None:
    resolver = ErrorLocationResolver(root_marker="service", library_markers=("vendor",))
    trace = "\n".join(
        [
            "Error: x",
            "    at dep (/srv/service/vendor/dep.py:1:1)",
            "    at run (/srv/service/jobs/run.py:9:4)",
        ]
    )
    assert resolver.resolve(trace) == ErrorLocation("jobs/run.py", 9, "run")


def test_parse_frame_shapes() -> None:
    assert parse_frame("    at Object.<anonymous> (/a/b.js:1:2)") == ("Object.<anonymous>", "/a/b.js", 1)
    assert parse_frame("    at /a/b.js:3:4") == ("anonymous", "/a/b.js", 3)
    assert parse_frame("Traceback (most recent call last):") is None


def _inner() -> None:
    raise ValueError("bad value")


def _outer() -> None:
    _inner()


def test_format_stack_trace_renders_newest_frame_first() -> None:
    try:
        _outer()
    except ValueError as exc:
        trace = format_stack_trace(exc)

    lines = trace.splitlines()
    assert lines[0] == "ValueError: bad value"
    assert lines[1].startswith("    at _inner (")
    assert lines[2].startswith("    at _outer (")
    assert "test_stack.py:" in lines[1]

    location = ErrorLocationResolver().resolve(trace)
    assert location is not None
    assert location.function == "_inner"
    assert location.file.endswith("test_stack.py")


def test_format_stack_trace_uses_current_stack_for_unraised_errors() -> None:
    trace = format_stack_trace(NotFoundError("User"))

    assert trace.splitlines()[0] == "NotFoundError: User not found"
    location = ErrorLocationResolver().resolve(trace)
    assert location is not None
    assert location.function == "test_format_stack_trace_uses_current_stack_for_unraised_errors"


def test_root_path_takes_precedence_over_root_marker() -> None:
    resolver = ErrorLocationResolver(root_path="/srv/app/")
    trace = "\n".join(
        [
            "Error: x",
            "    at run (/srv/app/telemetry_demo/api/users.py:5:1)",
        ]
    )
    assert resolver.resolve(trace) == ErrorLocation("telemetry_demo/api/users.py", 5, "run")


def test_frames_outside_root_path_fall_back_to_marker() -> None:
    resolver = ErrorLocationResolver(root_path="/opt/service")
    assert resolver.relative_path("/srv/app/jobs/run.py") == "jobs/run.py"
    assert resolver.relative_path("/opt/service-other/x.py") == "/opt/service-other/x.py"
    assert resolver.relative_path("C:\\opt\\svc\\x.py") == "C:\\opt\\svc\\x.py"
    assert ErrorLocationResolver(root_path="C:\\opt\\svc").relative_path("C:\\opt\\svc\\pkg\\x.py") == "pkg\\x.py"


def test_default_root_is_the_project_checkout() -> None:
    try:
        _outer()
    except ValueError as exc:
        trace = format_stack_trace(exc)

    location = ErrorLocationResolver().resolve(trace)
    assert location is not None
    assert location.file == "tests/test_stack.py"
