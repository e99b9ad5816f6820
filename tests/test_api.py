import time

from fastapi.testclient import TestClient

from runbox.api import RateLimiter, create_app, result_to_wire
from runbox.core.models import CompileError, Completed, InternalError, Rejected, RunError
from runbox.isolation.firejail import SandboxPrefix
from runbox.services.job_service import JobService


def _client(settings):
    svc = JobService(settings, prefix=SandboxPrefix(None))
    return TestClient(create_app(settings, svc))


def test_health(settings):
    r = _client(settings).get("/")

    assert r.status_code == 200
    assert r.json() == {"status": "ok", "concurrency": 0, "queued": 0}


def test_run_python(settings):
    r = _client(settings).post("/run", json={"language": "python", "code": "print('hello', end='')"})

    assert r.status_code == 200
    assert r.json() == {"stdout": "hello", "stderr": "", "exitCode": 0}


def test_run_python_with_stdin(settings):
    body = {"language": "python", "code": "n = int(input())\nprint(n * n, end='')", "stdin": "5"}
    r = _client(settings).post("/run", json=body)

    assert r.json()["stdout"] == "25"


def test_non_string_stdin_is_ignored(settings):
    body = {"language": "python", "code": "import sys; print(repr(sys.stdin.read()), end='')", "stdin": 5}
    r = _client(settings).post("/run", json=body)

    assert r.json()["stdout"] == "''"


def test_run_timeout_is_error(settings):
    settings = settings.model_copy(update={"per_job_timeout_ms": 500})
    r = _client(settings).post("/run", json={"language": "python", "code": "import time; time.sleep(20)"})

    assert r.status_code == 200
    assert r.json() == {"error": "Execution timed out"}


def test_unsupported_language(settings):
    r = _client(settings).post("/run", json={"language": "brainfuck", "code": "+"})

    assert r.status_code == 400
    assert r.json() == {"error": "unsupported language"}


def test_missing_code(settings):
    r = _client(settings).post("/run", json={"language": "python"})

    assert r.status_code == 400
    assert r.json() == {"error": "language and code are required"}


def test_body_that_is_not_an_object(settings):
    r = _client(settings).post("/run", json=["python", "print(1)"])

    assert r.status_code == 400
    assert "error" in r.json()


def test_rate_limit(settings):
    settings = settings.model_copy(update={"rate_limit_max_requests": 2})
    client = _client(settings)

    assert client.get("/").status_code == 200
    assert client.get("/").status_code == 200
    r = client.get("/")
    assert r.status_code == 429
    assert r.json() == {"error": "Too many requests, slow down."}


def test_oversized_body(settings):
    settings = settings.model_copy(update={"max_request_bytes": 100})
    r = _client(settings).post("/run", json={"language": "python", "code": "#" * 500})

    assert r.status_code == 413


def test_oversized_chunked_body_without_length(settings):
    settings = settings.model_copy(update={"max_request_bytes": 100})
    prefix = b'{"language": "python", "code": "'

    def chunks():
        yield prefix
        for _ in range(10):
            yield b"#" * 50
        yield b'"}'

    r = _client(settings).post("/run", content=chunks(), headers={"content-type": "application/json"})

    assert r.status_code == 413
    assert r.json() == {"error": "request body too large"}


def test_chunked_body_under_limit_still_runs(settings):
    body = b'{"language": "python", "code": "print(1, end=\'\')"}'

    def chunks():
        yield body[:10]
        yield body[10:]

    r = _client(settings).post("/run", content=chunks(), headers={"content-type": "application/json"})

    assert r.status_code == 200
    assert r.json()["stdout"] == "1"


def test_rate_limiter_window_expires():
    limiter = RateLimiter(max_requests=1, window_s=0.0)

    assert limiter.is_allowed("a")
    assert limiter.is_allowed("a")


def test_rate_limiter_is_per_client():
    limiter = RateLimiter(max_requests=1, window_s=60)

    assert limiter.is_allowed("a")
    assert limiter.is_allowed("b")
    assert not limiter.is_allowed("a")


def test_wire_shapes():
    assert result_to_wire(Rejected("bad")) == (400, {"error": "bad"})
    assert result_to_wire(CompileError("x.cpp:1: error")) == (200, {"stderr": "x.cpp:1: error"})
    assert result_to_wire(CompileError("Compilation timed out", timed_out=True)) == (
        200,
        {"error": "Compilation timed out"},
    )
    assert result_to_wire(RunError("Execution timed out")) == (200, {"error": "Execution timed out"})
    assert result_to_wire(InternalError("Internal server error: x")) == (
        200,
        {"error": "Internal server error: x"},
    )
    assert result_to_wire(Completed("o", "e", None)) == (
        200,
        {"stdout": "o", "stderr": "e", "exitCode": None},
    )


def test_rate_limiter_forgets_idle_clients():
    limiter = RateLimiter(max_requests=5, window_s=0.05)
    limiter.is_allowed("a")
    limiter.is_allowed("b")
    time.sleep(0.1)

    assert limiter.is_allowed("c")
    assert set(limiter.requests) == {"c"}


def test_rate_limiter_keeps_no_empty_entries():
    limiter = RateLimiter(max_requests=0, window_s=60)

    assert not limiter.is_allowed("a")
    assert limiter.requests == {}
