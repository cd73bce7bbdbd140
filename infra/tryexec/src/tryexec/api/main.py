"""
FastAPI application for the workspace run service.

This module configures logging, builds the pipeline (toolchain, sandbox,
completion provider) from the environment configuration, registers the
workspace endpoints and maps pipeline errors to HTTP statuses:

* malformed payloads and invalid cursor positions answer 400;
* an infrastructure timeout (compilation or host startup too slow) answers
  504, because the service failed to respond in time;
* a user-code timeout answers 417, because the submitted program did not
  finish in time.  The body still carries whatever output was captured;
* everything else answers 200 with ``Succeeded`` reflecting the run.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from ..clock import SystemClock
from ..completion import CompletionProvider
from ..config import Config
from ..errors import (
    ClientError,
    InfrastructureTimeout,
    MalformedRequest,
    SandboxError,
    UserCodeTimeout,
)
from ..models import (
    CompletionItemModel,
    CompletionResultModel,
    DiagnosticModel,
    DiagnosticsResultModel,
    InspectResultModel,
    RunResultModel,
)
from ..sandbox import ExecutionSandbox, RunBudget, RunResult
from ..toolchain import PythonToolchain
from ..workspace import normalize


logger = logging.getLogger("tryexec")

if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("[tryexec] %(levelname)s - %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


config = Config.from_env()

logger.setLevel(config.log_level)

logger.info(
    "Loaded config: work_path=%s, python=%s, infrastructure_timeout_ms=%s, user_code_timeout_ms=%s",
    config.work_path,
    config.python,
    config.infrastructure_timeout_ms,
    config.user_code_timeout_ms,
)

WORK_DIR = Path(config.work_path)
WORK_DIR.mkdir(parents=True, exist_ok=True)

TIMEOUT_HEADER = "Timeout"
USER_CODE_TIMEOUT_HEADER = "User-Code-Timeout"

toolchain = PythonToolchain(python=config.python, max_output_chars=config.max_output_chars)
sandbox = ExecutionSandbox(
    toolchain,
    clock=SystemClock(),
    work_dir=WORK_DIR,
    default_budget=RunBudget.from_milliseconds(
        config.infrastructure_timeout_ms, config.user_code_timeout_ms
    ),
    poll_interval=config.poll_interval_ms / 1000.0,
)
completions = CompletionProvider(toolchain)


app = FastAPI(title="Workspace Run Service", version="0.1.0")


@app.middleware("http")
async def log_requests(request, call_next):
    """Log every request and the status it was answered with."""
    path = request.url.path
    method = request.method
    client = getattr(request.client, "host", "unknown")

    logger.info("Incoming request: %s %s from %s", method, path, client)
    response = await call_next(request)
    logger.info("Response: %s %s -> %s", method, path, response.status_code)
    return response


@app.exception_handler(ClientError)
async def client_error(request: Request, exc: ClientError) -> JSONResponse:
    logger.warning("Rejected %s: %s", request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(InfrastructureTimeout)
async def infrastructure_timeout(request: Request, exc: InfrastructureTimeout) -> JSONResponse:
    return JSONResponse(status_code=504, content={"detail": str(exc)})


@app.exception_handler(UserCodeTimeout)
async def user_code_timeout(request: Request, exc: UserCodeTimeout) -> JSONResponse:
    body = RunResultModel(succeeded=False, output=exc.output, exception=str(exc))
    return JSONResponse(status_code=417, content=body.model_dump(by_alias=True))


@app.exception_handler(SandboxError)
async def sandbox_error(request: Request, exc: SandboxError) -> JSONResponse:
    logger.error("Sandbox failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Execution error"})


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def _timeout_header(request: Request, name: str, default_ms: int) -> int:
    value = request.headers.get(name)
    if value is None:
        return default_ms
    try:
        timeout_ms = int(float(value))
    except (ValueError, OverflowError):
        raise MalformedRequest(f"Invalid {name} header: {value!r}")
    if timeout_ms <= 0 or timeout_ms > config.max_timeout_ms:
        raise MalformedRequest(f"{name} must be between 1 and {config.max_timeout_ms} ms")
    return timeout_ms


def _budget(request: Request) -> RunBudget:
    return RunBudget.from_milliseconds(
        _timeout_header(request, TIMEOUT_HEADER, config.infrastructure_timeout_ms),
        _timeout_header(request, USER_CODE_TIMEOUT_HEADER, config.user_code_timeout_ms),
    )


def _diagnostic_models(diagnostics) -> list:
    return [
        DiagnosticModel(
            start=d.start,
            end=d.end,
            message=d.message,
            id=d.id,
            severity=d.severity,
            buffer_id=d.buffer_id,
        )
        for d in diagnostics
    ]


def _run_result_model(result: RunResult) -> RunResultModel:
    return RunResultModel(
        succeeded=result.succeeded,
        output=result.output,
        exception=result.exception,
        return_value=result.return_value,
        diagnostics=_diagnostic_models(result.diagnostics),
    )


@app.get("/health")
async def health() -> Dict[str, str]:
    """Return a simple health check response."""
    return {"status": "ok"}


@app.post("/workspace/run", response_model=RunResultModel)
async def run_workspace(request: Request) -> RunResultModel:
    """Compile and run a buffer, source snippet or workspace."""
    workspace = normalize(await request.body())
    budget = _budget(request)
    logger.info(
        "[/workspace/run] type=%s, buffers=%d, files=%d, budget=%s",
        workspace.workspace_type,
        len(workspace.buffers),
        len(workspace.files),
        budget,
    )
    result = await run_in_threadpool(sandbox.run, workspace, budget)
    return _run_result_model(result)


@app.post("/workspace/diagnostics", response_model=DiagnosticsResultModel)
async def workspace_diagnostics(request: Request) -> DiagnosticsResultModel:
    """Compile without running and report diagnostics."""
    workspace = normalize(await request.body())
    diagnostics = await run_in_threadpool(sandbox.diagnose, workspace, _budget(request))
    return DiagnosticsResultModel(diagnostics=_diagnostic_models(diagnostics))


@app.post("/workspace/completion", response_model=CompletionResultModel)
async def workspace_completion(request: Request) -> CompletionResultModel:
    """Return completion items at the entry buffer's cursor position."""
    workspace = normalize(await request.body())
    result = await run_in_threadpool(completions.complete, workspace)
    return CompletionResultModel(
        items=[
            CompletionItemModel(
                display_text=item.display_text,
                kind=item.kind,
                insert_text=item.insert_text,
                documentation=item.documentation,
            )
            for item in result.items
        ]
    )


@app.post("/workspace/inspect", response_model=InspectResultModel)
async def workspace_inspect(request: Request) -> InspectResultModel:
    """Describe the symbol under the cursor, shaped like a Jupyter inspect reply."""
    workspace = normalize(await request.body())
    found = await run_in_threadpool(completions.inspect, workspace)
    if found is None:
        return InspectResultModel(status="ok", found=False, source=workspace.entry_buffer.content)
    text = found.name + (found.signature or "")
    if found.documentation:
        text += "\n\n" + found.documentation
    return InspectResultModel(
        status="ok",
        found=True,
        source=workspace.entry_buffer.content,
        data={"text/plain": text},
        metadata={"kind": found.kind},
    )
