"""Configuration loader.

The service reads its configuration from environment variables so the same
container image can run in several contexts (docker-compose, Cloud Run,
etc.).  Reasonable defaults are provided so that local development works out
of the box.

Environment variables:

``TRYEXEC_WORK_PATH``
    Base directory under which each run gets its own temporary run
    directory.  Defaults to ``/tmp/tryexec``.

``TRYEXEC_PYTHON``
    Interpreter used for the execution host.  It must be the same Python
    version as the service, because compiled code objects are handed over in
    ``marshal`` format.  Defaults to the interpreter running the service.

``TRYEXEC_INFRASTRUCTURE_TIMEOUT_MS``
    Budget for compilation and execution-host startup.  Expiry answers 504.
    Default is 5000.

``TRYEXEC_USER_CODE_TIMEOUT_MS``
    Budget for the submitted program's own run time.  Expiry answers 417.
    Default is 15000.

``TRYEXEC_MAX_TIMEOUT_MS``
    Upper bound for per-request overrides sent in the ``Timeout`` and
    ``User-Code-Timeout`` headers.  Default is 60000.

``TRYEXEC_MAX_OUTPUT_CHARS``
    Captured output beyond this many characters is dropped.  Default is 100000.

``TRYEXEC_POLL_INTERVAL_MS``
    How often a running program is checked against its deadline.  Default is 20.

``TRYEXEC_LOG_LEVEL``
    Level of the ``tryexec`` logger.  Defaults to ``INFO``.

``PORT``
    The port on which the API server listens.  Cloud Run sets this; otherwise
    defaults to 8080.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass


@dataclass
class Config:
    """Centralised configuration object."""

    work_path: str
    python: str
    infrastructure_timeout_ms: int
    user_code_timeout_ms: int
    max_timeout_ms: int
    max_output_chars: int
    poll_interval_ms: int
    log_level: str
    port: int

    @classmethod
    def load(cls) -> "Config":
        work_path = os.getenv("TRYEXEC_WORK_PATH", "/tmp/tryexec")
        python = os.getenv("TRYEXEC_PYTHON") or sys.executable

        def _int_var(name: str, default: int) -> int:
            val = os.getenv(name)
            if val is None:
                return default
            try:
                parsed = int(val)
            except ValueError:
                raise ValueError(f"Invalid integer for {name}: {val}")
            if parsed <= 0:
                raise ValueError(f"{name} must be positive, got {parsed}")
            return parsed

        infrastructure_timeout_ms = _int_var("TRYEXEC_INFRASTRUCTURE_TIMEOUT_MS", 5000)
        user_code_timeout_ms = _int_var("TRYEXEC_USER_CODE_TIMEOUT_MS", 15000)
        max_timeout_ms = _int_var("TRYEXEC_MAX_TIMEOUT_MS", 60000)
        max_output_chars = _int_var("TRYEXEC_MAX_OUTPUT_CHARS", 100_000)
        poll_interval_ms = _int_var("TRYEXEC_POLL_INTERVAL_MS", 20)
        port = _int_var("PORT", 8080)

        log_level = os.getenv("TRYEXEC_LOG_LEVEL", "INFO").upper()
        if log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid TRYEXEC_LOG_LEVEL: {log_level}")

        return cls(
            work_path=work_path,
            python=python,
            infrastructure_timeout_ms=infrastructure_timeout_ms,
            user_code_timeout_ms=user_code_timeout_ms,
            max_timeout_ms=max_timeout_ms,
            max_output_chars=max_output_chars,
            poll_interval_ms=poll_interval_ms,
            log_level=log_level,
            port=port,
        )

    @classmethod
    def from_env(cls) -> "Config":
        """
        Alternate constructor used by the API to load configuration.

        This wrapper calls :meth:`load` to construct the configuration.
        It exists to provide a more intuitive name when consumed in
        application code.
        """
        return cls.load()
