"""
Orchestrator Package - Process Coordination Layer.

============================================================
PACKAGE OVERVIEW
============================================================
Startup, shutdown and execution flow of one pipeline process.
The orchestrator has NO business logic; it only wires the
collectors, the stream consumer and the rollup scheduler and
runs them.

============================================================
MODULES
============================================================
- runtime : component wiring, startup checks, role loops
- cli     : argparse entry point used by app.py

============================================================
"""

from orchestrator.runtime import (
    ROLE_ALL,
    ROLE_COLLECTOR,
    ROLE_PROCESSOR,
    ROLE_SCHEDULER,
    ROLES,
    PipelineRuntime,
    build_runtime,
    expand_role,
    run_once,
    run_pipeline,
    startup_checks,
)


__all__ = [
    "ROLE_ALL",
    "ROLE_COLLECTOR",
    "ROLE_PROCESSOR",
    "ROLE_SCHEDULER",
    "ROLES",
    "PipelineRuntime",
    "build_runtime",
    "expand_role",
    "run_once",
    "run_pipeline",
    "startup_checks",
]
