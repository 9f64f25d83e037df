#!/usr/bin/env python3
"""
Traffic Ingestion Pipeline - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
This is the ONE executable entry point for every process role.

- Compatible with PM2 process management
- Can be started, stopped, and restarted safely
- SIGINT/SIGTERM stop every loop at its next cycle

============================================================
USAGE
============================================================
Direct execution:
    python app.py --role all

One process per role:
    python app.py --role collector
    python app.py --role processor
    python app.py --role scheduler

With PM2:
    pm2 start app.py --interpreter python --name traffic-processor -- --role processor

============================================================
"""

import sys

from orchestrator.cli import main


if __name__ == "__main__":
    sys.exit(main())
