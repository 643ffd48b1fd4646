#!/usr/bin/env python
"""
Run one challenge deadline sweep without the worker.

Closes challenges past their submission deadline, archives their leftover
drafts and moves challenges past their evaluation deadline into judging.

Usage:
    python scripts/sweep_deadlines.py
"""

import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.logging import setup_logging  # noqa: E402
from src.workers.jobs import sweep_challenge_deadlines_job  # noqa: E402

if __name__ == "__main__":
    setup_logging()
    report = sweep_challenge_deadlines_job(reschedule=False)
    print(json.dumps(report, indent=2))
