#!/usr/bin/env python3
"""Print a signed JWT for every role, for manual API testing."""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.api.deps import issue_smoke_token  # noqa: E402
from src.core.auth import Role  # noqa: E402

for role in Role:
    token = issue_smoke_token(f"{role.value}-test", role=role, email=f"{role.value}@example.com")
    print(f"{role.value} token:\n{token}\n")
