from __future__ import annotations

from mission_runner.models import Role
from mission_runner.roles.base import RoleProfile


class DevProfile(RoleProfile):
    role = Role.DEV
    fallback_charter = """
# Role: Developer

## Mission
Implement the active plan with safe, minimal changes.

## Responsibilities
- Deliver working code changes
- Keep context and acceptance criteria in sync
- Avoid unnecessary drift from plan

## Output Standard
Working implementation + tests + concise handoff notes.
""".strip()
