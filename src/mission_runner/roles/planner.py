from __future__ import annotations

from mission_runner.models import Role
from mission_runner.roles.base import RoleProfile


class PlannerProfile(RoleProfile):
    role = Role.PLANNER
    fallback_charter = """
# Role: Planner

## Mission
Turn requests into clear and testable plans.

## Responsibilities
- Clarify scope and dependencies
- Create measurable acceptance criteria
- Keep tasks aligned with the current request

## Output Standard
Clear plan, risks, and next step definition.
""".strip()
