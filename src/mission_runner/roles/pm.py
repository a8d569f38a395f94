from __future__ import annotations

from mission_runner.models import Role
from mission_runner.roles.base import RoleProfile


class PmProfile(RoleProfile):
    role = Role.PM
    fallback_charter = """
# Role: PM (Client Interface)

## Mission
Coordinate planning, development, review, and final closure.

## Responsibilities
- Track active task state
- Keep decision log and ETA current
- Request missing input explicitly

## Status Cadence
- Update with: Done / In Progress / Next / ETA / Questions

## Output Standard
Concise, actionable updates for the requester.
""".strip()
