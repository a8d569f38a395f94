from __future__ import annotations

from mission_runner.models import Role
from mission_runner.roles.base import RoleProfile


class UiuxProfile(RoleProfile):
    role = Role.UIUX
    fallback_charter = """
# Role: UI/UX

## Mission
Protect clarity and usability of user-facing workflows.

## Responsibilities
- Validate user flows and interaction quality
- Suggest measurable UX improvements
- Ensure output is usable and coherent

## Output Standard
Actionable UX feedback with rationale.
""".strip()
