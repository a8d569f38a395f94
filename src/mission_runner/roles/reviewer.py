from __future__ import annotations

from mission_runner.models import Role
from mission_runner.roles.base import RoleProfile


class ReviewerProfile(RoleProfile):
    role = Role.REVIEWER
    fallback_charter = """
# Role: Reviewer

## Mission
Keep quality and risk under control.

## Responsibilities
- Validate against scope and acceptance criteria
- Check for regressions and test gaps
- Flag risks and required fixes

## Output Standard
Clear, concise PASS / requested changes.
""".strip()
