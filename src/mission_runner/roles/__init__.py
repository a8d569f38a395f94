from __future__ import annotations

from pathlib import Path

from mission_runner.models import Role
from mission_runner.roles.base import RoleProfile
from mission_runner.roles.dev import DevProfile
from mission_runner.roles.mapper import default_roles, required_roles
from mission_runner.roles.planner import PlannerProfile
from mission_runner.roles.pm import PmProfile
from mission_runner.roles.reviewer import ReviewerProfile
from mission_runner.roles.uiux import UiuxProfile

PROFILE_TYPES: tuple[type[RoleProfile], ...] = (
    PlannerProfile,
    DevProfile,
    PmProfile,
    ReviewerProfile,
    UiuxProfile,
)


def build_profiles(agents_dir: Path, briefings_dir: Path) -> dict[Role, RoleProfile]:
    return {
        profile_type.role: profile_type(agents_dir, briefings_dir)
        for profile_type in PROFILE_TYPES
    }


def missing_briefings(profiles: dict[Role, RoleProfile]) -> list[str]:
    """Create absent charters and list roles that still lack a working briefing."""
    missing: list[str] = []
    for role, profile in profiles.items():
        profile.ensure_charter()
        if not profile.has_briefing():
            missing.append(role.value)
    return missing


__all__ = [
    "DevProfile",
    "PROFILE_TYPES",
    "PlannerProfile",
    "PmProfile",
    "ReviewerProfile",
    "RoleProfile",
    "UiuxProfile",
    "build_profiles",
    "default_roles",
    "missing_briefings",
    "required_roles",
]
