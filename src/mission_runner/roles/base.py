from __future__ import annotations

import logging
from pathlib import Path

from mission_runner.models import Role

logger = logging.getLogger(__name__)

BRIEFING_FILE = "WORKING.md"


class RoleProfile:
    role: Role = Role.PM
    fallback_charter: str = "# Role\n\nA mission-control role.\n"

    def __init__(self, agents_dir: Path, briefings_dir: Path) -> None:
        self.agents_dir = agents_dir
        self.briefings_dir = briefings_dir

    @property
    def charter_path(self) -> Path:
        return self.agents_dir / f"{self.role.value}.md"

    @property
    def briefing_path(self) -> Path:
        return self.briefings_dir / self.role.value / BRIEFING_FILE

    def ensure_charter(self) -> bool:
        """Write the default charter when none exists. Returns True if created."""
        if self.charter_path.exists():
            return False
        self.charter_path.parent.mkdir(parents=True, exist_ok=True)
        self.charter_path.write_text(self.fallback_charter.strip() + "\n", encoding="utf-8")
        logger.info("Created missing role charter: %s", self.charter_path)
        return True

    def has_briefing(self) -> bool:
        return self.briefing_path.is_file()
