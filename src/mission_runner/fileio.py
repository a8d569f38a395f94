from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path


def write_atomic(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` through a sibling temp file.

    Readers see either the old or the new content. Raises ``OSError``; the
    temp file is removed on failure.
    """
    temp_path: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}-",
            delete=False,
        ) as handle:
            temp_path = handle.name
            handle.write(text)
        os.replace(temp_path, path)
    except OSError:
        if temp_path is not None:
            with contextlib.suppress(OSError):
                os.unlink(temp_path)
        raise
