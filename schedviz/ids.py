from __future__ import annotations

"""
File: schedviz/ids.py
Purpose: Deterministic identifier generation for processes and runs.
"""

import itertools
import uuid


class IdGenerator:
    """Counter + session salt id source; unique for the lifetime of a session."""
    def __init__(self, salt: str = "") -> None:
        self.salt = salt or uuid.uuid4().hex[:6]
        self._counter = itertools.count(1)

    def next_id(self, prefix: str = "process") -> str:
        """Return the next id, e.g. ``process-3f9a1c-7``."""
        return f"{prefix}-{self.salt}-{next(self._counter)}"
