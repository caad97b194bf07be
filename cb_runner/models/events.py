"""Structured events for progress narration."""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class RunEvent:
    """A structured event emitted while the matrix runs."""

    session_id: str
    state: str
    status: str  # running | done | failed | skipped
    category: str = ""
    case: str = ""
    strategy: str = ""
    message: str = ""
    timestamp: float = field(default_factory=time.time)
    level: str = "INFO"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
