# models.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

def log_event(message):
    now = datetime.now().isoformat()
    print(f"[{now}] {message}")


RUNNING = "running"
ERRORED = "errored"
FINISHED = "finished"
TERMINAL_STATES = (ERRORED, FINISHED)

# config table keys understood by PolicySource, with their defaults
POLICY_DEFAULTS = {
    "parallelism": "1",
    "scratch_dirs": "",
    "dest_dirs": "",
    "fingerprint": "",
    "stagger_minutes": "0",
    "show_log": "false",
    "plotter": "chia",
    "min_free_gib": "360",
}


@dataclass(frozen=True)
class Policy:
    parallelism: int
    scratch_dirs: Tuple[str, ...]
    dest_dirs: Tuple[str, ...]
    fingerprint: str = ""
    stagger_minutes: int = 0
    show_log: bool = False
    plotter: str = "chia"
    min_free_gib: int = 360  # 0 disables the free space check

    @property
    def ready(self) -> bool:
        return bool(self.scratch_dirs) and bool(self.dest_dirs)


@dataclass
class Snapshot:
    active: List = field(default_factory=list)
    archived: List = field(default_factory=list)
    dest_dirs: Dict[str, int] = field(default_factory=dict)
    scratch_dirs: Dict[str, int] = field(default_factory=dict)
    taken_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "actives": [p.to_dict() for p in self.active],
            "archived": [p.to_dict() for p in self.archived],
            "dest_dirs": dict(self.dest_dirs),
            "scratch_dirs": dict(self.scratch_dirs),
            "taken_at": self.taken_at.isoformat() if self.taken_at else None,
        }
