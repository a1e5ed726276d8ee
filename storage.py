# storage.py
import sqlite3
from datetime import datetime

from models import POLICY_DEFAULTS, Policy, log_event

TRUE_VALUES = ("1", "true", "yes", "on")


class Storage:
    def __init__(self, db_path="plots.db"):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row

        # the CLI edits config while `plotctl run` is reading it
        self.conn.execute("PRAGMA journal_mode=WAL;")
        self.conn.execute("PRAGMA synchronous=NORMAL;")

        self._init_schema()

    def _init_schema(self):
        self.conn.execute("""
        CREATE TABLE IF NOT EXISTS config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """)
        self.conn.commit()

    # ---------------- Config helpers ----------------
    def get_config(self, key, default=None):
        cur = self.conn.cursor()
        cur.execute("SELECT value FROM config WHERE key=?", (key,))
        row = cur.fetchone()
        return row["value"] if row else default

    def set_config(self, key, value):
        now = datetime.now().isoformat()
        self.conn.execute("""
            INSERT INTO config (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
        """, (key, str(value), now))
        self.conn.commit()

    def all_config(self):
        cur = self.conn.cursor()
        cur.execute("SELECT key, value, updated_at FROM config ORDER BY key")
        return cur.fetchall()


def split_dirs(value):
    return tuple(d.strip() for d in value.split(",") if d.strip())


def parse_policy(values):
    """Build a Policy from raw config strings; missing keys take POLICY_DEFAULTS.

    Raises ValueError on malformed numbers.
    """
    raw = dict(POLICY_DEFAULTS)
    raw.update(values)
    parallelism = int(raw["parallelism"])
    stagger_minutes = int(raw["stagger_minutes"])
    min_free_gib = int(raw["min_free_gib"])
    if parallelism < 0 or stagger_minutes < 0 or min_free_gib < 0:
        raise ValueError("parallelism, stagger_minutes and min_free_gib must not be negative")
    return Policy(
        parallelism=parallelism,
        scratch_dirs=split_dirs(raw["scratch_dirs"]),
        dest_dirs=split_dirs(raw["dest_dirs"]),
        fingerprint=raw["fingerprint"].strip(),
        stagger_minutes=stagger_minutes,
        show_log=raw["show_log"].strip().lower() in TRUE_VALUES,
        plotter=raw["plotter"].strip() or POLICY_DEFAULTS["plotter"],
        min_free_gib=min_free_gib,
    )


class PolicySource:
    """Re-reads the policy from the config table on every refresh.

    A bad edit keeps the last good policy in force instead of stopping admission.
    """

    def __init__(self, storage):
        self.storage = storage
        self._policy = None

    def current_policy(self):
        return self._policy

    def refresh(self):
        values = {row["key"]: row["value"] for row in self.storage.all_config()
                  if row["key"] in POLICY_DEFAULTS}
        if not values:
            return self._policy
        try:
            policy = parse_policy(values)
        except ValueError as e:
            log_event(f"Invalid policy config, keeping previous: {e}")
            return self._policy
        if policy != self._policy:
            log_event(f"Policy loaded: parallelism={policy.parallelism}, "
                      f"scratch={list(policy.scratch_dirs)}, dest={list(policy.dest_dirs)}, "
                      f"stagger={policy.stagger_minutes}m")
        self._policy = policy
        return policy
