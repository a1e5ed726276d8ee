# scheduler.py
import threading
from datetime import datetime, timedelta

from models import Snapshot, log_event
from plot import Plot, disk_free, has_space


class Scheduler:
    """Admits plots round-robin over the scratch and destination pools.

    Scratch dirs wrap freely. After a full pass over the destination dirs the
    next admission attempt only resets the cursor and starts a cooldown of
    ``stagger_minutes``; no plot starts in that tick.
    """

    def __init__(self, policy_source):
        self.policy_source = policy_source
        self.active = {}
        self.archive = []
        self.scratch_cursor = 0
        self.dest_cursor = 0
        self.stagger_until = datetime.min
        self._last_id = 0
        self._lock = threading.Lock()

    def tick(self, now=None):
        now = now or datetime.now()
        policy = self.policy_source.refresh()
        if policy is not None and len(self.active) < policy.parallelism:
            self.admit(policy, now)

        show_log = policy.show_log if policy is not None else False
        with self._lock:
            for plot in list(self.active.values()):
                print(plot.render(show_log), end="")
                if plot.is_done():
                    del self.active[plot.id]
                    self.archive.append(plot)
                    log_event(f"Plot {plot.id}: archived ({plot.state})")
            count = len(self.active)
        print(f"{now.strftime('%Y-%m-%d %H:%M:%S')}, {count} Active Plots")

    def _next_id(self, now):
        self._last_id = max(int(now.timestamp()), self._last_id + 1)
        return self._last_id

    def admit(self, policy, now=None):
        now = now or datetime.now()
        with self._lock:
            if not policy.ready:
                return None
            if now < self.stagger_until:
                return None

            # the pools may have shrunk since the last refresh
            self.scratch_cursor %= len(policy.scratch_dirs)
            if self.dest_cursor >= len(policy.dest_dirs):
                self.dest_cursor = 0
                self.stagger_until = now + timedelta(minutes=policy.stagger_minutes)
                log_event(f"Destination rotation complete, staggering until {self.stagger_until.isoformat()}")
                return None

            scratch_dir = policy.scratch_dirs[self.scratch_cursor]
            dest_dir = policy.dest_dirs[self.dest_cursor]
            if policy.min_free_gib > 0 and not has_space(scratch_dir, dest_dir, policy.min_free_gib):
                return None

            plot = Plot(
                id=self._next_id(now),
                scratch_dir=scratch_dir,
                dest_dir=dest_dir,
                fingerprint=policy.fingerprint,
                plotter=policy.plotter,
            )

            self.scratch_cursor = (self.scratch_cursor + 1) % len(policy.scratch_dirs)
            self.dest_cursor += 1
            self.active[plot.id] = plot
            log_event(f"Plot {plot.id}: admitted (scratch={plot.scratch_dir}, dest={plot.dest_dir})")
            self.start(plot)
            return plot

    def start(self, plot):
        threading.Thread(target=plot.run, name=f"plot-{plot.id}", daemon=True).start()

    def snapshot(self):
        policy = self.policy_source.current_policy()
        with self._lock:
            snap = Snapshot(
                active=list(self.active.values()),
                archived=list(self.archive),
                taken_at=datetime.now(),
            )
            if policy is not None:
                snap.dest_dirs = {d: disk_free(d) for d in policy.dest_dirs}
                snap.scratch_dirs = {d: disk_free(d) for d in policy.scratch_dirs}
            return snap

    def find(self, plot_id):
        with self._lock:
            if plot_id in self.active:
                return self.active[plot_id]
            for plot in self.archive:
                if plot.id == plot_id:
                    return plot
        return None

    def serve_forever(self, interval=60.0, stop_event=None):
        stop_event = stop_event or threading.Event()
        while not stop_event.is_set():
            self.tick()
            stop_event.wait(interval)
