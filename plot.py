# plot.py
import shutil
import subprocess
import threading
from collections import deque
from datetime import datetime

from models import ERRORED, FINISHED, RUNNING, TERMINAL_STATES, log_event

GIB = 1024 ** 3
TAIL_SIZE = 10
PHASE_PREFIX = "Starting phase "
ID_PREFIX = "ID: "
# seconds to let readers drain after the plotter exits; children may hold the pipes open
READER_GRACE = 1.0

STATE_LABELS = {RUNNING: "Running", ERRORED: "Errored", FINISHED: "Finished"}


def disk_free(path):
    """Free bytes on the filesystem holding path, 0 if it cannot be read."""
    try:
        return shutil.disk_usage(path).free
    except OSError as e:
        log_event(f"Cannot read disk usage of [{path}]: {e}")
        return 0


def has_space(scratch_dir, dest_dir, min_free_gib=360):
    """False, naming the short side, if either dir has less than min_free_gib free."""
    threshold = min_free_gib * GIB
    scratch = disk_free(scratch_dir)
    if scratch < threshold:
        log_event(f"Not enough scratch directory space [{scratch_dir}]: {scratch // GIB}GB")
        return False
    dest = disk_free(dest_dir)
    if dest < threshold:
        log_event(f"Not enough destination directory space [{dest_dir}]: {dest // GIB}GB")
        return False
    return True


class Plot:
    def __init__(self, id, scratch_dir, dest_dir, fingerprint="", plotter="chia"):
        self.id = id
        self.scratch_dir = scratch_dir
        self.dest_dir = dest_dir
        self.fingerprint = fingerprint
        self.plotter = plotter
        self.start_time = datetime.now()
        self.end_time = None
        self.phase = "NA"
        self.plot_id = None
        self.tail = deque(maxlen=TAIL_SIZE)
        self.state = RUNNING
        self._lock = threading.Lock()

    def build_command(self):
        return [
            self.plotter, "plots", "create", "-k32", "-n1", "-b6000", "-u128",
            "-t" + self.scratch_dir,
            "-d" + self.dest_dir,
            "-a" + self.fingerprint,
        ]

    def is_done(self):
        with self._lock:
            return self.state in TERMINAL_STATES

    def _finish(self, state):
        with self._lock:
            self.state = state
            self.end_time = datetime.now()

    def run(self):
        """Run the plotter to completion. Failures end up in state, never raised."""
        with self._lock:
            self.state = RUNNING
            self.start_time = datetime.now()
        try:
            proc = subprocess.Popen(
                self.build_command(),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except (OSError, ValueError) as e:
            log_event(f"Plot {self.id}: failed to start plotting: {e}")
            self._finish(ERRORED)
            return

        readers = [
            threading.Thread(target=self.process_logs, args=(stream,),
                             name=f"plot-{self.id}-{name}", daemon=True)
            for name, stream in (("stdout", proc.stdout), ("stderr", proc.stderr))
        ]
        for t in readers:
            t.start()
        exit_code = proc.wait()
        for t in readers:
            t.join(READER_GRACE)

        if exit_code != 0:
            log_event(f"Plot {self.id}: plotting exited with error (exit_code={exit_code})")
            self._finish(ERRORED)
        else:
            log_event(f"Plot {self.id}: running → finished")
            self._finish(FINISHED)

    def process_logs(self, stream):
        try:
            for line in stream:
                self.add_line(line)
        except (OSError, ValueError):
            # a closed pipe ends the stream like EOF does
            pass
        finally:
            stream.close()

    def add_line(self, line):
        with self._lock:
            if line.startswith(PHASE_PREFIX):
                self.phase = line[15:18]
            if line.startswith(ID_PREFIX):
                self.plot_id = line[4:].rstrip("\r\n")
            self.tail.append(line.rstrip("\r\n"))

    def _duration(self):
        end = self.end_time or datetime.now()
        return end - self.start_time

    def render(self, show_log=False):
        with self._lock:
            s = (f"Plot [{self.plot_id or '-'}] - {STATE_LABELS.get(self.state, 'Unknown')}, "
                 f"Phase: {self.phase}, "
                 f"Start Time: {self.start_time.strftime('%Y-%m-%d %H:%M:%S')}, "
                 f"Duration: {self._duration()}, "
                 f"Tmp Dir: {self.scratch_dir}, Dst Dir: {self.dest_dir}\n")
            if show_log:
                for line in self.tail:
                    s += f"\t{line}\n"
            return s

    def check_space(self, min_free_gib=360):
        return has_space(self.scratch_dir, self.dest_dir, min_free_gib)

    def to_dict(self):
        with self._lock:
            return {
                "id": self.id,
                "plot_id": self.plot_id,
                "start_time": self.start_time.isoformat(),
                "end_time": self.end_time.isoformat() if self.end_time else None,
                "duration_seconds": round(self._duration().total_seconds(), 3),
                "scratch_dir": self.scratch_dir,
                "dest_dir": self.dest_dir,
                "fingerprint": self.fingerprint,
                "phase": self.phase,
                "tail": list(self.tail),
                "state": self.state,
            }
