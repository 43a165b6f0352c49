"""portreaper - interactive Textual console."""

import threading
from dataclasses import dataclass, field
from queue import Empty, Queue

import psutil
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from portreaper.discovery import DiscoveryUnavailable
from portreaper.models import PortBinding, TerminationOutcome, TerminationResult
from portreaper.reaper import PortReaper


@dataclass(slots=True, frozen=True)
class BindingRow:
    """A binding decorated with the owning process name."""

    pid: int
    address: str
    name: str

    @property
    def key(self) -> str:
        return f"{self.pid}@{self.address}"


@dataclass(slots=True)
class ReapUpdate:
    """What the background worker found (and killed) on one pass."""

    rows: list[BindingRow]
    results: list[TerminationResult] = field(default_factory=list)
    error: str | None = None


def process_name(pid: int) -> str:
    """Name of ``pid``, or '' when psutil cannot tell."""
    if pid == 0:
        return "System"
    try:
        return psutil.Process(pid).name()
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return ""


def describe_bindings(bindings: list[PortBinding]) -> list[BindingRow]:
    """Turn bindings into unique table rows, looking up each PID's name once."""
    names: dict[int, str] = {}
    rows: dict[str, BindingRow] = {}
    for binding in bindings:
        if binding.pid not in names:
            names[binding.pid] = process_name(binding.pid)
        row = BindingRow(pid=binding.pid, address=binding.local_address, name=names[binding.pid])
        rows.setdefault(row.key, row)
    return list(rows.values())


class ReapWorker:
    """
    Runs discovery and reaping off the UI thread.

    Each pass runs in a daemon thread and pushes a ReapUpdate to the queue.
    A pass requested while another is running is ignored.
    """

    def __init__(self, reaper: PortReaper, port: int, update_queue: Queue[ReapUpdate]) -> None:
        self._reaper = reaper
        self._target_port = port
        self._queue = update_queue
        self._thread: threading.Thread | None = None

    @property
    def is_busy(self) -> bool:
        """Check if a pass is currently running."""
        return self._thread is not None and self._thread.is_alive()

    def refresh(self) -> bool:
        """List the bindings on the port. Returns False if a pass is already running."""
        return self._submit(reap=False)

    def reap(self) -> bool:
        """Kill the processes on the port, then list what is left."""
        return self._submit(reap=True)

    def _submit(self, reap: bool) -> bool:
        if self.is_busy:
            return False
        self._thread = threading.Thread(
            target=self.run_pass,
            args=(reap,),
            daemon=True,
            name="ReapWorker",
        )
        self._thread.start()
        return True

    def run_pass(self, reap: bool) -> ReapUpdate:
        """
        Run one pass synchronously and queue its update.

        Results of a reap are kept even when the rescan after it fails, and
        any failure still produces an update so the UI never waits forever.
        """
        results: list[TerminationResult] = []
        try:
            if reap:
                results = self._reaper.reap(self._target_port)
            rows = describe_bindings(self._reaper.discovery.find_bindings(self._target_port))
            update = ReapUpdate(rows=rows, results=results)
        except DiscoveryUnavailable as e:
            update = ReapUpdate(rows=[], results=results, error=str(e))
        except Exception as e:
            update = ReapUpdate(rows=[], results=results, error=f"{type(e).__name__}: {e}")
        self._queue.put(update)
        return update


class PortHeader(Static):
    """Header widget showing the target port and the last pass."""

    DEFAULT_CSS = """
    PortHeader {
        height: auto;
        min-height: 3;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, port: int, *args, **kwargs) -> None:
        """Initialize PortHeader."""
        super().__init__(*args, **kwargs)
        self._target_port = port
        self._binding_count: int | None = None
        self._last_status = ""

    def on_mount(self) -> None:
        self.update(self._header_text())

    def update_from(self, update: ReapUpdate) -> None:
        """Update the header from a worker update."""
        if update.error is not None:
            self._binding_count = None
            self._last_status = f"[red]Error finding process: {update.error}[/red]"
            if update.results:
                self._last_status += f"\n{summarize_results(update.results)}"
        else:
            self._binding_count = len(update.rows)
            self._last_status = summarize_results(update.results)
        self.update(self._header_text())

    @property
    def last_status(self) -> str:
        return self._last_status

    def _header_text(self) -> str:
        if self._binding_count is None:
            count = "scanning..." if not self._last_status else "unknown"
        elif self._binding_count == 0:
            count = f"No active process on port {self._target_port}."
        else:
            count = f"{self._binding_count} binding(s)"
        lines = [f"Port [b]{self._target_port}[/b]  {count}"]
        if self._last_status:
            lines.append(self._last_status)
        return "\n".join(lines)


def summarize_results(results: list[TerminationResult]) -> str:
    """One-line summary of a reap pass ('' when nothing was attempted)."""
    if not results:
        return ""
    counts: dict[TerminationOutcome, int] = {}
    for result in results:
        counts[result.outcome] = counts.get(result.outcome, 0) + 1
    return ", ".join(f"{outcome.value}: {count}" for outcome, count in counts.items())


class BindingTable(Container):
    """Container for the bindings data table."""

    DEFAULT_CSS = """
    BindingTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize BindingTable."""
        super().__init__(*args, **kwargs)
        self._current_keys: set[str] = set()

    def compose(self) -> ComposeResult:
        """Compose the bindings table."""
        yield DataTable(id="binding-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#binding-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("ADDRESS", key="address", width=24)
        table.add_column("Command", key="name")

    def update_rows(self, rows: list[BindingRow]) -> None:
        """Replace the table contents with ``rows``, touching only what changed."""
        table = self.query_one("#binding-table", DataTable)
        new_keys = {row.key for row in rows}

        for key in self._current_keys - new_keys:
            table.remove_row(key)

        for row in sorted(rows, key=lambda r: (r.pid, r.address)):
            if row.key in self._current_keys:
                table.update_cell(row.key, "name", row.name)
            else:
                table.add_row(str(row.pid), row.address, row.name, key=row.key)

        self._current_keys = new_keys


class ReaperApp(App):
    """Interactive console for one port."""

    TITLE = "portreaper"
    SUB_TITLE = "Free a TCP port"

    CSS = """
    Screen {
        layout: vertical;
    }

    #port-header {
        dock: top;
        height: auto;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "rescan", "Rescan"),
        ("k", "reap", "Kill all"),
    ]

    def __init__(self, reaper: PortReaper, port: int) -> None:
        """Initialize the ReaperApp."""
        super().__init__()
        self._target_port = port
        self._update_queue: Queue[ReapUpdate] = Queue()
        self._reap_worker = ReapWorker(reaper, port, self._update_queue)

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield PortHeader(self._target_port, id="port-header")
        yield BindingTable()
        yield Footer()

    def on_mount(self) -> None:
        """Scan the port once and start polling for worker updates."""
        self._reap_worker.refresh()
        self.set_interval(0.2, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and apply every pending update."""
        while True:
            try:
                update = self._update_queue.get_nowait()
            except Empty:
                break
            self._apply_update(update)

    def _apply_update(self, update: ReapUpdate) -> None:
        self.query_one("#port-header", PortHeader).update_from(update)
        self.query_one(BindingTable).update_rows(update.rows)

        for result in update.results:
            if result.outcome is TerminationOutcome.TERMINATED:
                self.notify(f"Successfully killed {result.pid}.")
            elif result.outcome is TerminationOutcome.NOT_FOUND:
                self.notify(f"PID {result.pid} not found (already exited).")
            else:
                self.notify(f"Could not kill {result.pid}: {result.message}", severity="error")

    def action_rescan(self) -> None:
        """Rescan the port."""
        if not self._reap_worker.refresh():
            self.notify("Busy")

    def action_reap(self) -> None:
        """Kill everything bound to the port."""
        if not self._reap_worker.reap():
            self.notify("Busy")

