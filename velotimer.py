import argparse
import logging
from pathlib import Path
from typing import Any, Callable

from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import (
    Button,
    DataTable,
    Digits,
    Footer,
    Header,
    Input,
    Label,
    Static,
    Switch,
    TabbedContent,
    TabPane,
)

from storage import KeyValueDatabase
from timing.format import format_date, format_time
from timing.race import Race, RaceIdFactory
from timing.race_store import RaceStore
from timing.settings import TimerSettings, load_settings, save_settings
from timing.stopwatch import Stopwatch, StopwatchState, wall_clock_ms


class ElapsedDisplay(Digits):
    BORDER_TITLE = "Time"
    elapsed_ms = reactive(0)

    def watch_elapsed_ms(self, elapsed_ms: int) -> None:
        """Called when the elapsed time changes."""
        self.update(format_time(elapsed_ms))


class StopwatchStatusDisplay(Static):
    stopwatch_state: reactive[StopwatchState] = reactive(StopwatchState.READY)  # type: ignore[valid-type]

    def render(self) -> str:
        if self.stopwatch_state == StopwatchState.RUNNING:
            return "RUNNING"
        elif self.stopwatch_state == StopwatchState.STOPPED:
            return "STOPPED"
        return "READY"


class LapListDisplay(Static):
    laps: reactive[list[int]] = reactive([])  # type: ignore[valid-type]

    def render(self) -> str:
        if not self.laps:
            return "No laps yet."
        lines = ["Lap Times:"]
        # Only the latest three laps fit over the viewfinder.
        first_number = max(len(self.laps) - 2, 1)
        for number, lap_time in enumerate(self.laps[-3:], start=first_number):
            lines.append(f"Lap {number}: {format_time(lap_time)}")
        return "\n".join(lines)


class RaceHistoryTable(DataTable[Any]):  # type: ignore[type-arg]
    races: reactive[list[Race]] = reactive([])  # type: ignore[valid-type]

    def watch_races(self, races: list[Race]) -> None:
        self.clear(columns=True)
        self.add_columns("Rider", "Date", "Total Time", "Laps", "Best Lap")
        # Newest race first.
        for race in reversed(races):
            best_split = race.best_split()
            self.add_row(
                race.rider_name,
                format_date(race.end_time),
                format_time(race.total_time),
                len(race.lap_times),
                "" if best_split is None else format_time(best_split),
                key=race.id,
            )


class RaceDetailDisplay(Static):
    race: reactive[Race | None] = reactive(None)  # type: ignore[valid-type]

    def render(self) -> str:
        if self.race is None:
            return "No Races Recorded\nStart timing races to see your history here."
        lines = [
            f"{self.race.rider_name}  {format_date(self.race.end_time)}",
            f"Total: {format_time(self.race.total_time)}",
        ]
        # A single lap is just the total time.
        if len(self.race.lap_times) > 1:
            lines.append("Lap Times:")
            splits = self.race.lap_splits()
            for index, lap_time in enumerate(self.race.lap_times):
                lines.append(
                    f"Lap {index + 1}: {format_time(lap_time)} (+{format_time(splits[index])})"
                )
        return "\n".join(lines)


class ConfirmClearScreen(ModalScreen[bool]):
    """Asks before wiping the whole race history."""

    BINDINGS = [
        Binding("escape", "dismiss(False)", "Cancel"),
    ]

    CSS = """
    #confirm-clear-modal {
        width: 60%;
        height: auto;
        background: $panel;
        border: solid $accent;
        padding: 1 2;
    }

    #confirm-clear-title {
        text-align: center;
        text-style: bold;
        margin-bottom: 1;
    }

    #confirm-clear-buttons {
        height: auto;
        width: 100%;
        align: center middle;
        margin-top: 1;
    }

    Button {
        margin: 0 1;
    }
    """

    def compose(self) -> ComposeResult:
        with Vertical(id="confirm-clear-modal"):
            yield Label("Clear All History", id="confirm-clear-title")
            yield Label(
                "Are you sure you want to clear all race history? "
                "This action cannot be undone."
            )
            with Horizontal(id="confirm-clear-buttons"):
                yield Button("Cancel", variant="primary", id="cancel-btn")
                yield Button("Clear", variant="error", id="confirm-btn")

    @on(Button.Pressed, "#cancel-btn")
    def handle_cancel(self):
        self.dismiss(False)

    @on(Button.Pressed, "#confirm-btn")
    def handle_confirm(self):
        self.dismiss(True)


class Velotimer(App[Any]):  # type: ignore[type-arg]
    TITLE = "Velotimer"
    SUB_TITLE = "Track Cycling Stopwatch"
    CSS = """
    Screen {
        align: center middle;
    }

    #tabbed_content {
        height: 1fr;
        padding: 1 2;
    }

    #viewfinder {
        height: 1fr;
        border: $secondary tall;
        padding: 1;
    }

    #permission_panel {
        height: auto;
        padding: 1;
        border: $error tall;
    }

    ElapsedDisplay {
        padding: 1;
        background: $background;
        color: $foreground;
        width: 1fr;
    }

    StopwatchStatusDisplay {
        padding: 1;
        background: $surface;
        color: $foreground;
        width: 20;
        content-align: center middle;
    }

    #timer_controls {
        height: auto;
        padding: 1;
    }

    #timer_controls Button {
        margin: 0 1;
    }

    RaceHistoryTable {
        height: 1fr;
    }

    RaceDetailDisplay {
        height: auto;
        padding: 1;
        border: $secondary tall;
    }

    .setting-row {
        height: auto;
        padding: 0 1;
    }

    .setting-row Label {
        width: 1fr;
        padding: 1 0;
    }
    """

    BINDINGS = [
        Binding("s", "start_timer", "Start"),
        Binding("e", "stop_timer", "Stop"),
        Binding("r", "reset_timer", "Reset"),
        Binding("l", "record_lap", "Lap"),
        Binding("d", "delete_race", "Delete Race"),
        Binding("c", "clear_history", "Clear History"),
    ]

    def __init__(
        self,
        *,
        settings: TimerSettings,
        config_path: Path,
        db_path: str = "velotimer.db",
        clock: Callable[[], int] = wall_clock_ms,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.settings = settings
        self.config_path = config_path

        logging.info("Velotimer initialized")

        self.db = KeyValueDatabase(db_path)
        self.store = RaceStore(self.db, on_persist_error=self._on_persist_error)
        self.stopwatch = Stopwatch(
            schedule=self._schedule_sampler,
            on_commit=self.store.add_race,
            clock=clock,
            start_gate=lambda: self.settings.camera_permission,
            id_factory=RaceIdFactory.after(race.id for race in self.store.list_races()),
            rider_name=self.settings.display_rider_name(),
        )

    def _schedule_sampler(self, interval: float, callback: Callable[[], None]):
        def sample() -> None:
            callback()
            self.elapsed_display.elapsed_ms = self.stopwatch.elapsed_ms

        return self.set_interval(interval, sample)

    def _on_persist_error(self, error: Exception) -> None:
        self.notify(f"Could not save race history: {error}", severity="warning")

    def compose(self) -> ComposeResult:
        yield Header()
        with TabbedContent(id="tabbed_content"):
            with TabPane("Timer", id="timer_tab"):
                with Vertical(id="permission_panel"):
                    yield Label("Camera Access Required")
                    yield Label("We need camera access for precise timing during races.")
                    yield Button("Grant Permission", variant="primary", id="grant_btn")
                with Vertical(id="viewfinder"):
                    with Horizontal():
                        yield ElapsedDisplay("00:00.00", id="elapsed")
                        yield StopwatchStatusDisplay(id="stopwatch_status")
                    yield LapListDisplay(id="lap_list")
                with Horizontal(id="timer_controls"):
                    yield Button("Start", variant="success", id="start_btn")
                    yield Button("Stop", variant="error", id="stop_btn", disabled=True)
                    yield Button("Reset", id="reset_btn")
                    yield Button("Lap", variant="primary", id="lap_btn", disabled=True)
            with TabPane("History", id="history_tab"):
                yield RaceHistoryTable(id="history_table", cursor_type="row")
                yield RaceDetailDisplay(id="race_detail")
                with Horizontal(id="history_controls"):
                    yield Button("Delete Race", id="delete_btn")
                    yield Button("Clear All", variant="error", id="clear_btn")
            with TabPane("Settings", id="settings_tab"):
                with Horizontal(classes="setting-row"):
                    yield Label("Rider Name")
                    yield Input(
                        value=self.settings.rider_name,
                        placeholder="Leave empty for an automatic name",
                        id="rider_name_input",
                    )
                with Horizontal(classes="setting-row"):
                    yield Label("Sound Effects: ring when starting/stopping timer")
                    yield Switch(value=self.settings.sound_enabled, id="sound_switch")
                with Horizontal(classes="setting-row"):
                    yield Label("Lap Alerts: notify when recording lap times")
                    yield Switch(value=self.settings.lap_notifications, id="lap_switch")
                with Horizontal(classes="setting-row"):
                    yield Label("Delete all recorded races permanently")
                    yield Button("Clear All History", variant="error", id="settings_clear_btn")
                yield Label("Velotimer: stopwatch and lap timing for track cycling")
        yield Footer()

    def on_mount(self) -> None:
        # Held directly: a pushed modal screen would hide them from query_one.
        self.elapsed_display = self.query_one(ElapsedDisplay)
        self.status_display = self.query_one(StopwatchStatusDisplay)
        self.lap_display = self.query_one(LapListDisplay)
        self.history_table = self.query_one(RaceHistoryTable)
        self.race_detail = self.query_one(RaceDetailDisplay)
        self.start_btn = self.query_one("#start_btn", Button)
        self.stop_btn = self.query_one("#stop_btn", Button)
        self.lap_btn = self.query_one("#lap_btn", Button)
        self.refresh_permission()
        self.refresh_timer()
        self.refresh_history()

    def on_unmount(self) -> None:
        self.stopwatch.close()
        self.db.close()

    def refresh_permission(self) -> None:
        granted = self.settings.camera_permission
        self.query_one("#permission_panel").display = not granted
        self.query_one("#viewfinder").display = granted

    def refresh_timer(self) -> None:
        running = self.stopwatch.is_running
        self.elapsed_display.elapsed_ms = self.stopwatch.elapsed_ms
        self.status_display.stopwatch_state = self.stopwatch.state
        self.lap_display.laps = list(self.stopwatch.laps)
        self.start_btn.disabled = running
        self.stop_btn.disabled = not running
        self.lap_btn.disabled = not running

    def refresh_history(self) -> None:
        races = self.store.list_races()
        self.history_table.races = races
        self.race_detail.race = races[-1] if races else None

    def action_start_timer(self) -> None:
        if self.stopwatch.is_running:
            return
        if not self.settings.camera_permission:
            self.notify("Camera access is required to start timing", severity="error")
            return
        self.stopwatch.rider_name = self.settings.display_rider_name()
        self.stopwatch.start()
        if self.settings.sound_enabled:
            self.bell()
        self.refresh_timer()

    def action_stop_timer(self) -> None:
        if not self.stopwatch.is_running:
            return
        race = self.stopwatch.stop()
        if self.settings.sound_enabled:
            self.bell()
        self.refresh_timer()
        if race is not None:
            self.refresh_history()
            self.notify(f"Saved {race.rider_name}: {format_time(race.total_time)}")

    def action_reset_timer(self) -> None:
        self.stopwatch.reset()
        self.refresh_timer()

    def action_record_lap(self) -> None:
        lap_count = len(self.stopwatch.laps)
        self.stopwatch.record_lap()
        if len(self.stopwatch.laps) == lap_count:
            return
        if self.settings.lap_notifications:
            self.notify(f"Lap {len(self.stopwatch.laps)}: {format_time(self.stopwatch.laps[-1])}")
        self.refresh_timer()

    def action_delete_race(self) -> None:
        table = self.history_table
        if table.row_count == 0:
            return
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        if row_key.value is None:
            return
        self.store.delete_race(row_key.value)
        self.refresh_history()

    def action_clear_history(self) -> None:
        if len(self.store) == 0:
            return

        def clear_if_confirmed(confirmed: bool | None) -> None:
            if confirmed:
                self.store.clear_history()
                self.refresh_history()
                self.notify("Race history cleared")

        self.push_screen(ConfirmClearScreen(), clear_if_confirmed)

    def grant_permission(self) -> None:
        self.settings.camera_permission = True
        self.save_config()
        self.refresh_permission()

    def save_config(self) -> None:
        try:
            save_settings(self.config_path, self.settings)
        except Exception as e:
            logging.error(f"Failed to write to {self.config_path}: {e}")
            self.notify(f"Error saving configuration: {e}", severity="error")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "start_btn":
            self.action_start_timer()
        elif button_id == "stop_btn":
            self.action_stop_timer()
        elif button_id == "reset_btn":
            self.action_reset_timer()
        elif button_id == "lap_btn":
            self.action_record_lap()
        elif button_id == "grant_btn":
            self.grant_permission()
        elif button_id == "delete_btn":
            self.action_delete_race()
        elif button_id in ("clear_btn", "settings_clear_btn"):
            self.action_clear_history()

    @on(DataTable.RowHighlighted, "#history_table")
    def show_race_detail(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key.value is None:
            return
        race = self.store.get_race(event.row_key.value)
        if race is not None:
            self.race_detail.race = race

    @on(Input.Submitted, "#rider_name_input")
    def handle_rider_name_submitted(self, event: Input.Submitted) -> None:
        self.settings.rider_name = event.value
        self.save_config()
        self.notify("Rider name updated")

    @on(Switch.Changed, "#sound_switch")
    def handle_sound_changed(self, event: Switch.Changed) -> None:
        self.settings.sound_enabled = event.value
        self.save_config()

    @on(Switch.Changed, "#lap_switch")
    def handle_lap_alerts_changed(self, event: Switch.Changed) -> None:
        self.settings.lap_notifications = event.value
        self.save_config()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Start Velotimer, a stopwatch and lap timer for track cycling."
    )
    parser.add_argument("--db", default="velotimer.db", help="Race history database file")
    parser.add_argument("--config", default="config.json", help="Settings file")
    parser.add_argument("--log-file", default="velotimer.log", help="Log file")
    args = parser.parse_args()

    # Setup logging
    logging.basicConfig(
        filename=args.log_file,
        filemode="a",
        format="%(asctime)s %(levelname)s:%(message)s",
        level=logging.INFO,
    )

    config_path = Path(args.config)
    app = Velotimer(
        settings=load_settings(config_path),
        config_path=config_path,
        db_path=args.db,
    )
    app.run()
