# SPDX-License-Identifier: AGPL-3.0

from dataclasses import dataclass, field

from rich import get_console
from rich.console import Console
from rich.status import Status


@dataclass(frozen=True, eq=False, order=False, slots=True)
class UI:
    status: Status
    console: Console = field(default_factory=get_console)

    def clear_live(self):
        self.console.clear_live()

    def start_status(self):
        # clear any remaining live display before starting a new instance
        self.clear_live()
        self.status.start()

    def update_status(self, status: str):
        self.status.update(status)

    def stop_status(self):
        self.status.stop()

    def show_probe(self, method: str):
        self.update_status(f"Checking [bold]{method}[/bold]...")


ui: UI = UI(Status(""))
