from typing import Any, Mapping

from rich.console import Console
from rich.table import Table


def get_rich_console() -> Console: return Console(stderr=True)


def mapping_table(data: Mapping[str, Any], title: str | None = None) -> Table:
    """Ответ шлюза (плоский словарь) как таблица ключ/значение."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Field")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(str(key), "" if value is None else str(value))
    return table
