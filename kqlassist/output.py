"""
Result Output Formats

Renders a canonical QueryResult as a rich table, JSON, CSV or TSV, on the
terminal or into a file.
"""

import csv
import io
import json
import logging
from pathlib import Path
from typing import Any, Literal

from rich.console import Console
from rich.table import Table

from kqlassist.models.result import QueryResult, ResultTable

logger = logging.getLogger(__name__)

OutputFormat = Literal["table", "json", "csv", "tsv"]
OUTPUT_FORMATS = ("table", "json", "csv", "tsv")

FILE_EXTENSIONS = {"table": "txt", "json": "json", "csv": "csv", "tsv": "tsv"}
FILE_TABLE_WIDTH = 200


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def drop_empty_columns(result: QueryResult) -> QueryResult:
    """
    Remove columns whose every value is null or blank.

    Tables without rows keep their columns so the header still shows
    what the query returns.
    """
    tables = []
    for table in result.tables:
        if not table.rows:
            tables.append(table)
            continue
        keep = [
            index
            for index in range(len(table.columns))
            if not all(_is_empty(row[index]) for row in table.rows if index < len(row))
        ]
        if len(keep) == len(table.columns):
            tables.append(table)
            continue
        logger.debug(
            f"Hiding {len(table.columns) - len(keep)} empty columns of {table.name}",
            extra={"table": table.name},
        )
        tables.append(
            table.model_copy(
                update={
                    "columns": [table.columns[index] for index in keep],
                    "rows": [[row[index] for index in keep] for row in table.rows],
                }
            )
        )
    return result.model_copy(update={"tables": tables})


def build_rich_table(
    table: ResultTable, max_rows: int | None = None, show_header: bool = True
) -> Table:
    """Build a rich Table for one result table."""
    rich_table = Table(title=table.name, show_header=show_header, header_style="bold cyan")
    for column in table.columns:
        rich_table.add_column(f"{column.name}\n[dim]{column.type}[/dim]")

    rows = table.rows if max_rows is None else table.rows[:max_rows]
    for row in rows:
        rich_table.add_row(*[_cell(value) for value in row])
    if max_rows is not None and table.row_count > max_rows:
        rich_table.caption = f"Showing {max_rows} of {table.row_count} rows"
    return rich_table


def to_json(result: QueryResult) -> str:
    """Serialize as JSON: one object per table with records."""
    payload = {
        "tables": [
            {
                "name": table.name,
                "columns": [column.model_dump() for column in table.columns],
                "rows": table.to_records(),
            }
            for table in result.tables
        ]
    }
    return json.dumps(payload, indent=2, default=str)


def to_delimited(result: QueryResult, delimiter: str = ",", headers: bool = True) -> str:
    """Serialize the primary table as CSV or TSV."""
    table = result.primary_table
    buffer = io.StringIO()
    if table is None:
        return ""
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
    if headers:
        writer.writerow(table.column_names)
    for row in table.rows:
        writer.writerow([_cell(value) for value in row])
    return buffer.getvalue()


def format_result(result: QueryResult, output_format: OutputFormat, headers: bool = True) -> str:
    """Render a result as text for a file; tables are drawn as plain text."""
    if output_format == "json":
        return to_json(result)
    if output_format in ("csv", "tsv"):
        return to_delimited(
            result, delimiter="," if output_format == "csv" else "\t", headers=headers
        )

    console = Console(record=True, width=FILE_TABLE_WIDTH, file=io.StringIO())
    for table in result.tables:
        console.print(build_rich_table(table, show_header=headers))
    return console.export_text()


def resolve_output_path(path: str | Path, output_format: OutputFormat) -> Path:
    """Append the format's extension when the path has none."""
    path = Path(path)
    expected = FILE_EXTENSIONS[output_format]
    if not path.suffix:
        return path.with_name(f"{path.name}.{expected}")
    if path.suffix[1:].lower() != expected:
        logger.warning(
            f"File extension '{path.suffix}' does not match format '{output_format}', keeping it"
        )
    return path


def write_result(
    result: QueryResult,
    path: str | Path,
    output_format: OutputFormat,
    *,
    headers: bool = True,
    encoding: str = "utf-8",
) -> Path:
    """
    Write a result to a file, creating parent directories.

    Returns:
        The path written, with the format's extension added if it had none

    Raises:
        LookupError: Unknown encoding
        UnicodeEncodeError: The result has characters the encoding cannot represent
        OSError: The file could not be written
    """
    target = resolve_output_path(path, output_format)
    text = format_result(result, output_format, headers=headers)
    # Fail on a bad encoding before touching the filesystem
    data = text.encode(encoding)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    logger.info(
        f"Wrote {result.total_rows} rows to {target}",
        extra={"format": output_format, "encoding": encoding},
    )
    return target


def render_result(
    result: QueryResult,
    output_format: OutputFormat,
    console: Console,
    max_rows: int | None = 100,
    headers: bool = True,
) -> None:
    """Print a result in the requested format."""
    if output_format == "json":
        console.print_json(to_json(result))
        return
    if output_format in ("csv", "tsv"):
        text = to_delimited(
            result, delimiter="," if output_format == "csv" else "\t", headers=headers
        )
        console.print(text, end="", markup=False, highlight=False, soft_wrap=True)
        return

    if not result.tables:
        console.print("[dim]Query returned no tables.[/dim]")
        return
    for table in result.tables:
        console.print(build_rich_table(table, max_rows=max_rows, show_header=headers))
