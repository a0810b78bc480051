"""
Query Result Models

Canonical, backend-independent shapes for query results, schema
information, and connection checks.
"""

import json
from typing import Any

from pydantic import BaseModel, Field


class ResultColumn(BaseModel):
    """Column descriptor in the canonical type vocabulary."""

    name: str = Field(..., description="Column name")
    type: str = Field(
        default="string",
        description="Normalized type (string, long, real, datetime, bool, dynamic, or passthrough)",
    )


class ResultTable(BaseModel):
    """One table of a query result."""

    name: str = Field(default="PrimaryResult", description="Table name")
    columns: list[ResultColumn] = Field(default_factory=list)
    rows: list[list[Any]] = Field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_records(self) -> list[dict[str, Any]]:
        """Return rows as column-keyed dicts."""
        names = self.column_names
        return [dict(zip(names, row)) for row in self.rows]


class QueryResult(BaseModel):
    """Canonical result of an executed query."""

    tables: list[ResultTable] = Field(default_factory=list)

    @property
    def primary_table(self) -> ResultTable | None:
        """First table of the result, which every backend treats as primary."""
        return self.tables[0] if self.tables else None

    @property
    def total_rows(self) -> int:
        return sum(table.row_count for table in self.tables)


class SchemaColumn(BaseModel):
    """Column entry of a schema table."""

    name: str
    type: str = "string"


class TableSchema(BaseModel):
    """Schema of one backend table."""

    name: str
    columns: list[SchemaColumn] = Field(default_factory=list)


class SchemaInfo(BaseModel):
    """Backend schema as discovered by a connector."""

    tables: list[TableSchema] = Field(default_factory=list)

    def to_prompt_hint(self, max_tables: int = 50) -> str:
        """Serialize the schema as the JSON hint passed to generation."""
        payload = {
            "tables": [
                {
                    "name": table.name,
                    "columns": [
                        {"name": column.name, "type": column.type}
                        for column in table.columns
                    ],
                }
                for table in self.tables[:max_tables]
            ]
        }
        return json.dumps(payload, indent=2)


class ConnectionCheck(BaseModel):
    """Outcome of a connection validation."""

    is_valid: bool
    error: str | None = None
