"""
Result Normalization

Each backend's native response is parsed into a payload model and mapped
to the canonical QueryResult / SchemaInfo shapes by an explicit function.

Canonical type vocabulary:
    string, long, real, datetime, bool, dynamic
Unknown types pass through unchanged.
"""

import json
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kqlassist.models.result import (
    QueryResult,
    ResultColumn,
    ResultTable,
    SchemaColumn,
    SchemaInfo,
    TableSchema,
)

logger = logging.getLogger(__name__)

_TYPE_MAP = {
    # KQL scalar types
    "string": "string",
    "guid": "string",
    "uniqueidentifier": "string",
    "timespan": "string",
    "time": "string",
    "int": "long",
    "long": "long",
    "real": "real",
    "double": "real",
    "decimal": "real",
    "float": "real",
    "datetime": "datetime",
    "date": "datetime",
    "bool": "bool",
    "boolean": "bool",
    "dynamic": "dynamic",
    # .NET names reported by Azure Data Explorer, with or without "System."
    "int32": "long",
    "int64": "long",
    "single": "real",
    "data.sqltypes.sqldecimal": "real",
    "sbyte": "bool",
    "object": "dynamic",
}


def normalize_column_type(raw_type: str | None) -> str:
    """Map a backend type name onto the canonical vocabulary."""
    if not raw_type:
        return "string"
    key = raw_type.strip().lower().removeprefix("system.")
    return _TYPE_MAP.get(key, raw_type)


# ============================================================================
# Application Insights / Log Analytics payloads
# ============================================================================


class MonitorColumn(BaseModel):
    name: str
    type: str | None = None


class MonitorTable(BaseModel):
    name: str = "PrimaryResult"
    columns: list[MonitorColumn] = Field(default_factory=list)
    rows: list[list[Any]] = Field(default_factory=list)


class MonitorErrorDetail(BaseModel):
    code: str | None = None
    message: str | None = None

    model_config = ConfigDict(extra="allow")


class MonitorQueryResponse(BaseModel):
    """Query response shared by the Application Insights and Log Analytics APIs."""

    tables: list[MonitorTable] = Field(default_factory=list)
    error: MonitorErrorDetail | None = None

    model_config = ConfigDict(extra="ignore")


def monitor_to_result(payload: MonitorQueryResponse) -> QueryResult:
    """Map an Application Insights / Log Analytics response."""
    return QueryResult(
        tables=[
            ResultTable(
                name=table.name,
                columns=[
                    ResultColumn(name=column.name, type=normalize_column_type(column.type))
                    for column in table.columns
                ],
                rows=table.rows,
            )
            for table in payload.tables
        ]
    )


def monitor_schema_to_info(result: QueryResult) -> SchemaInfo:
    """
    Map the output of a ``buildschema(pack_all())`` schema query.

    Rows are ``[TableName, Columns]`` where Columns is an object (or its
    JSON text) of column name to type; nested objects are dynamic columns.
    """
    table = result.primary_table
    if table is None:
        return SchemaInfo()

    names = table.column_names
    name_idx = names.index("TableName") if "TableName" in names else 0
    columns_idx = names.index("Columns") if "Columns" in names else 1

    tables: list[TableSchema] = []
    for row in table.rows:
        columns_value = row[columns_idx]
        if isinstance(columns_value, str):
            try:
                columns_value = json.loads(columns_value)
            except json.JSONDecodeError:
                logger.warning(f"Unparseable schema row for table {row[name_idx]}")
                continue
        if not isinstance(columns_value, dict):
            continue
        tables.append(
            TableSchema(
                name=str(row[name_idx]),
                columns=[
                    SchemaColumn(
                        name=column_name,
                        type="dynamic"
                        if isinstance(column_type, (dict, list))
                        else normalize_column_type(str(column_type)),
                    )
                    for column_name, column_type in columns_value.items()
                ],
            )
        )
    return SchemaInfo(tables=tables)


# ============================================================================
# Azure Data Explorer payloads (v1 REST)
# ============================================================================


class KustoColumn(BaseModel):
    ColumnName: str
    DataType: str | None = None
    ColumnType: str | None = None


class KustoTable(BaseModel):
    TableName: str = "Table_0"
    Columns: list[KustoColumn] = Field(default_factory=list)
    Rows: list[list[Any]] = Field(default_factory=list)


class KustoQueryResponse(BaseModel):
    """Azure Data Explorer v1 query/management response."""

    Tables: list[KustoTable] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


def _kusto_column(column: KustoColumn) -> ResultColumn:
    return ResultColumn(
        name=column.ColumnName,
        type=normalize_column_type(column.ColumnType or column.DataType),
    )


def _kusto_table(table: KustoTable, name: str | None = None) -> ResultTable:
    return ResultTable(
        name=name or table.TableName,
        columns=[_kusto_column(column) for column in table.Columns],
        rows=table.Rows,
    )


def kusto_to_result(payload: KustoQueryResponse) -> QueryResult:
    """
    Map an Azure Data Explorer v1 response.

    Query responses end with a table of contents naming the result tables;
    the metadata tables it lists are dropped. Without one (management
    commands) only the first table is kept.
    """
    if not payload.Tables:
        return QueryResult()

    toc = payload.Tables[-1] if len(payload.Tables) > 1 else None
    toc_names = [column.ColumnName for column in toc.Columns] if toc else []
    if toc is not None and {"Ordinal", "Kind", "Name"} <= set(toc_names):
        ordinal_idx = toc_names.index("Ordinal")
        kind_idx = toc_names.index("Kind")
        name_idx = toc_names.index("Name")
        tables = []
        for entry in toc.Rows:
            ordinal = int(entry[ordinal_idx])
            if entry[kind_idx] == "QueryResult" and ordinal < len(payload.Tables) - 1:
                tables.append(_kusto_table(payload.Tables[ordinal], name=entry[name_idx]))
        if tables:
            return QueryResult(tables=tables)

    return QueryResult(tables=[_kusto_table(payload.Tables[0])])


def kusto_schema_to_info(result: QueryResult) -> SchemaInfo:
    """Map rows of ``TableName, ColumnName, ColumnType`` into SchemaInfo."""
    table = result.primary_table
    if table is None:
        return SchemaInfo()

    names = table.column_names
    table_idx = names.index("TableName")
    column_idx = names.index("ColumnName")
    type_idx = names.index("ColumnType")

    grouped: dict[str, list[SchemaColumn]] = {}
    for row in table.rows:
        if not row[column_idx]:
            continue
        grouped.setdefault(str(row[table_idx]), []).append(
            SchemaColumn(name=str(row[column_idx]), type=normalize_column_type(row[type_idx]))
        )
    return SchemaInfo(
        tables=[TableSchema(name=name, columns=columns) for name, columns in grouped.items()]
    )
