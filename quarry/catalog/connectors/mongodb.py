# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""MongoDB connector for document database support.

Queries are JSON documents rather than SQL:

    {"collection": "users",
     "filter": {"age": {"$gt": 21}},
     "projection": {"name": 1},
     "sort": {"age": -1},
     "skip": 10,
     "limit": 50}

or, for aggregations, {"collection": "users", "pipeline": [...]}.
"""

import json
import logging
import re
from contextlib import contextmanager
from typing import Any, Iterator, Optional
from urllib.parse import quote_plus

from quarry.catalog.connectors.base import (
    DatabaseConnector,
    DatabaseTable,
    QueryResult,
    TableColumn,
    TableSchema,
)
from quarry.core.errors import (
    DataSourceConnectionError,
    QueryExecutionError,
    ValidationError,
)
from quarry.core.models import FetchOptions, FilterCondition, FilterOperator, Provider, SortDirection

logger = logging.getLogger(__name__)

_COMPARISON_OPERATORS = {
    FilterOperator.NOT_EQUALS: "$ne",
    FilterOperator.GREATER_THAN: "$gt",
    FilterOperator.LESS_THAN: "$lt",
    FilterOperator.GREATER_THAN_OR_EQUAL: "$gte",
    FilterOperator.LESS_THAN_OR_EQUAL: "$lte",
}


def infer_field_type(values: list[Any]) -> str:
    """Infer field type from sample values."""
    types_seen = set()
    for val in values:
        if val is None:
            continue
        elif isinstance(val, bool):
            types_seen.add("boolean")
        elif isinstance(val, int):
            types_seen.add("integer")
        elif isinstance(val, float):
            types_seen.add("float")
        elif isinstance(val, str):
            types_seen.add("string")
        elif isinstance(val, list):
            types_seen.add("array")
        elif isinstance(val, dict):
            types_seen.add("object")
        else:
            # ObjectId, datetime, Decimal128, ...
            types_seen.add(type(val).__name__.lower())

    if not types_seen:
        return "null"
    elif len(types_seen) == 1:
        return types_seen.pop()
    else:
        return "mixed"


def extract_fields(doc: dict, prefix: str, field_values: dict[str, list[Any]]) -> None:
    """Collect dotted field paths and their values from a document."""
    for key, value in doc.items():
        path = f"{prefix}.{key}" if prefix else key

        if isinstance(value, dict):
            # Nested object - recurse
            extract_fields(value, path, field_values)
        else:
            field_values.setdefault(path, []).append(value)


def _condition_filter(condition: FilterCondition) -> dict[str, Any]:
    condition.validate()
    column, op, value = condition.column, condition.operator, condition.value

    if op == FilterOperator.EQUALS:
        return {column: value}
    if op in _COMPARISON_OPERATORS:
        return {column: {_COMPARISON_OPERATORS[op]: value}}
    if op == FilterOperator.CONTAINS:
        return {column: {"$regex": re.escape(str(value)), "$options": "i"}}
    if op == FilterOperator.STARTS_WITH:
        return {column: {"$regex": f"^{re.escape(str(value))}", "$options": "i"}}
    if op == FilterOperator.ENDS_WITH:
        return {column: {"$regex": f"{re.escape(str(value))}$", "$options": "i"}}
    if op == FilterOperator.BETWEEN:
        low, high = value
        return {column: {"$gte": low, "$lte": high}}
    if op == FilterOperator.IN:
        return {column: {"$in": list(value)}}
    if op == FilterOperator.NOT_IN:
        return {column: {"$nin": list(value)}}
    if op == FilterOperator.IS_NULL:
        return {column: None}
    if op == FilterOperator.IS_NOT_NULL:
        return {column: {"$ne": None}}
    raise ValidationError(f"Unsupported operator for MongoDB: {op}")


def build_mongo_filter(filters: list[FilterCondition]) -> dict[str, Any]:
    """Translate filter conditions into a MongoDB filter document (AND-ed)."""
    clauses = [_condition_filter(c) for c in filters]
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def build_mongo_query(options: FetchOptions, collection: str) -> dict[str, Any]:
    """JSON query document equivalent to fetch options over one collection."""
    options.validate()
    query: dict[str, Any] = {
        "collection": collection,
        "filter": build_mongo_filter(options.filters),
    }
    if options.columns:
        query["projection"] = {c: 1 for c in options.columns}
    if options.order_by:
        query["sort"] = {
            o.column: -1 if o.direction == SortDirection.DESC else 1
            for o in options.order_by
        }
    if options.offset:
        query["skip"] = options.offset
    if options.limit is not None:
        query["limit"] = options.limit
    return query


def _to_row(doc: Any) -> dict[str, Any]:
    doc = dict(doc)
    # Convert ObjectId to string for serialization
    if "_id" in doc:
        doc["_id"] = str(doc["_id"])
    return doc


class MongoDBConnector(DatabaseConnector):
    """Connector for MongoDB document databases.

    Usage:
        connector = MongoDBConnector(ConnectionConfig(
            connection_string="mongodb://localhost:27017", database="mydb",
        ))
        tables = connector.list_tables()
        result = connector.execute_query({"collection": "users", "filter": {}})
    """

    provider = Provider.MONGODB
    label = "MongoDB"
    driver_module = "pymongo"
    install_hint = "pip install pymongo"

    def __init__(self, config, limiter=None, sample_size: int = 100):
        """
        Args:
            config: Connection settings; database names the target database
            limiter: Optional per-datasource connection limiter
            sample_size: Number of documents sampled for schema inference
        """
        super().__init__(config, limiter)
        self.sample_size = sample_size

    def connection_uri(self) -> str:
        if self.config.connection_string:
            return self.config.connection_string
        credentials = ""
        if self.config.username:
            credentials = quote_plus(self.config.username)
            if self.config.password:
                credentials += f":{quote_plus(self.config.password)}"
            credentials += "@"
        host = self.config.host or "localhost"
        port = self.config.port or 27017
        return f"mongodb://{credentials}{host}:{port}/{self.config.database or ''}"

    @contextmanager
    def client(self) -> Iterator[Any]:
        """Fresh MongoClient, closed on every exit."""
        self.require_driver()
        from pymongo import MongoClient
        from pymongo.errors import ConnectionFailure, PyMongoError

        timeout_ms = self.config.connect_timeout * 1000
        kwargs: dict[str, Any] = {
            "serverSelectionTimeoutMS": timeout_ms,
            "connectTimeoutMS": timeout_ms,
        }
        if self.config.ssl:
            kwargs["tls"] = True
        with self.slot():
            try:
                with MongoClient(self.connection_uri(), **kwargs) as client:
                    yield client
            except ConnectionFailure as e:
                raise DataSourceConnectionError(f"MongoDB connection failed: {e}") from e
            except PyMongoError as e:
                raise QueryExecutionError(f"MongoDB operation failed: {e}") from e

    def _database(self, client):
        # Falls back to the database named in the connection string
        return client.get_database(self.config.database)

    def ping(self) -> None:
        with self.client() as client:
            client.admin.command("ping")

    def list_tables(self) -> list[DatabaseTable]:
        with self.client() as client:
            names = self._database(client).list_collection_names()
        # Collections are treated as tables
        return [DatabaseTable(name=name, type="table") for name in sorted(names)]

    @staticmethod
    def parse_query(query: Any) -> dict[str, Any]:
        """Accept a query document or its JSON text."""
        if isinstance(query, str):
            try:
                query = json.loads(query)
            except json.JSONDecodeError as e:
                raise ValidationError(f"MongoDB query must be a JSON document: {e}") from e
        if not isinstance(query, dict):
            raise ValidationError("MongoDB query must be a JSON object")
        if not query.get("collection"):
            raise ValidationError("MongoDB query requires a 'collection'")
        return query

    def execute_query(
        self,
        query: Any,
        limit: Optional[int] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> QueryResult:
        query_doc = self.parse_query(query)
        logger.debug(f"MongoDB query: {query_doc}")

        with self.client() as client:
            coll = self._database(client)[query_doc["collection"]]
            if query_doc.get("pipeline") is not None:
                pipeline = list(query_doc["pipeline"])
                if limit and not any("$limit" in stage for stage in pipeline):
                    pipeline.append({"$limit": limit})
                docs = [_to_row(doc) for doc in coll.aggregate(pipeline)]
            else:
                cursor = coll.find(query_doc.get("filter") or {}, query_doc.get("projection"))
                if query_doc.get("sort"):
                    cursor = cursor.sort(list(query_doc["sort"].items()))
                if query_doc.get("skip"):
                    cursor = cursor.skip(int(query_doc["skip"]))
                row_limit = query_doc.get("limit", limit)
                if row_limit:
                    cursor = cursor.limit(int(row_limit))
                docs = [_to_row(doc) for doc in cursor]

        columns: list[str] = []
        for doc in docs:
            for key in doc:
                if key not in columns:
                    columns.append(key)
        return QueryResult(columns=columns, rows=docs, row_count=len(docs))

    def get_table_schema(self, table_name: str, schema: Optional[str] = None) -> TableSchema:
        """Infer a collection's fields by sampling documents."""
        with self.client() as client:
            samples = list(self._database(client)[table_name].find().limit(self.sample_size))

        field_values: dict[str, list[Any]] = {}
        for doc in samples:
            extract_fields(doc, "", field_values)

        columns = []
        for path, values in sorted(field_values.items()):
            non_null = [v for v in values if v is not None]
            columns.append(TableColumn(
                name=path,
                type=infer_field_type(values),
                # Missing from some documents counts as nullable
                nullable=len(non_null) < len(samples),
                primary_key=path == "_id",
            ))
        return TableSchema(table_name=table_name, schema=schema, columns=columns)
