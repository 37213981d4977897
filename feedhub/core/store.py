"""
Document store capability used by the services.

A collection exposes get / insert / patch / delete by id plus equality queries
on a named index with an optional strictly-less-than bound on the index sort
attribute. ``DynamoCollection`` maps this onto a DynamoDB table with one GSI per
index; ``MemoryCollection`` keeps documents in process for local runs and tests.
"""
from __future__ import annotations

import copy
import json
import threading
import uuid
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from fastapi import HTTPException

Doc = Dict[str, Any]
Page = Tuple[List[Doc], Optional[Dict[str, Any]]]
IndexSpec = Tuple[str, str]


class DuplicateDocument(Exception):
    def __init__(self, doc_id: str):
        super().__init__(f"document already exists: {doc_id}")
        self.doc_id = doc_id


class Collection(Protocol):
    name: str

    def get(self, doc_id: str) -> Optional[Doc]: ...

    def insert(self, doc: Doc, *, doc_id: Optional[str] = None, unique: bool = False) -> str: ...

    def patch(self, doc_id: str, fields: Dict[str, Any]) -> None: ...

    def delete(self, doc_id: str) -> None: ...

    def query(
        self,
        index: str,
        value: Any,
        *,
        before: Optional[int] = None,
        descending: bool = True,
        limit: Optional[int] = None,
        start_key: Optional[Dict[str, Any]] = None,
    ) -> Page: ...


def new_doc_id() -> str:
    return uuid.uuid4().hex


def iter_index(
    coll: Collection,
    index: str,
    value: Any,
    *,
    before: Optional[int] = None,
    descending: bool = True,
    page_size: int = 100,
) -> Iterator[Doc]:
    start_key = None
    while True:
        items, start_key = coll.query(
            index, value, before=before, descending=descending, limit=page_size, start_key=start_key
        )
        yield from items
        if not start_key:
            return


def count_index(coll: Collection, index: str, value: Any) -> int:
    return sum(1 for _ in iter_index(coll, index, value))


# -----------------------------
# In-memory backend
# -----------------------------
class MemoryCollection:
    def __init__(self, name: str, indexes: Dict[str, IndexSpec]):
        self.name = name
        self.indexes = indexes
        self._docs: Dict[str, Doc] = {}
        self._lock = threading.Lock()

    def get(self, doc_id: str) -> Optional[Doc]:
        with self._lock:
            doc = self._docs.get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def insert(self, doc: Doc, *, doc_id: Optional[str] = None, unique: bool = False) -> str:
        doc_id = doc_id or doc.get("id") or new_doc_id()
        with self._lock:
            if unique and doc_id in self._docs:
                raise DuplicateDocument(doc_id)
            self._docs[doc_id] = {**copy.deepcopy(doc), "id": doc_id}
        return doc_id

    def patch(self, doc_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            doc = self._docs.get(doc_id)
            if doc is None:
                raise HTTPException(404, f"{self.name} document not found")
            for k, v in fields.items():
                if v is None:
                    doc.pop(k, None)
                else:
                    doc[k] = copy.deepcopy(v)

    def delete(self, doc_id: str) -> None:
        with self._lock:
            self._docs.pop(doc_id, None)

    def query(
        self,
        index: str,
        value: Any,
        *,
        before: Optional[int] = None,
        descending: bool = True,
        limit: Optional[int] = None,
        start_key: Optional[Dict[str, Any]] = None,
    ) -> Page:
        part_attr, sort_attr = self.indexes[index]
        with self._lock:
            matches = [
                d for d in self._docs.values()
                if d.get(part_attr) == value and d.get(sort_attr) is not None
            ]
            matches = [copy.deepcopy(d) for d in matches]

        if before is not None:
            matches = [d for d in matches if d[sort_attr] < before]
        matches.sort(key=lambda d: (d[sort_attr], d["id"]), reverse=descending)

        if start_key:
            pivot = (start_key[sort_attr], start_key["id"])
            if descending:
                matches = [d for d in matches if (d[sort_attr], d["id"]) < pivot]
            else:
                matches = [d for d in matches if (d[sort_attr], d["id"]) > pivot]

        if limit is None or len(matches) <= limit:
            return matches, None
        page = matches[:limit]
        last = page[-1]
        return page, {"id": last["id"], sort_attr: last[sort_attr], part_attr: value}


# -----------------------------
# DynamoDB backend
# -----------------------------
def _from_ddb(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_ddb(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_ddb(v) for v in value]
    return value


def _to_ddb(doc: Doc) -> Doc:
    # DynamoDB rejects floats; round-trip through JSON to get Decimals.
    return json.loads(json.dumps(doc), parse_float=Decimal)


def _ddb_error(exc: ClientError) -> HTTPException:
    msg = exc.response.get("Error", {}).get("Message", "unknown")
    return HTTPException(500, f"DynamoDB error: {msg}")


class DynamoCollection:
    def __init__(self, name: str, table: Any, indexes: Dict[str, IndexSpec]):
        self.name = name
        self.table = table
        self.indexes = indexes

    def get(self, doc_id: str) -> Optional[Doc]:
        try:
            resp = self.table.get_item(Key={"id": doc_id}, ConsistentRead=True)
        except ClientError as exc:
            raise _ddb_error(exc) from exc
        item = resp.get("Item")
        return _from_ddb(item) if item else None

    def insert(self, doc: Doc, *, doc_id: Optional[str] = None, unique: bool = False) -> str:
        doc_id = doc_id or doc.get("id") or new_doc_id()
        item = _to_ddb({k: v for k, v in {**doc, "id": doc_id}.items() if v is not None})
        kwargs: Dict[str, Any] = {"Item": item}
        if unique:
            kwargs["ConditionExpression"] = "attribute_not_exists(id)"
        try:
            self.table.put_item(**kwargs)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise DuplicateDocument(doc_id) from exc
            raise _ddb_error(exc) from exc
        return doc_id

    def patch(self, doc_id: str, fields: Dict[str, Any]) -> None:
        sets, removes = [], []
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        for i, (k, v) in enumerate(fields.items()):
            names[f"#f{i}"] = k
            if v is None:
                removes.append(f"#f{i}")
            else:
                sets.append(f"#f{i} = :v{i}")
                values[f":v{i}"] = v
        if not sets and not removes:
            return
        expr = []
        if sets:
            expr.append("SET " + ", ".join(sets))
        if removes:
            expr.append("REMOVE " + ", ".join(removes))
        kwargs: Dict[str, Any] = {
            "Key": {"id": doc_id},
            "UpdateExpression": " ".join(expr),
            "ExpressionAttributeNames": names,
            "ConditionExpression": "attribute_exists(id)",
        }
        if values:
            kwargs["ExpressionAttributeValues"] = _to_ddb(values)
        try:
            self.table.update_item(**kwargs)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise HTTPException(404, f"{self.name} document not found") from exc
            raise _ddb_error(exc) from exc

    def delete(self, doc_id: str) -> None:
        try:
            self.table.delete_item(Key={"id": doc_id})
        except ClientError as exc:
            raise _ddb_error(exc) from exc

    def query(
        self,
        index: str,
        value: Any,
        *,
        before: Optional[int] = None,
        descending: bool = True,
        limit: Optional[int] = None,
        start_key: Optional[Dict[str, Any]] = None,
    ) -> Page:
        part_attr, sort_attr = self.indexes[index]
        cond = Key(part_attr).eq(value)
        if before is not None:
            cond = cond & Key(sort_attr).lt(before)
        kwargs: Dict[str, Any] = {
            "IndexName": index,
            "KeyConditionExpression": cond,
            "ScanIndexForward": not descending,
        }
        if limit is not None:
            kwargs["Limit"] = limit
        if start_key:
            kwargs["ExclusiveStartKey"] = _to_ddb(start_key)
        try:
            resp = self.table.query(**kwargs)
        except ClientError as exc:
            raise _ddb_error(exc) from exc
        items = [_from_ddb(it) for it in resp.get("Items", [])]
        last_key = resp.get("LastEvaluatedKey")
        return items, (_from_ddb(last_key) if last_key else None)
