"""
Collection schema and index descriptors

A row cell is never stored in a per-type container: each value is coerced
on its own by the declared ``DataType`` of its field (``coerce_value``),
so a row stays a plain ``dict`` from field name to wire-ready value.
"""

import math
from typing import Any, Callable, Dict, Iterable, List, Optional

import numpy as np
from pydantic import BaseModel, Field

from vdbclient.exceptions import (
    DimensionMismatchError,
    FieldNotFoundError,
    SchemaError,
    SchemaMismatchError,
    TransientError,
    UnsupportedIndexTypeError,
)
from vdbclient.protocol import DataType, IndexParam, IndexType, MetricType

_INT_RANGES = {
    DataType.INT8: (-(2 ** 7), 2 ** 7 - 1),
    DataType.INT16: (-(2 ** 15), 2 ** 15 - 1),
    DataType.INT32: (-(2 ** 31), 2 ** 31 - 1),
    DataType.INT64: (-(2 ** 63), 2 ** 63 - 1),
}


class FieldSchema(BaseModel):
    """One field of a collection"""
    name: str = Field(..., description="Field name")
    data_type: DataType = Field(..., description="Declared data type")
    description: str = Field(default="", description="Field description")
    is_primary: bool = Field(default=False, description="Primary key flag")
    auto_id: bool = Field(default=False, description="Server generates the primary key")
    dim: Optional[int] = Field(default=None, description="Dimension of a vector field")
    max_length: Optional[int] = Field(default=None, description="Max length of a varchar field")

    def to_wire(self) -> Dict[str, Any]:
        params = {}
        if self.dim is not None:
            params["dim"] = str(self.dim)
        if self.max_length is not None:
            params["max_length"] = str(self.max_length)
        wire = {
            "fieldName": self.name,
            "dataType": self.data_type.value,
            "isPrimary": self.is_primary,
            "description": self.description,
            "elementTypeParams": params,
        }
        if self.auto_id:
            wire["autoId"] = True
        return wire

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "FieldSchema":
        params = data.get("elementTypeParams") or {}
        dim = params.get("dim")
        max_length = params.get("max_length")
        return cls(
            name=data["fieldName"],
            data_type=DataType(data["dataType"]),
            description=data.get("description", ""),
            is_primary=data.get("isPrimary", False),
            auto_id=data.get("autoId", False),
            dim=int(dim) if dim is not None else None,
            max_length=int(max_length) if max_length is not None else None,
        )


class CollectionSchema(BaseModel):
    """
    Schema of a collection

    Example:
    --------
    schema = CollectionSchema(name="users")
    schema.add_field(FieldSchema(name="id", data_type=DataType.INT64, is_primary=True))
    schema.add_field(FieldSchema(name="face", data_type=DataType.FLOAT_VECTOR, dim=128))
    """
    name: str = Field(..., description="Collection name")
    fields: List[FieldSchema] = Field(default_factory=list, description="Ordered fields")
    description: str = Field(default="", description="Collection description")

    def add_field(self, field: FieldSchema) -> "CollectionSchema":
        self.fields.append(field)
        return self

    def get_field(self, name: str) -> Optional[FieldSchema]:
        for field in self.fields:
            if field.name == name:
                return field
        return None

    @property
    def primary_field(self) -> Optional[FieldSchema]:
        return next((f for f in self.fields if f.is_primary), None)

    @property
    def vector_fields(self) -> List[FieldSchema]:
        return [f for f in self.fields if f.data_type.is_vector]

    def check(self) -> None:
        """
        Verify the schema invariants

        Raises:
            SchemaError: If the schema has no or several primary keys,
                duplicate field names, no vector field, or a field whose
                type parameters are missing or invalid
        """
        if not self.name:
            raise SchemaError("collection name must not be empty")
        if not self.fields:
            raise SchemaError(f"collection '{self.name}' has no fields")

        seen = set()
        for field in self.fields:
            if not field.name:
                raise SchemaError("field name must not be empty")
            if field.name in seen:
                raise SchemaError(f"duplicate field name '{field.name}'")
            seen.add(field.name)
            _check_field(field)

        primaries = [f.name for f in self.fields if f.is_primary]
        if len(primaries) != 1:
            raise SchemaError(
                f"collection '{self.name}' must have exactly one primary key, found {len(primaries)}"
            )
        if not self.vector_fields:
            raise SchemaError(f"collection '{self.name}' has no vector field")

    def to_wire(self) -> Dict[str, Any]:
        primary = self.primary_field
        return {
            "autoId": bool(primary and primary.auto_id),
            "enableDynamicField": False,
            "fields": [field.to_wire() for field in self.fields],
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "CollectionSchema":
        """
        Build a schema from a describe response

        Raises:
            TransientError: If the description is malformed or uses a field
                type this client does not know
        """
        try:
            return cls(
                name=data["collectionName"],
                description=data.get("description", ""),
                fields=[FieldSchema.from_wire(f) for f in data.get("fields", [])],
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise TransientError(f"unreadable collection description from server: {e}") from e

    def encode_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """
        Coerce a row to wire values

        Args:
            row: Mapping from field name to value

        Returns:
            New mapping with every value coerced by its field's data type

        Raises:
            SchemaMismatchError: If a field is missing, unknown, or holds a
                value of the wrong type
            DimensionMismatchError: If a vector has the wrong length
        """
        unknown = [name for name in row if self.get_field(name) is None]
        if unknown:
            raise SchemaMismatchError(
                f"fields {unknown} do not exist in collection '{self.name}'"
            )

        encoded = {}
        for field in self.fields:
            if field.auto_id:
                if field.name in row:
                    raise SchemaMismatchError(
                        f"field '{field.name}' is generated by the server (auto id), do not supply it"
                    )
                continue
            if field.name not in row:
                raise SchemaMismatchError(f"row is missing field '{field.name}'")
            encoded[field.name] = coerce_value(field, row[field.name])
        return encoded

    def encode_rows(self, rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        encoded = []
        for position, row in enumerate(rows):
            try:
                encoded.append(self.encode_row(row))
            except SchemaMismatchError as e:
                # keep the concrete class, add the row position
                raise type(e)(f"row {position}: {e.message}") from e
        return encoded

    def check_index(self, index: "IndexDesc") -> None:
        """
        Verify that an index fits its target field

        Raises:
            FieldNotFoundError: If the target field does not exist
            UnsupportedIndexTypeError: If the index family does not fit the
                field's data type
        """
        field = self.get_field(index.field_name)
        if field is None:
            raise FieldNotFoundError(
                f"field '{index.field_name}' does not exist in collection '{self.name}'"
            )
        if not index_fits(index.index_type, field.data_type):
            raise UnsupportedIndexTypeError(
                f"index type {index.index_type.value} is not supported "
                f"on field '{field.name}' of type {field.data_type.value}"
            )


class IndexDesc(BaseModel):
    """Index to build on one field"""
    field_name: str = Field(..., description="Target field")
    index_type: IndexType = Field(..., description="Index family")
    metric_type: Optional[MetricType] = Field(default=None, description="Similarity metric")
    index_name: Optional[str] = Field(default=None, description="Defaults to the field name")
    params: Dict[str, Any] = Field(default_factory=dict, description="Extra tuning parameters")

    def to_param(self) -> IndexParam:
        return IndexParam(
            field_name=self.field_name,
            index_name=self.index_name or self.field_name,
            index_type=self.index_type,
            metric_type=self.metric_type,
            params={key: str(value) for key, value in self.params.items()},
        )


def index_fits(index_type: IndexType, data_type: DataType) -> bool:
    if index_type is IndexType.AUTOINDEX:
        return True
    if index_type.is_vector_index:
        return data_type.is_vector
    if index_type is IndexType.TRIE:
        return data_type is DataType.VARCHAR
    if index_type is IndexType.STL_SORT:
        return data_type.is_integer or data_type in (DataType.FLOAT, DataType.DOUBLE)
    return data_type.is_scalar and data_type is not DataType.JSON


def _check_field(field: FieldSchema) -> None:
    if field.data_type.is_vector:
        if field.dim is None or field.dim <= 0:
            raise SchemaError(f"vector field '{field.name}' must declare a positive dimension")
    if field.data_type is DataType.VARCHAR:
        if field.max_length is None or field.max_length <= 0:
            raise SchemaError(f"varchar field '{field.name}' must declare a positive max_length")
    if field.is_primary and field.data_type not in (DataType.INT64, DataType.VARCHAR):
        raise SchemaError(f"primary key '{field.name}' must be Int64 or VarChar")
    if field.auto_id and not (field.is_primary and field.data_type is DataType.INT64):
        raise SchemaError(f"auto id is only allowed on an Int64 primary key, not '{field.name}'")


def _mismatch(field: FieldSchema, value: Any) -> SchemaMismatchError:
    return SchemaMismatchError(
        f"field '{field.name}' expects {field.data_type.value}, got {type(value).__name__} {value!r}"
    )


def _coerce_bool(field: FieldSchema, value: Any) -> bool:
    if not isinstance(value, (bool, np.bool_)):
        raise _mismatch(field, value)
    return bool(value)


def _coerce_int(field: FieldSchema, value: Any) -> int:
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, np.integer)):
        raise _mismatch(field, value)
    low, high = _INT_RANGES[field.data_type]
    if not low <= value <= high:
        raise SchemaMismatchError(
            f"value {value} out of range for {field.data_type.value} field '{field.name}'"
        )
    return int(value)


def _coerce_float(field: FieldSchema, value: Any) -> float:
    if isinstance(value, (bool, np.bool_)) or not isinstance(
        value, (int, float, np.integer, np.floating)
    ):
        raise _mismatch(field, value)
    try:
        number = float(value)
    except OverflowError:
        raise _mismatch(field, value)
    if not math.isfinite(number):
        raise SchemaMismatchError(f"field '{field.name}' must be a finite number, got {value!r}")
    return number


def _coerce_varchar(field: FieldSchema, value: Any) -> str:
    if not isinstance(value, str):
        raise _mismatch(field, value)
    if field.max_length is not None and len(value) > field.max_length:
        raise SchemaMismatchError(
            f"value of field '{field.name}' is {len(value)} characters, max_length is {field.max_length}"
        )
    return value


def _coerce_json(field: FieldSchema, value: Any) -> Any:
    return value


def _coerce_float_vector(field: FieldSchema, value: Any) -> List[float]:
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple, np.ndarray)):
        raise _mismatch(field, value)
    try:
        vector = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError):
        raise _mismatch(field, value)
    if vector.ndim != 1 or vector.shape[0] != field.dim:
        raise DimensionMismatchError(
            f"vector field '{field.name}' expects dimension {field.dim}, got shape {vector.shape}"
        )
    # json has no NaN or infinity
    if not np.isfinite(vector).all():
        raise SchemaMismatchError(f"vector field '{field.name}' holds NaN or infinite values")
    return vector.tolist()


_COERCERS: Dict[DataType, Callable[[FieldSchema, Any], Any]] = {
    DataType.BOOL: _coerce_bool,
    DataType.INT8: _coerce_int,
    DataType.INT16: _coerce_int,
    DataType.INT32: _coerce_int,
    DataType.INT64: _coerce_int,
    DataType.FLOAT: _coerce_float,
    DataType.DOUBLE: _coerce_float,
    DataType.VARCHAR: _coerce_varchar,
    DataType.JSON: _coerce_json,
    DataType.FLOAT_VECTOR: _coerce_float_vector,
}


def coerce_value(field: FieldSchema, value: Any) -> Any:
    """Coerce one cell to the wire value for its field's data type"""
    return _COERCERS[field.data_type](field, value)
