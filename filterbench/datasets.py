"""Synthetic dataset generation.

Datasets come in two value-equivalent forms: a list of row records
keyed ``dim0``, ``dim1``, ... or a columnar mapping of one ``float64``
array per dimension plus a shared row count.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Union

import numpy as np

from .errors import InvalidConfig

RowData = list[dict[str, float]]


@dataclass
class ColumnarData:
    """Column-oriented dataset: one fixed-width array per dimension."""

    columns: dict[str, np.ndarray]
    length: int

    def __post_init__(self) -> None:
        for name, column in self.columns.items():
            if len(column) != self.length:
                raise InvalidConfig(
                    f"Column {name!r} has {len(column)} values, expected {self.length}",
                    column=name,
                )


Dataset = Union[RowData, ColumnarData]


def dimension_name(index: int) -> str:
    return f"dim{index}"


def _resolve_rng(
    seed: int | None, rng: np.random.Generator | None
) -> np.random.Generator:
    if rng is not None:
        return rng
    return np.random.default_rng(seed)


def _uniform_matrix(
    rows: int,
    dimensions: int,
    min_value: float,
    max_value: float,
    rng: np.random.Generator,
) -> np.ndarray:
    if rows < 0 or dimensions < 0:
        raise InvalidConfig(
            "rows and dimensions must not be negative",
            rows=rows,
            dimensions=dimensions,
        )
    if not max_value > min_value:
        raise InvalidConfig(
            "max must be greater than min", min=min_value, max=max_value
        )
    values = min_value + rng.random((dimensions, rows)) * (max_value - min_value)
    # Rounding can land exactly on max for wide ranges; keep the bound open.
    return np.minimum(values, np.nextafter(max_value, min_value))


def generate_columnar(
    rows: int,
    dimensions: int,
    min_value: float = 0,
    max_value: float = 1000,
    *,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
) -> ColumnarData:
    matrix = _uniform_matrix(
        rows, dimensions, min_value, max_value, _resolve_rng(seed, rng)
    )
    columns = {dimension_name(d): matrix[d].copy() for d in range(dimensions)}
    return ColumnarData(columns=columns, length=rows)


def generate_rows(
    rows: int,
    dimensions: int,
    min_value: float = 0,
    max_value: float = 1000,
    *,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
) -> RowData:
    matrix = _uniform_matrix(
        rows, dimensions, min_value, max_value, _resolve_rng(seed, rng)
    )
    names = [dimension_name(d) for d in range(dimensions)]
    return [
        {name: float(value) for name, value in zip(names, record)}
        for record in matrix.T.tolist()
    ]


def generate(
    rows: int,
    dimensions: int,
    min_value: float = 0,
    max_value: float = 1000,
    *,
    columnar: bool = False,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
) -> Dataset:
    """Generate a uniform dataset with values drawn from ``[min_value, max_value)``.

    Args:
        rows: Number of rows.
        dimensions: Number of dimensions, named ``dim0`` .. ``dim{n-1}``.
        min_value: Inclusive lower bound.
        max_value: Exclusive upper bound.
        columnar: Return ``ColumnarData`` instead of row records.
        seed: Seed for a fresh generator. Ignored when ``rng`` is given.
        rng: Explicit random generator to draw from.

    Raises:
        InvalidConfig: On negative sizes or an empty value range.
    """
    build = generate_columnar if columnar else generate_rows
    return build(rows, dimensions, min_value, max_value, seed=seed, rng=rng)


def to_columnar(data: Dataset) -> ColumnarData:
    """Convert row records to columnar form (columnar input is returned as is)."""
    if isinstance(data, ColumnarData):
        return data
    if not data:
        return ColumnarData(columns={}, length=0)
    names = list(data[0].keys())
    columns = {
        name: np.fromiter((float(row[name]) for row in data), dtype=np.float64, count=len(data))
        for name in names
    }
    return ColumnarData(columns=columns, length=len(data))


def dataset_shape(data: Dataset) -> tuple[list[str], int]:
    """Dimension names and row count of a dataset."""
    if isinstance(data, ColumnarData):
        return list(data.columns.keys()), data.length
    if not data:
        return [], 0
    return list(data[0].keys()), len(data)


def column_lengths(data: Dataset) -> Mapping[str, int]:
    """Number of values held per dimension."""
    if isinstance(data, ColumnarData):
        return {name: len(column) for name, column in data.columns.items()}
    names, _ = dataset_shape(data)
    return {name: sum(1 for row in data if name in row) for name in names}
