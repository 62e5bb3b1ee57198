"""Model tables."""

from mabletools.mable.table import (
    ModelColumn,
    ModelTable,
    as_mable,
    build_mable,
    build_model_table,
    coerce_to_plain,
    is_mable,
    key_data,
    key_variables,
)

__all__ = [
    "ModelColumn",
    "ModelTable",
    "as_mable",
    "build_mable",
    "build_model_table",
    "coerce_to_plain",
    "is_mable",
    "key_data",
    "key_variables",
]
