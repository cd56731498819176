# packages/components/loader_sql/src/loader_sql/__init__.py

"""
loader_sql - пакетная загрузка строк с привязкой по типам значений
"""

from loader_sql.binders import BINDERS, ValueBinder, coerce_to_string
from loader_sql.components import BulkLoader, LoadOptions, insert_rows, records_to_rows

__version__ = "0.1.0"

__all__ = [
    "BulkLoader",
    "LoadOptions",
    "ValueBinder",
    "BINDERS",
    "coerce_to_string",
    "insert_rows",
    "records_to_rows",
]
