"""
Database export for backups.

Reads every configured content table and redacts sensitive fields in memory.
"""

import logging
from typing import Any, Dict, Iterable, Mapping

from .tables import BACKUP_TABLES, REDACTED_FIELDS, TABLE_REGISTRY


logger = logging.getLogger(__name__)


def redact_record(record: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    """Copy of record without the given fields."""
    fields = set(fields)
    return {key: value for key, value in record.items() if key not in fields}


class DatabaseExporter:
    """
    Exports the fixed list of backup tables.

    A table that cannot be read is logged and exported as an empty list so
    one broken table never blocks the rest.
    """

    def __init__(
        self,
        tables: Iterable[str] = BACKUP_TABLES,
        registry: Mapping = None,
        redacted_fields: Mapping[str, Iterable[str]] = None
    ):
        self.tables = list(tables)
        self.registry = TABLE_REGISTRY if registry is None else registry
        self.redacted_fields = REDACTED_FIELDS if redacted_fields is None else redacted_fields

    def export_all(self) -> Dict[str, Any]:
        """
        Export all configured tables.

        Returns:
            {
                'tables': {table_name: [record, ...]},
                'record_counts': {table_name: int},
                'total_records': int
            }
            with an entry for every configured table, possibly empty.
        """
        tables = {}
        record_counts = {}

        for table_name in self.tables:
            records = self.export_table(table_name)
            tables[table_name] = records
            record_counts[table_name] = len(records)

        total_records = sum(record_counts.values())
        logger.info(f"Exported {total_records} records from {len(self.tables)} tables")

        return {
            'tables': tables,
            'record_counts': record_counts,
            'total_records': total_records
        }

    def export_table(self, table_name: str) -> list:
        """
        Export one table, redacted.

        Returns:
            List of records, or [] if the table cannot be read
        """
        accessor = self.registry.get(table_name)
        if accessor is None:
            logger.warning(f"No data accessor registered for table {table_name}, exporting empty")
            return []

        try:
            records = accessor.find_many()
        except Exception as e:
            logger.error(f"Failed to export table {table_name}: {e}")
            return []

        fields = self.redacted_fields.get(table_name)
        if fields:
            records = [redact_record(record, fields) for record in records]

        return records
