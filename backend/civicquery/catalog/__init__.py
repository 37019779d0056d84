"""Table catalog loaded from YAML."""

from .tables import TableCatalog, TableDescriptor, load_catalog, parse_table

__all__ = ["TableCatalog", "TableDescriptor", "load_catalog", "parse_table"]
