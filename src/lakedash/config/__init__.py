"""Datasource configuration loading."""

from lakedash.config.loader import DatasourceRegistry, load_datasources

__all__ = ["DatasourceRegistry", "load_datasources"]
