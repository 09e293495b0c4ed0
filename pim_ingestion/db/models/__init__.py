"""Database models for the import pipeline."""
from pim_ingestion.db.models.import_source import ImportSource
from pim_ingestion.db.models.import_job import ImportJob
from pim_ingestion.db.models.product_version import ProductVersion

__all__ = [
    "ImportSource",
    "ImportJob",
    "ProductVersion",
]
