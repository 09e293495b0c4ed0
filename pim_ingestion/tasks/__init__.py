"""arq task functions."""
from pim_ingestion.tasks.import_tasks import ImportProcessor, process_import_task

__all__ = ["ImportProcessor", "process_import_task"]
