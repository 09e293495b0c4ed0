"""Business logic services for the product import pipeline.

Available Services:
    - field_paths: Dotted/indexed path access on product payloads
    - transforms: Named value transforms for field mappings
    - row_mapper: Raw record -> mapped product payload
    - quality_scorer: Completeness score and critical issues
    - conflict_detector: Manual-edit conflicts and locked-field merge
    - auto_publish: Auto-publish eligibility rules
    - version_writer: Append-only product version chain
    - job_store / batch_tracker: Job records, progress and batch status
    - fetcher: File and API retrieval
    - indexing: Downstream indexing notifications
    - rate_limiter / import_queue: Job submission and start throttling
"""
