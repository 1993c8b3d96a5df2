"""
Services for release ingestion.

- feed_orchestrator: end-to-end ingestion pass
- duplicate_detector: matching products against the catalog
- image_resolver / image_cropper / image_storage: product images
- lifecycle: release status transitions and merging
- processing_lock: named lock serializing ingestion passes
- source_tracker: article provenance per release
- content_filters: screening rules for articles and products
- ai_client: AI Enhancement Service client
"""
