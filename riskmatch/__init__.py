"""Risk similarity and relevance matching: models, pipelines, API.

The package ranks existing risk records against suppliers and draft risks,
detects likely duplicates and backfills embeddings for stored records.
"""
