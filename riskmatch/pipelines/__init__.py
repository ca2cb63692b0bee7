"""Pipelines for normalization, similarity ranking, relevance matching and backfill.

Each step is callable independently so that the API and the CLI scripts can
share them.
"""
