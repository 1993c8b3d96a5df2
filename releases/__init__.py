"""
Releases Django application.

This app ingests merchandise-news feeds, extracts product releases with the
AI Enhancement Service, deduplicates them against the catalog, resolves
product images, and tracks each release through its lifecycle.
"""
