"""Aggregation module for platform statistics.

- platform_stats: folds measurement batches into per-day detail rows
- rollup: turns aged detail rows into summaries and deletes what it consumed
"""
