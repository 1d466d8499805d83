"""Batch pipelines run from the command line: analysis, reports, optimization, backup and maintenance."""
