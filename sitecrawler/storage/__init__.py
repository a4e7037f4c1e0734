"""
Result output for the site crawler.
"""

from .writers import ResultWriter, CsvWriter, JsonLinesWriter, WriterError, create_writer, drain_results

__all__ = ['ResultWriter', 'CsvWriter', 'JsonLinesWriter', 'WriterError', 'create_writer', 'drain_results']
