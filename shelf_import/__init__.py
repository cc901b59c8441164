"""CSV -> shelf import pipeline.

Reads tabular rows, maps user columns onto strain/product records, files each
record onto a shelf and streams progress from a background worker process.
"""

__version__ = "0.1.0"
