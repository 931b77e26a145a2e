"""
Page-grouped PDF extraction backend.

A FastAPI service that merges uploaded PDF documents and drives
field-based or table-based extraction against a generative AI backend,
one page group (or one page) at a time.
"""

__version__ = "1.0.0"
