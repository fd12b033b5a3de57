"""
binstrings — Printable String Extraction for Binary Data
=========================================================
A small, dependency-free take on the classic ``strings`` utility: finds runs
of printable ASCII (and optionally UTF-8) text in arbitrary binary input.
"""

__version__ = "1.0.0"
__author__ = "binstrings contributors"
__license__ = "MIT"
__description__ = "Extract printable strings from binary data"
