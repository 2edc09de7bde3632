"""bookbinder - compile annotated markdown manuscripts into LaTeX and EPUB.

The pipeline parses a manuscript into a backend-agnostic Book model and
renders that model through independent LaTeX and EPUB backends.
"""

__version__ = "0.1.0"
