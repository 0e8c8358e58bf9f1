"""Keep a remote vector store in step with a directory under version control."""

__version__ = "0.1.0"
