"""CSV cleaning engine: approved actions, free-text commands and mini-SQL over string tables."""

__version__ = "0.1.0"
