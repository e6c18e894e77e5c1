"""notionpatch: targeted Markdown edits for Notion pages."""

__version__ = "0.1.0"
