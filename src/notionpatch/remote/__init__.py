"""Notion API access: client, document store and format conversion."""
