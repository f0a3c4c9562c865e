"""
IntegratePDF Backend Application.

A FastAPI service that extracts structured fields from uploaded PDF
documents with an AI model and pushes them to Notion or Google Sheets.
"""

__version__ = "1.0.0"
