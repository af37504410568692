"""Keyed upsert of recruitment records into a styled, human-edited tracking workbook."""

__version__ = "0.3.0"
