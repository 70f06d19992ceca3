"""Meal order extraction: layout reconstruction, row parsing, school identity."""
