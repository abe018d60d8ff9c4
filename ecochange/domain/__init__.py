# ecochange/domain/__init__.py
"""Domain services."""
