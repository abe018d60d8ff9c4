"""Abstractions layer: data types, errors and collaborator interfaces."""
