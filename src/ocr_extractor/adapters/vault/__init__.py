"""Vault adapters."""

from .filesystem import FilesystemVault, parse_references

__all__ = ["FilesystemVault", "parse_references"]
