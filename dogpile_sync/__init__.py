"""Dogpile Sync - adoptable-dog listing reconciliation and lifecycle engine."""

__version__ = "0.1.0"
