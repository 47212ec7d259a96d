"""Shared constants, settings, validation and text helpers."""
