"""Prompt builders for lesson sections."""
