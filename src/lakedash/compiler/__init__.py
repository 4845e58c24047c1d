"""Macro expansion for dashboard SQL templates."""
