"""
Tabletop Codex -- PySide6 desktop shell for the cross-reference engine.

Package layout:
    panels/     Entity list dock (destination view for reference clicks)
    services/   Event bus and background entity-index refresh
    widgets/    Reference editor, suggestion overlay, toasts
    theme/      Dark theme and custom stylesheets
"""
