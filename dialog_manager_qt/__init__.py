"""PyQt6 bindings for the dialog position manager."""
