"""Security helpers shared by the application."""
