"""Services for speaking practice sessions."""
