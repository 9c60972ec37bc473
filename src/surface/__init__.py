"""Call-management surface: the system facility that owns call UI and grants every call transition."""
