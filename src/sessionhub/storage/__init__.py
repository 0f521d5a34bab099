"""SQLite storage helpers shared by repositories."""
