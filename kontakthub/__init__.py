"""KontaktHub: contacts, groups and events with duplicate-aware imports."""
