"""Adapters binding the core ports to Telethon, SQLite and the console."""
