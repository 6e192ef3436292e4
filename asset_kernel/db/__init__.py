"""Database layer: declarative base, engine, session scope and unit of work."""
