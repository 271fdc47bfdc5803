"""Database configuration and utilities."""

from safety_engine.db.base import Base, build_engine, build_session_factory, init_db

__all__ = ["Base", "build_engine", "build_session_factory", "init_db"]
