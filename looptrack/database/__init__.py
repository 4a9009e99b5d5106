"""Database layer: engine, ORM rows and repositories."""
