"""Shared fixtures for Followthru tests."""

import tempfile
from pathlib import Path

import pytest

from followthru.config import load_templates
from followthru.db import Database


@pytest.fixture
def temp_db():
    """Create a temporary database."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    db = Database(db_path)
    yield db
    if db_path.exists():
        db_path.unlink()


@pytest.fixture
def seeded_db(temp_db):
    """Temporary database holding the built-in templates."""
    for template in load_templates():
        temp_db.save_template(template)
    return temp_db
