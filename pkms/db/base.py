"""Declarative base shared by every pkms model."""

import uuid

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    """Primary keys are uuid4 strings so the schema stays portable across backends."""
    return str(uuid.uuid4())
