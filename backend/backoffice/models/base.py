from __future__ import annotations

import enum

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase


class Model(DeclarativeBase):
    """Declarative base for every entity held by the EntityStore."""


def enum_column(enum_cls: type[enum.Enum], **kwargs) -> sa.Column:
    """Column storing the enum *value* (not its name) as a constrained string."""
    return sa.Column(
        sa.Enum(
            enum_cls,
            native_enum=False,
            length=32,
            values_callable=lambda cls: [member.value for member in cls],
            validate_strings=True,
        ),
        **kwargs,
    )


def enum_value(value) -> str | None:
    return None if value is None else str(value)
