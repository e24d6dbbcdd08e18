from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Models are used mostly as table definitions for Core-style statements
    executed inside engine.begin() blocks.
    """

    pass
