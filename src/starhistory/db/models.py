from datetime import datetime
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# The schema is flat on purpose: it only feeds analytic queries.


class Base(DeclarativeBase):
    pass  # shared metadata lives here


class StarCount(Base):
    """Latest observed stargazer total, one row per repository."""

    __tablename__ = "star_counts"

    owner: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, primary_key=True)
    stargazers: Mapped[int] = mapped_column(Integer, nullable=False)


class RepositoryLanguage(Base):
    __tablename__ = "repository_primary_languages"

    owner: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, primary_key=True)
    primary_language: Mapped[str | None] = mapped_column(Text, nullable=True)


class OriginalStatus(Base):
    """Persisted to save API usage; written once per repository."""

    __tablename__ = "original_statuses"

    owner: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, primary_key=True)
    original: Mapped[bool] = mapped_column(Boolean, nullable=False)


class Stargazer(Base):
    """Append-only stargazer log. Persisted to save API usage."""

    __tablename__ = "stargazers"
    __table_args__ = (
        UniqueConstraint("owner", "name", "starred_by", "starred_at", name="uq_stargazer_event"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    owner: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    starred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    starred_by: Mapped[str] = mapped_column(Text, nullable=False)


# Views live outside Base.metadata so create_all() never tries to build them
# as tables; the DDL is issued by Store.create_schema().
view_metadata = MetaData()

total_stars_by_language = Table(
    "total_stars_by_language",
    view_metadata,
    Column("primary_language", Text),
    Column("stargazers", BigInteger),
)

TOTAL_STARS_BY_LANGUAGE_DDL = """
CREATE VIEW total_stars_by_language AS
SELECT
  l.primary_language,
  sum(s.stargazers) AS stargazers
FROM
  repository_primary_languages l
  INNER JOIN star_counts s ON l.owner = s.owner
    AND l.name = s.name
  INNER JOIN original_statuses o ON l.owner = o.owner
    AND l.name = o.name
WHERE
  o.original
GROUP BY
  l.primary_language
"""
