"""SQLAlchemy models describing the sequencing tracking schema."""
from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Species(Base):
    __tablename__ = "species"

    species_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    samples: Mapped[list["Sample"]] = relationship(back_populates="species")


class Project(Base):
    __tablename__ = "project"

    project_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    ssid: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)

    samples: Mapped[list["Sample"]] = relationship(back_populates="project")


class Sample(Base):
    __tablename__ = "sample"

    sample_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    project_key: Mapped[int] = mapped_column(ForeignKey("project.project_key"), nullable=False)
    species_key: Mapped[int | None] = mapped_column(ForeignKey("species.species_key"))

    project: Mapped[Project] = relationship(back_populates="samples")
    species: Mapped[Species | None] = relationship(back_populates="samples")
    libraries: Mapped[list["Library"]] = relationship(back_populates="sample")


class Library(Base):
    __tablename__ = "library"

    library_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sample_key: Mapped[int] = mapped_column(ForeignKey("sample.sample_key"), nullable=False)
    seq_tech: Mapped[str] = mapped_column(String(64), nullable=False, default="SLX")

    sample: Mapped[Sample] = relationship(back_populates="libraries")
    lanes: Mapped[list["Lane"]] = relationship(back_populates="library")


class Lane(Base):
    __tablename__ = "lane"

    lane_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    library_key: Mapped[int] = mapped_column(ForeignKey("library.library_key"), nullable=False)
    qc_status: Mapped[str | None] = mapped_column(String(16))
    processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    library: Mapped[Library] = relationship(back_populates="lanes")


__all__ = ["Base", "Species", "Project", "Sample", "Library", "Lane"]
