"""
Test configuration and fixtures
"""

import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tests.models import Base, Comment, Label, Project, Task, User

# Create in-memory SQLite databases for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
ASYNC_SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def build_project_graph():
    """Build an owner with one project carrying tasks, a label and a comment."""
    owner = User(name="Ada")
    project = Project(name="Apollo", owner=owner)
    project.tasks = [Task(title="Design"), Task(title="Build")]
    project.labels = [Label(name="urgent")]
    project.comments = [Comment(body="Looks good")]
    return owner, project


@pytest.fixture(scope="function")
def engine():
    """Create a fresh in-memory engine with all tables"""
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    """Plain session factory without audit hooks"""
    return sessionmaker(autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def seeded_project_id(session_factory):
    """Persist a project graph and return the project id"""
    with session_factory() as db:
        _, project = build_project_graph()
        db.add(project)
        db.commit()
        return project.id


@pytest.fixture(scope="function")
def db_session(session_factory, seeded_project_id):
    """Create a fresh database session over the seeded graph"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create a fresh in-memory aiosqlite engine with all tables"""
    engine = create_async_engine(ASYNC_SQLALCHEMY_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def async_session_factory(async_engine):
    """Plain async session factory without audit hooks"""
    return async_sessionmaker(bind=async_engine, autoflush=False, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def async_seeded_project_id(async_session_factory):
    """Persist a project graph through the async engine and return its id"""
    async with async_session_factory() as db:
        _, project = build_project_graph()
        db.add(project)
        await db.commit()
        return project.id
