"""Setup script for the Taskhub package."""

from setuptools import setup, find_packages

setup(
    name="taskhub",
    version="0.1.0",
    packages=find_packages(include=["taskhub", "taskhub.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.27",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "structlog>=24.1",
        "sqlalchemy[asyncio]>=2.0",
        "asyncpg>=0.29",
        "alembic>=1.13",
        "prometheus-client>=0.19",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.26",
        ],
    },
    description="Taskhub - users and tasks API with consistent assignments",
    author="Taskhub Team",
)
