# setup.py
from setuptools import setup, find_packages

setup(
    name="posinventory",
    version="0.1.0",
    description="Queued, conflict-safe stock management core for point-of-sale backends",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "typer>=0.9.0",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "rich>=10.0.0",
        "sqlalchemy>=2.0",
        "tomli>=2.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.23",
            "hypothesis>=6.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "posinv=posinventory.main:app",
        ],
    },
)
