"""
DocStore setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="docstore",
    version="0.3.0",
    description="DocStore — Versioned document store over key-value backends",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "docstore=docstore.cli:main",
        ],
    },
    install_requires=[
        "sqlalchemy>=2.0",
        "pydantic>=2.5",
        "redis>=5.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
)
