#!/usr/bin/env python
"""Setup configuration for Clinical Gateway."""

from setuptools import find_packages, setup

setup(
    name="clinical-gateway",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.5.0",
        "sqlalchemy>=2.0.23",
        "fhirclient>=4.1.0",
        "httpx>=0.25.0",
        "google-auth>=2.23.0",
        "requests>=2.31.0",
        "pydantic-settings>=2.0.0",
        "structlog>=23.2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
)
