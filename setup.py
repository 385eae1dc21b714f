"""
GDTI Ledger setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="gdti-ledger",
    version="1.0.0",
    description="GDTI Ledger — versioned documents on an append-only ledger",
    packages=find_packages(include=["gdtiledger", "gdtiledger.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "gdti=gdtiledger.cli:main",
        ],
    },
    install_requires=[
        "pydantic>=2.5",
        "pyyaml>=6.0",
        "httpx>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
)
