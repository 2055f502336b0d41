"""Setup configuration for strikewarden, the strike and audit core of a group-chat moderation bot."""

from setuptools import setup, find_packages

setup(
    name="strikewarden",
    version="0.0.1",
    description="Strike ledger, penalty escalation, audit log and analytics for group-chat moderation",
    packages=find_packages(where="src", include=["strikewarden", "strikewarden.*"]),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "aiosqlite>=0.19",
        "PyYAML>=6.0",
        "jsonschema>=4.0",
        "python-dotenv>=1.0",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "strikewarden=strikewarden.main:main",
        ],
    },
)
