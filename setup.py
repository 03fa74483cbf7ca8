from __future__ import annotations

from setuptools import find_packages, setup


def load_dependencies() -> list[str]:
    """Assemble install_requires."""
    return [
        # Transports
        "aiohttp>=3.8.0",
        # Wire contract
        "pydantic>=2.0.0",
        # Query source views
        "PyYAML>=6.0",
    ]


setup(
    name="solverlink",
    version="0.1.0",
    description="Client library for pathfinding solver backends over JSON-RPC",
    python_requires=">=3.9",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=load_dependencies(),
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "solverlink=solverlink.cli:main",
        ],
    },
)
