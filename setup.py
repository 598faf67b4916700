"""
Setup script for adaptive-practice-core.

The adaptive core of a self-paced practice application:

1. Mastery tracking - EWMA statistics per formula and category
2. Delivery - weighted selection and spaced review scheduling
3. Content gate - duplicate-resistant acceptance of generated items
4. Attempt ledger - idempotent, rebuildable record of every answer

The 'practice' command exposes the operator tools.
"""

from setuptools import find_packages, setup

setup(
    name="adaptive-practice-core",
    version="1.0.0",
    description="Adaptive mastery, scheduling and duplicate-resistant content for self-paced practice",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
        # Numerics
        "numpy>=1.24.0",
        # Text similarity
        "rapidfuzz>=3.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "practice=practice_core.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition adaptive mastery education",
)
