"""Setup script for the Order Ledger event-sourcing core."""

from setuptools import setup, find_packages

setup(
    name="order_ledger",
    version="1.0.0",
    description="Event-sourced delivery and payment ledger with read-model projectors",
    author="ML Roadmap Bootcamp",
    python_requires=">=3.11",
    packages=find_packages(include=["order_ledger", "order_ledger.*"]),
    install_requires=[
        line.strip()
        for line in open("requirements.txt")
        if line.strip() and not line.startswith("#") and not line.startswith("git+")
    ],
    extras_require={
        "test": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.1",
            "aiosqlite>=0.19.0",
        ],
        "dev": [
            "black>=23.0.0",
            "isort>=5.12.0",
            "flake8>=6.0.0",
            "mypy>=1.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "order-ledger-projector=order_ledger.workers.projection_worker:main",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
