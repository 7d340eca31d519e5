"""
Setup configuration for Portfolio Backtester

Install in development mode:
    pip install -e .[dev]

Install for production:
    pip install .
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / 'README.md'
long_description = ""
if readme_file.exists():
    long_description = readme_file.read_text(encoding='utf-8')

setup(
    name="portfolio-backtester",
    version="1.0.0",
    description="Event-driven backtesting for multi-asset allocation strategies",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Portfolio Backtester Team",
    license="MIT",

    packages=find_packages(exclude=["tests", "tests.*", "examples", "examples.*"]),

    # Core dependencies
    install_requires=[
        "numpy>=2.0.2",
        "pandas>=2.3.3",
        "scipy>=1.13.1",
        "click>=8.1.0",
        "pyyaml>=6.0",
        "rich>=13.0.0",
    ],

    # Development dependencies
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.0.0",
        ],
    },

    # Python version requirement
    python_requires=">=3.9",

    # Package classifiers
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Financial and Insurance Industry",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Financial :: Investment",
    ],

    # Keywords for package discovery
    keywords="portfolio backtesting rebalancing asset-allocation finance quantitative",

    # Entry points
    entry_points={
        "console_scripts": [
            "portfolio-backtest=portfolio_backtester.cli.cli:main",
        ],
    },

    # Zip safe flag
    zip_safe=False,
)
