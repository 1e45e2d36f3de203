"""Setup configuration for the Reportcord Discord bot."""

from setuptools import setup, find_packages

setup(
    name="reportcord",
    version="0.0.1",
    description="A Discord bot that adjudicates member reports using AI",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.6",
        "openai>=1.40",
        "aiosqlite>=0.20",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "jsonschema>=4.21",
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
            "reportcord=reportcord.main:main",
        ],
    },
)
