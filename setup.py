from setuptools import setup, find_packages

setup(
    name="glimpse",
    version="1.0.0",
    description="Glimpse - searchable memory of screen activity",
    author="Your Name",
    packages=find_packages(include=["glimpse", "glimpse.*"]),
    include_package_data=True,
    install_requires=[
        # Core data modeling and validation
        "pydantic>=2.0.0",

        # Async HTTP client (for embedding and vision providers)
        "httpx>=0.25.0",

        # Environment variables
        "python-dotenv>=1.0.0",

        # Vector similarity
        "numpy>=1.24.0",

        # CLI and rich output
        "typer>=0.9.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "glimpse = glimpse.app.cli:main",
        ],
    },
    python_requires=">=3.11",
    package_dir={"": "."},
)
