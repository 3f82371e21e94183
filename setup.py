from setuptools import setup, find_packages

setup(
    name="regdocs-ingestion",
    version="1.0.0",
    description="Regulatory document ingestion service: discover, deduplicate, render and store published documents",
    packages=find_packages(exclude=["tests*"]),
    install_requires=[
        "beautifulsoup4>=4.12.0",
        "lxml>=4.9.0",
        "PyMuPDF>=1.23.0",
        "Pillow>=10.0.0",
        "pyyaml>=6.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "click>=8.1.0",
        "httpx>=0.25.0",
        "structlog>=23.0.0",
        "tenacity>=8.2.0",
        "python-dotenv>=1.0.0",
        "rich>=13.0.0",
        "inngest>=0.5.0",
        "fastapi>=0.104.0",
        "uvicorn>=0.24.0",
        "SQLAlchemy>=2.0.0",
        "botocore>=1.34.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
            "mypy>=1.5.0",
            "black>=23.7.0",
            "flake8>=6.0.0",
            "isort>=5.12.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "regdocs=regdocs.cli:cli",
        ]
    },
    python_requires=">=3.10",
)
