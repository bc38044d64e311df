"""Setup configuration for varfed."""

from setuptools import find_packages, setup

setup(
    name="varfed",
    version="0.3.0",
    description="Federated genomic variant queries with liftover and CADD/gnomAD annotation",
    author="varfed contributors",
    python_requires=">=3.11",
    packages=find_packages(where="src", include=["varfed*"]),
    package_dir={"": "src"},
    install_requires=[
        "httpx>=0.27.0",
        "pandas>=2.2.0",
        "pydantic>=2.6.0",
        "pydantic-settings>=2.1.0",
        "pymongo>=4.10.0",
        "pysam>=0.22.0",
        "PyJWT>=2.8.0",
    ],
    entry_points={
        "console_scripts": [
            "varfed=varfed.cli:cli_entry",
        ],
    },
    extras_require={
        "dev": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-mock>=3.12.0",
            "respx>=0.21.0",
            "python-dotenv>=1.0.0",
        ],
    },
)
