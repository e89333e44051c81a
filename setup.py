from setuptools import setup, find_packages

setup(
    name="reply-crawler",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "aiohttp>=3.9.0",
        "fastapi>=0.110.0",
        "pydantic>=2.0.0",
        "psycopg2-binary>=2.9.0",
        "tenacity",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
)
