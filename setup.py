from setuptools import setup, find_packages

setup(
    name="toonclient",
    version="0.1.0",
    description="Async Python client for the Toon thermostat API",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "aiohttp>=3.8.1",
        "pkce>=1.0.3",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "aioresponses>=0.7.4",
            # aioresponses is incompatible with aiohttp 3.14 ClientResponse
            "aiohttp<3.14",
        ],
    },
    entry_points={
        "console_scripts": [
            "toon-client=toonclient.cli:main",
        ],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Framework :: AsyncIO",
    ],
)
