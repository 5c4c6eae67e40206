#!/usr/bin/env python3
"""
Setup script for the Hangouts protocol client
"""

from setuptools import setup, find_packages

setup(
    name="hangouts-client",
    version="0.0.1",
    description="Client for the Hangouts long-poll chat protocol",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "websockets==15.0.1",
        "httpx==0.28.1",
        "click==8.1.7",
        "typer==0.12.3",
        "rich==13.9.2",
        "PyYAML==6.0.2",
    ],
    extras_require={
        "test": [
            "pytest==8.4.2",
            "pytest-asyncio==1.2.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        'console_scripts': [
            'hangouts-cli=hangouts.cli:main',
        ],
    },
)
