#!/usr/bin/env python3
"""
Setup script for wfclient, the channel join/switch client
"""

from setuptools import setup, find_namespace_packages

setup(
    name="wfclient",
    version="0.0.1",
    description="Game backend channel join/switch client over XMPP websockets",
    packages=find_namespace_packages(include=["wfclient", "wfclient.*", "shared", "shared.*"]),
    install_requires=[
        "websockets>=15.0",
        "typer>=0.12.3",
        "rich>=13.9.2",
        "aioconsole>=0.8.1",
        "PyYAML>=6.0.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.4.2",
            "pytest-asyncio>=1.2.0",
        ],
    },
    python_requires=">=3.9",
    entry_points={
        'console_scripts': [
            'wfclient=wfclient.wf_cli:main',
        ],
    },
)
