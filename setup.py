"""
Setup script for webhook-activity
"""

from setuptools import setup, find_packages

setup(
    name="webhook-activity",
    version="0.1.0",
    description="Live webhook delivery activity stream client",
    packages=find_packages(include=["webhook_activity", "webhook_activity.*"]),
    python_requires=">=3.10",
    install_requires=[
        "websockets>=12.0",
        "httpx>=0.24.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "python-dotenv>=1.0.0",
        "pyyaml>=6.0",
        "click>=8.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "webhook-activity=webhook_activity.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
