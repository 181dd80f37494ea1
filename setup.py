"""Package setup for samfirm."""

from setuptools import setup, find_packages

setup(
    name="samfirm",
    version="1.0.0",
    description="Firmware downloader for the Samsung FUS update service",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "requests>=2.31.0",
        "lxml>=5.0.0",
        "urllib3>=2.0.0",
        "pycryptodome>=3.19.0",
    ],
    extras_require={
        "ui": [
            "tqdm>=4.66.0",
            "colorlog>=6.8.0",
        ],
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "samfirm=samfirm.cli:main",
        ],
    },
)
