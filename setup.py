"""
sslaudit Setup Configuration
by BitSpectreLabs
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_file = Path(__file__).parent / "README.md"
long_description = ""
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")

# Read requirements
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
if requirements_file.exists():
    requirements = [
        line.strip()
        for line in requirements_file.read_text(encoding="utf-8").splitlines()
        if line.strip() and not line.startswith("#")
    ]

setup(
    name="sslaudit",
    version="1.0.0",
    author="BitSpectreLabs",
    description="SSL/TLS cipher suite auditor: probes hosts for legacy protocols and weak ciphers",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/BitSpectreLabs/sslaudit",
    packages=find_packages(include=["sslaudit", "sslaudit.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "Intended Audience :: Information Technology",
        "Intended Audience :: Developers",
        "Topic :: Security",
        "Topic :: Security :: Cryptography",
        "Topic :: System :: Networking",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
        "Environment :: Console",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "sslaudit=sslaudit.cli.main:main",
        ],
    },
    keywords=[
        "ssl",
        "tls",
        "cipher suites",
        "network security",
        "security tools",
        "compliance",
    ],
    project_urls={
        "Bug Reports": "https://github.com/BitSpectreLabs/sslaudit/issues",
        "Source": "https://github.com/BitSpectreLabs/sslaudit",
    },
)
