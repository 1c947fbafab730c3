#!/usr/bin/env python3
"""
Setup configuration for SmartSink - S.M.A.R.T. telemetry collector
"""

from setuptools import setup

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="smartsink",
    version="0.3.0",
    author="Magnus Modig",
    author_email="kontakt@modigs-datahjelp.no",
    description="Collect S.M.A.R.T. attributes for disk partitions as JSON, a table or PostgreSQL rows",
    long_description=long_description,
    long_description_content_type="text/markdown",
    py_modules=[
        "config_manager",
        "device_source",
        "output_sinks",
        "smart_collector",
        "smart_models",
        "store_writer",
    ],
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Operating System :: POSIX :: Linux",
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Monitoring",
    ],
    python_requires=">=3.8",
    install_requires=[
        "pySMART>=1.2.0",
        "SQLAlchemy>=2.0",
        "psycopg2-binary>=2.9",
    ],
    extras_require={
        "dev": ["pytest>=6.0", "pytest-cov>=2.10"],
    },
    entry_points={
        "console_scripts": [
            "smartsink=smart_collector:main",
        ],
    },
    keywords="smart monitoring disk health s.m.a.r.t linux postgresql telemetry",
    zip_safe=False,
    platforms=["Linux"],
)
