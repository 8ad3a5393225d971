"""Package setup for risk-assessment-wizard."""

from setuptools import find_packages, setup

with open("README.md", encoding="utf-8") as f:
    long_description = f.read()

with open("requirements.txt", encoding="utf-8") as f:
    requirements = [
        line.strip() for line in f if line.strip() and not line.startswith("#")
    ]

setup(
    name="risk-assessment-wizard",
    version="1.0.0",
    description="Guided fraud risk assessment wizard with a force-directed relationship graph",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["risk_wizard", "risk_wizard.*"]),
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "risk-wizard=risk_wizard.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Financial and Insurance Industry",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Scientific/Engineering :: Visualization",
        "Topic :: Security",
    ],
    keywords="fraud risk-assessment wizard force-directed graph-layout",
)
