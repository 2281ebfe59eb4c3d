"""
Setup script for the mpclib package.

The sources live under ``python/``; install from the repository root:
    pip install -e .

Test and development extras:
    pip install -e ".[test]"
    pip install -e ".[dev]"
"""

from setuptools import find_packages, setup

setup(
    name="mpclib",
    version="0.1.0",
    description="Model Predictive Control problem formulation on top of OSQP and SciPy",
    package_dir={"": "python"},
    packages=find_packages(where="python", include=["mpclib", "mpclib.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.20",
        "scipy>=1.7",
        "osqp>=0.6.2,<1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "hypothesis>=6.0",
        ],
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "hypothesis>=6.0",
            "black>=23.0",
            "ruff>=0.1.0",
            "mypy>=1.0",
        ],
    },
)
