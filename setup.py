"""
Setup Configuration for leastsquares
====================================

setup.py with dependency groups for the core library and development
tooling.
"""

import sys
from pathlib import Path

from setuptools import find_packages, setup

# Get the directory containing setup.py
HERE = Path(__file__).parent.resolve()


# Read the long description from README
def read_readme():
    """Read README file for long description."""
    readme_path = HERE / "README.md"
    if readme_path.exists():
        return readme_path.read_text(encoding="utf-8")
    return "Nonlinear least-squares optimization with Gauss-Newton and Levenberg-Marquardt"


# Read version from leastsquares/__init__.py
def read_version():
    """Read version from package __init__.py."""
    init_path = HERE / "leastsquares" / "__init__.py"
    if init_path.exists():
        with open(init_path, encoding="utf-8") as f:
            for line in f:
                if line.startswith("__version__"):
                    return line.split("=")[1].strip().strip("\"'")
    return "1.0.0"


INSTALL_REQUIRES = [
    "numpy>=1.21.0",
    "scipy>=1.7.0",
    "pyyaml>=5.4.0",
]

EXTRAS_REQUIRE = {
    # Development dependencies
    "dev": [
        "pytest>=6.2.0",
        "pytest-cov>=2.12.0",
        "hypothesis>=6.0.0",
        "black>=21.0.0",
        "ruff>=0.0.290",
        "mypy>=0.910",
    ],
    # Test dependencies only
    "test": [
        "pytest>=6.2.0",
        "pytest-cov>=2.12.0",
        "hypothesis>=6.0.0",
    ],
}

EXTRAS_REQUIRE["all"] = sorted(set(sum(EXTRAS_REQUIRE.values(), [])))

CLASSIFIERS = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Topic :: Scientific/Engineering :: Mathematics",
    "License :: OSI Approved :: MIT License",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3.9",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Operating System :: OS Independent",
]

KEYWORDS = [
    "least squares", "curve fitting", "levenberg-marquardt", "gauss-newton",
    "nonlinear optimization", "minpack", "scientific computing",
]


def check_python_version():
    """Check if Python version is supported."""
    if sys.version_info < (3, 9):
        print("Python 3.9 or higher is required")
        print(f"   Current version: {sys.version}")
        sys.exit(1)


check_python_version()

setup(
    name="leastsquares",
    version=read_version(),
    description="Nonlinear least-squares optimization with Gauss-Newton and Levenberg-Marquardt",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    author="leastsquares Development Team",
    packages=find_packages(exclude=["tests*", "docs*", "examples*"]),
    include_package_data=True,
    install_requires=INSTALL_REQUIRES,
    extras_require=EXTRAS_REQUIRE,
    python_requires=">=3.9",
    classifiers=CLASSIFIERS,
    keywords=KEYWORDS,
    license="MIT",
    zip_safe=False,
    platforms=["any"],
)
