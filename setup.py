from setuptools import setup, find_packages
from pathlib import Path

# Read the contents of README.md for long description
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding='utf-8')

setup(
    name="pathogentrees",
    version="0.1.0",

    # Descriptions
    description="Download, date-filter and report SNP trees from the NCBI Pathogen Detection pipeline",
    long_description=long_description,
    long_description_content_type="text/markdown",

    # License
    license="MIT",

    # Package discovery
    packages=find_packages(exclude=["tests", "tests.*", "docs", "examples"]),

    # Python version requirement
    python_requires=">=3.8",

    # Core dependencies
    install_requires=[
        "biopython>=1.79",
        "pandas>=1.3.0",
        "matplotlib>=3.4.0",
        "pyyaml>=5.4",
    ],

    # Optional dependencies for specific features
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=3.0.0",
        ],
    },

    # Command-line interface
    entry_points={
        'console_scripts': [
            'pathogentrees=pathogentrees.cli:main',
        ],
    },

    # PyPI classifiers
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],

    # Keywords for PyPI search
    keywords=[
        "bioinformatics",
        "pathogen surveillance",
        "NCBI Pathogen Detection",
        "phylogenetics",
        "SNP trees",
        "outbreak detection",
    ],

    zip_safe=False,
)
