from setuptools import setup, find_packages

setup(
    name="codecli",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "requests",
        "pyyaml",
        "tqdm>=4.60",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "codecli=codecli.cli:main",
        ],
    },
    description="Semantic search over a local codebase backed by a local embedding index.",
)
