from setuptools import setup, find_packages

setup(
    name="eclfmt",
    version="0.1.0",
    description="eclfmt - parser and idempotent pretty-printer for SNOMED CT ECL",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    author="eclfmt Project",
    python_requires=">=3.9",
    packages=find_packages(exclude=["tests", "tests.*"]),
    entry_points={
        "console_scripts": [
            "eclfmt=eclfmt.cli:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Text Processing :: Markup",
    ],
)
