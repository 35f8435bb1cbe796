from setuptools import setup, find_packages

setup(
    name="surgical_coder",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "requests",
        "pyyaml",
        "textual",
        # Optional parse check for generated JS/TS (syntax_check: tree_sitter)
        "tree-sitter>=0.22",
        "tree-sitter-javascript",
        "tree-sitter-typescript",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "surgical-coder=surgical_coder.cli:main",
        ],
    },
    author="Uday Kanth",
    description="Surgical, line-addressed application of LLM code edits with backups and rollback.",
)
