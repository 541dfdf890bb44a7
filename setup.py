from setuptools import find_packages, setup

setup(
    name="treewatcher",
    version="0.1.0",
    description="Recursively watch a directory tree and report filesystem changes",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "click",
        "toml",
        "python-daemon",
        "rich",
        "psutil",
        "inotify_simple",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "treewatcher=treewatcher.cli:main"
        ]
    },
)
