from setuptools import find_packages, setup

setup(
    name="matchsim",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.10",
    install_requires=[
        "pytest>=7.4.0",
        "pytest-mock>=3.11.0",
        "structlog>=23.0.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "rich>=13.0.0",
    ],
    entry_points={
        "console_scripts": [
            "matchsim=matchsim.cli:main",
        ],
    },
)
