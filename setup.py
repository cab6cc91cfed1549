"""Setup configuration for repometrics"""

from setuptools import setup, find_packages

setup(
    name="repo-activity-metrics",
    version="0.1.0",
    description=(
        "CLI tool and library for GitHub repository activity metrics: contributors, "
        "PR throughput, weekly change volume and DORA deployment frequency."
    ),
    author="Repo Activity Metrics Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "requests>=2.28.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "repometrics=repometrics.main:main",
        ],
    },
)
