from setuptools import setup, find_packages

setup(
    name="dreamscribe-engine",
    version="0.1.0",
    description="Multi-provider story generation orchestrator with side-by-side model comparison",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "pandas>=2.0.0",
        "openai>=1.66.0,<3",
        "anthropic>=0.25.0,<1",
        "httpx>=0.23.0,<1",
        "requests>=2.31.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dreamscribe=dreamscribe_engine.app:main",
        ],
    },
)
