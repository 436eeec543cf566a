"""Setup configuration for agent-runtime package."""

from setuptools import setup, find_packages

setup(
    name="agent-runtime",
    version="0.1.0",
    description="Provider-agnostic agent execution runtime with durable LangGraph checkpoints",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "pydantic>=2.0.0",
        "python-dotenv>=1.0.0",
        "httpx>=0.27.0",
        "langchain>=1.0.0",
        "langchain-core>=1.2.5",
        "langgraph>=1.0.0",
        "langgraph-checkpoint>=2.0.0",
        "openai>=1.0.0",
        "langchain-openai>=1.0.0",
        "langchain-anthropic>=1.0.0",
        "langchain-ollama>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
            "pytest-mock>=3.11.0",
            "ruff>=0.1.0",
            "mypy>=1.5.0",
            "black>=23.0.0",
        ],
    },
)
