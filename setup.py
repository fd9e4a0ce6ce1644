from setuptools import setup, find_packages

setup(
    name="mcp-e2e-agent",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "mcp>=1.0.0,<2",
        "playwright>=1.40.0",
        "ollama>=0.4.0",
        "pydantic>=2.0.0",
        "python-dotenv>=1.0.0"
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0"
        ]
    },
    entry_points={
        "console_scripts": [
            "mcp-e2e-agent-server=e2e_agent.server:main"
        ]
    },
    python_requires=">=3.10",
)
