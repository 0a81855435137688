from setuptools import setup, find_packages

setup(
    name="sleeve-rebalancer",
    version="1.0.0",
    author="Sleeve Rebalancer Team",
    description="Sleeve-based allocation and tax-loss-harvesting rebalance engine",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={
        "portfolio_snapshot": ["py.typed"],
        "rebalancer_config": ["py.typed"],
        "tlh_engine": ["py.typed"],
    },
    install_requires=[
        "pydantic==2.11.7",
        "PyYAML==6.0.2",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
        ],
    },
    python_requires=">=3.11",
)
