from setuptools import setup, find_packages

setup(
    name="storefront-edge",
    version="0.1.0",
    description="Per-domain artist storefront SEO server with a local SQLite mirror of the system of record",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "PyYAML>=6.0",
        "requests>=2.31.0",
        "Pillow>=10.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "black>=23.0.0",
            "pylint>=2.17.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "storefront=storefront.__main__:main",
        ],
    },
)
