from setuptools import setup, find_packages

setup(
    name="probefinder",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    entry_points={
        'console_scripts': [
            'probefinder=probefinder.cli:main',
        ],
    },
    install_requires=[
        "pyelftools>=0.30",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    python_requires=">=3.8",
    description="Resolve source level probe points against DWARF debug information",
)
