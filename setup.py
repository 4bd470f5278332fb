from setuptools import setup, find_packages

setup(
    name="rsdft",
    version="0.1.0",
    description="Initial densities, orbitals and charge extrapolation for real-space DFT",
    author="rsdft developers",
    packages=find_packages(exclude=("tests", "examples")),
    install_requires=[
        "numpy>=1.20.0",
        "scipy>=1.7.0",
        "spglib>=2.0.0",
        "h5py>=3.0.0",
        "matplotlib>=3.3.0",
    ],
    extras_require={
        "mpi": ["mpi4py>=3.1.0"],
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "rsdft=rsdft.cli:main",
        ],
    },
)
