from setuptools import setup, find_packages

setup(
    name='seamap',
    version='0.1.0',
    description='Tools for assembling and mapping geospatial data for a marine study area',
    author='Matthew Whittle',
    author_email='matthewjwhittle@gmail.com',
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "geopandas>=1.0",
        "shapely>=2.0",
        "pyproj>=3.4",
        "pandas>=1.5",
        "numpy>=1.23",
        "xarray>=2023.1",
        "rioxarray>=0.14",
        "rasterio>=1.3",
        "affine>=2.3,<3",  # affine 3.0.x breaks rioxarray transform math (cached_property on slotted class)
        "requests>=2.28",
        "cartopy>=0.22",
        "matplotlib>=3.6",
        "pyyaml>=6.0",
        "pyhere>=1.0",
        "tqdm>=4.64",
        "typer>=0.9",
        "typing_extensions>=4.5",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'seamap=seamap.cli:main',
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
    ],
)
