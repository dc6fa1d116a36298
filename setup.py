import re

import setuptools

with open("pydeconzbridge/__init__.py", "r") as fh:
    __version__ = '%s.%s.%s' % re.search(r"version_tuple = \((\d+), (\d+), (\d+)\)", fh.read()).groups()

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="pydeconzbridge",
    version=__version__,
    description="Python module to pair with and stay connected to a deCONZ Zigbee gateway",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=["*.tests", "*.tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        'requests',
        'websockets>=12.0',
        'python-dotenv',
    ],
    extras_require={
        'test': ['pytest'],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
