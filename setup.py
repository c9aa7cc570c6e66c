import os

import setuptools

long_description = ''
if os.path.exists("README.md"):
    with open("README.md", "r") as fh:
        long_description = fh.read()

setuptools.setup(
    name="pyTwin",
    version="0.1.0",
    author="dhrone",
    author_email="ron@ritchey.org",
    description="Validates, stores and delivers commands to Amazon IOT-Core devices and simulates the devices that receive them",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/dhrone/pyTwin",
    packages=setuptools.find_packages(exclude=["tests"]),
    package_data={"pyTwin": ["schema/*.yml"]},
    install_requires=[
        "AWSIoTPythonSDK",
        "boto3",
        "PyYAML",
    ],
    extras_require={
        "test": ["pytest"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
