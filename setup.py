from setuptools import setup, find_packages

setup(
    name="timecapsule",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    install_requires=[
        "pynacl==1.6.2",
    ],
    entry_points={
        "console_scripts": [
            "timecapsule=main:main",
        ],
    },
    python_requires=">=3.8",
)
