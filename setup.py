import setuptools
from setuptools import find_packages

with open("readme.md", "r") as fh:
    long_description = fh.read()


vars2find = ["__author__", "__version__", "__url__"]
vars2readme = {}
with open("./crm_backup/__init__.py") as f:
    for line in f.readlines():
        for v in vars2find:
            if line.startswith(v):
                line = line.replace(" ", "").replace('"', "").replace("'", "").strip()
                vars2readme[v] = line.split("=")[1]

# Core dependencies (engine only, no HTTP surface)
core_deps = [
    "sqlalchemy[asyncio]>=2.0",
    "aiosqlite",
    "networkx",
    "pydantic>=2.0",
    "tenacity",
]

setuptools.setup(
    name="crm-backup",
    url=vars2readme["__url__"],
    version=vars2readme["__version__"],
    author=vars2readme["__author__"],
    description="Snapshot and non-destructive merge restore for the CRM database",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=core_deps,
    extras_require={
        "api": [
            "fastapi",
            "pydantic-settings",
            "redis[hiredis]>=5.0.0",
            "uvicorn",
        ],
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
            "fastapi",
            "pydantic-settings",
            "redis[hiredis]>=5.0.0",
        ],
    },
)
