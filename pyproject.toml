[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kindling"
version = "0.6.0a0"
description = "Manage local Kubernetes clusters whose nodes are Docker containers"
requires-python = ">=3.10"
dependencies = []
keywords = ["kubernetes", "docker", "cluster", "containers", "cni"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Operating System :: MacOS",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Clustering",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
kindling = "kindling.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["kindling"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
