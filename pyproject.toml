[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "weaveio"
version = "0.1.0"
description = "Pattern-based logging, a one-shot IO readiness loop and servlet path dispatch"
requires-python = ">=3.10"
keywords = ["logging", "selectors", "event loop", "servlet", "dispatch", "io"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
    "Topic :: System :: Logging",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["weaveio"]

[tool.pytest.ini_options]
addopts = "-ra"
